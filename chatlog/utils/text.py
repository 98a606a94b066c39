"""Text shaping helpers for transcript display."""

import re

TRUNCATION_MARKER = "... (truncated)"

_LEADING_BLANK_LINES_RE = re.compile(r"^(?:[ \t]*\r?\n)+")


def truncate_text(text: str | None, limit: int) -> str | None:
    """
    Cut text to a display bound.

    Args:
        text: Text to shorten (``None`` and empty pass through)
        limit: Maximum number of characters kept before the marker

    Returns:
        The text unchanged when it fits, else its first ``limit`` characters
        followed by ``"... (truncated)"``
    """
    if not text or len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def strip_leading_blank_lines(text: str) -> str:
    """Drop blank (or whitespace-only) lines from the start of text."""
    return _LEADING_BLANK_LINES_RE.sub("", text, count=1)


def looks_blank(value: str | None) -> bool:
    """True for empty, whitespace-only, ``"null"`` and ``"undefined"`` results."""
    if value is None:
        return True
    trimmed = value.strip()
    return not trimmed or trimmed in ("null", "undefined")
