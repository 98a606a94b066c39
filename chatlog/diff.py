"""
Unified diff detection and parsing.

Turns unified-diff text (``diff --git`` headers, ``@@`` hunks) into
``DiffLine`` rows with running old/new line numbers. All functions are
pure; the running ``DiffTally`` lives on the transcript store.
"""

from __future__ import annotations

import re

from ._types import DiffDocument, DiffLine, DiffLineKind

_GIT_HEADER_RE = re.compile(r"(^|\n)diff --git ")
_HUNK_START_RE = re.compile(r"(^|\n)@@ -\d+")
_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_FENCED_RE = re.compile(r"```(?:diff|patch)?\n(.*?)```", re.DOTALL)
_GIT_FILE_RE = re.compile(r"^diff --git a/.*$", re.MULTILINE)
_PLUS_FILE_RE = re.compile(r"^\+\+\+ b/(.+)$", re.MULTILINE)

_META_PREFIXES = ("diff --git", "index ", "--- ", "+++ ")


def is_unified_diff(text: str | None) -> bool:
    """True when text carries a ``diff --git`` header or an ``@@ -N`` hunk header."""
    if not text:
        return False
    return bool(_GIT_HEADER_RE.search(text) or _HUNK_START_RE.search(text))


def slice_unified_diff(text: str | None) -> str:
    """Drop any preamble before the first file header (or, failing that, first hunk)."""
    if not text:
        return ""
    for pattern in (_GIT_HEADER_RE, _HUNK_START_RE):
        match = pattern.search(text)
        if match:
            return text[match.start() :].strip()
    return text.strip()


def extract_diff_blocks(text: str | None) -> list[str]:
    """Pull diff blocks out of free text.

    Fenced ```diff / ```patch blocks win; when none of them hold a diff, the
    whole text is tried as one.
    """
    if not text:
        return []
    blocks = []
    for match in _FENCED_RE.finditer(text):
        inner = (match.group(1) or "").strip()
        if is_unified_diff(inner):
            blocks.append(slice_unified_diff(inner))
    if not blocks and is_unified_diff(text):
        blocks.append(slice_unified_diff(text))
    return blocks


def parse_unified_diff(text: str) -> list[DiffLine]:
    """Parse unified-diff text into typed rows.

    Lines before the first hunk are ``meta`` (blank ones are dropped). Inside
    a hunk, ``+``/``-``/space lines advance the new/old counters; a leading
    backslash ("No newline at end of file") is ``meta``. Anything else is
    skipped.
    """
    rows: list[DiffLine] = []
    old_line = 0
    new_line = 0
    in_hunk = False

    for line in text.split("\n"):
        if line.startswith(_META_PREFIXES):
            rows.append(DiffLine(DiffLineKind.META, None, None, line))
            continue

        if line.startswith("@@"):
            match = _HUNK_HEADER_RE.match(line)
            if match:
                old_line = int(match.group(1))
                new_line = int(match.group(3))
            rows.append(DiffLine(DiffLineKind.HUNK, None, None, line))
            in_hunk = True
            continue

        if not in_hunk:
            if line.strip():
                rows.append(DiffLine(DiffLineKind.META, None, None, line))
            continue

        if line.startswith("+"):
            rows.append(DiffLine(DiffLineKind.ADD, None, new_line, line[1:]))
            new_line += 1
        elif line.startswith("-"):
            rows.append(DiffLine(DiffLineKind.DEL, old_line, None, line[1:]))
            old_line += 1
        elif line.startswith(" "):
            rows.append(DiffLine(DiffLineKind.CONTEXT, old_line, new_line, line[1:]))
            old_line += 1
            new_line += 1
        elif line.startswith("\\"):
            rows.append(DiffLine(DiffLineKind.META, None, None, line))

    return rows


def diff_title(text: str, fallback: str | None = None) -> str:
    """Header title for a diff block: the first file path, with ``(+N)`` for extra files."""
    file_lines = _GIT_FILE_RE.findall(text)
    if file_lines:
        parts = file_lines[0].split(" ")
        path = parts[2].removeprefix("a/") if len(parts) > 2 else ""
        path = path or "Diff"
        if len(file_lines) > 1:
            return f"{path} (+{len(file_lines) - 1})"
        return path
    plus = _PLUS_FILE_RE.search(text)
    if plus and plus.group(1):
        return plus.group(1)
    return fallback or "Diff"


def parse_document(text: str, fallback_title: str | None = None) -> DiffDocument:
    """Parse a diff block into a titled ``DiffDocument``."""
    return DiffDocument(
        text=text,
        lines=parse_unified_diff(text),
        title=diff_title(text, fallback_title),
    )
