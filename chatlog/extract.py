"""Pull diff blocks and display text out of loosely-shaped tool payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import Any

from .diff import extract_diff_blocks

logger = logging.getLogger(__name__)

# Walk order for nested payloads. Keys not listed here are never visited so
# metadata fields (ids, timestamps, paths) do not leak into the result text.
PRIORITY_KEYS = (
    "diff",
    "patch",
    "unified_diff",
    "text",
    "content",
    "output",
    "result",
    "message",
    "raw_output",
    "rawOutput",
    "data",
)


@dataclass
class Extraction:
    """Result of scanning a payload: diff blocks, or the text to display."""

    diffs: list[str] = field(default_factory=list)
    text: str | None = None

    @property
    def has_diffs(self) -> bool:
        return bool(self.diffs)


def try_parse_json(text: Any) -> Any:
    """Decode text that looks like a JSON object or array; ``None`` otherwise."""
    if not text or not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed or trimmed[0] not in "{[":
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        logger.debug("Payload is not valid JSON, treating as text: %s", trimmed[:200])
        return None


def collect_text_blocks(value: Any, collector: list[str] | None = None) -> list[str]:
    """Collect string leaves from a decoded payload in key-priority order."""
    if collector is None:
        collector = []
    if value is None:
        return collector
    if isinstance(value, str):
        collector.append(value)
    elif isinstance(value, list):
        for item in value:
            collect_text_blocks(item, collector)
    elif isinstance(value, dict):
        kind = value.get("type") or value.get("kind")
        if kind == "diff":
            for key in ("diff", "text"):
                if isinstance(value.get(key), str):
                    collector.append(value[key])
                    return collector
        for key in PRIORITY_KEYS:
            if key in value:
                collect_text_blocks(value[key], collector)
    return collector


def _to_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw.strip()
    try:
        return json.dumps(raw, separators=(",", ":")).strip()
    except (TypeError, ValueError):
        return str(raw).strip()


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(item for item in items if item))


def extract(raw: Any) -> Extraction:
    """Scan a raw tool result for diffs, falling back to display text.

    Non-string values are serialized to compact JSON first. When any diff is
    found the text is dropped, since the diff carries the result.
    """
    raw_text = _to_text(raw)
    parsed = try_parse_json(raw_text)
    candidates = _unique([c.strip() for c in collect_text_blocks(parsed)]) if parsed else []

    sources = candidates or ([raw_text] if raw_text else [])
    diffs: list[str] = []
    for source in sources:
        diffs.extend(extract_diff_blocks(source))
    diffs = _unique([d.strip() for d in diffs])

    if diffs:
        return Extraction(diffs=diffs, text=None)
    if candidates:
        return Extraction(text="\n\n".join(candidates))
    return Extraction(text=raw_text)
