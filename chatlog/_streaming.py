"""EventStream: iterable SSE reader over a streaming bridge response."""

from __future__ import annotations

from collections.abc import Generator, Iterator
import json
import logging
from typing import TYPE_CHECKING, Any

from .events import BridgeFrameAdapter

if TYPE_CHECKING:
    import requests

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def parse_sse_frame(frame: str) -> dict[str, Any] | None:
    """Decode one SSE frame (``data:`` lines, comments skipped) into a dict.

    Returns ``None`` for comment-only frames, the ``[DONE]`` sentinel and
    malformed JSON.
    """
    if not frame or not frame.strip():
        return None

    data_lines: list[str] = []
    for raw_line in frame.splitlines():
        stripped = raw_line.strip()
        if not stripped or stripped.startswith(":"):
            continue
        if raw_line.startswith("data:"):
            data_lines.append(raw_line[5:].lstrip(" "))

    payload = "\n".join(data_lines).strip()
    if not payload or payload == DONE_SENTINEL:
        return None

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Failed to parse SSE JSON: %s", payload[:200])
        return None
    if not isinstance(data, dict):
        logger.debug("Ignoring non-object SSE payload: %s", payload[:200])
        return None
    return data


def iter_sse(response: Any, decode_unicode: bool = True) -> Generator[dict[str, Any], None, None]:
    """Yield decoded SSE payloads from a streaming response, stopping at ``[DONE]``."""
    frame_lines: list[str] = []
    for line in response.iter_lines(decode_unicode=decode_unicode):
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")

        # Empty line terminates an SSE frame.
        if line == "":
            if frame_lines:
                frame = "\n".join(frame_lines)
                frame_lines = []
                if _is_done(frame):
                    return
                data = parse_sse_frame(frame)
                if data is not None:
                    yield data
            continue

        frame_lines.append(line)

    if frame_lines:
        frame = "\n".join(frame_lines)
        if not _is_done(frame):
            data = parse_sse_frame(frame)
            if data is not None:
                yield data


def _is_done(frame: str) -> bool:
    return any(
        line.startswith("data:") and line[5:].strip() == DONE_SENTINEL for line in frame.splitlines()
    )


class EventStream:
    """Iterable stream of inbound event dicts for one task.

    Bridge frames are translated on the fly, so every yielded dict is ready
    for ``TranscriptEngine.ingest``.

    Usage:
        with client.tasks.events(task_id) as stream:
            for event in stream:
                engine.ingest(event)
    """

    def __init__(self, response: requests.Response):
        self._response = response
        self._closed = False

    def close(self) -> None:
        """Close the underlying response (idempotent)."""
        if not self._closed:
            self._closed = True
            self._response.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[dict[str, Any]]:
        try:
            for data in iter_sse(self._response):
                yield from BridgeFrameAdapter.normalize(data)
        finally:
            self.close()

    def __enter__(self) -> EventStream:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
