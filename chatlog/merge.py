"""
Streaming merge engine.

Owns the single in-flight streamed utterance. Deltas for the same logical
utterance are merged with overlap detection so producers that resend or
re-chunk text never duplicate it; a change of kind or item id closes the
current utterance first.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

from ._types import Message, MessageType, StreamingSession, StreamKind
from .utils.text import strip_leading_blank_lines

logger = logging.getLogger(__name__)

Markup = Callable[[str], Any]


def merge_streaming_text(existing: str, delta: str) -> str:
    """Merge a streamed fragment into the accumulated text.

    Examples:
        >>> merge_streaming_text("Hello wor", "world!")
        'Hello world!'
        >>> merge_streaming_text("Hel", "Hello")
        'Hello'
    """
    if not delta:
        return existing
    if not existing:
        return delta
    if delta.startswith(existing):
        # Full resend of everything so far plus new text.
        return delta
    if existing.startswith(delta):
        return existing

    for length in range(min(len(existing), len(delta)), 0, -1):
        if existing.endswith(delta[:length]):
            return existing + delta[length:]
    return existing + delta


@dataclass
class DeltaResult:
    """What appending a delta did: the message it closed, and whether it opened a session."""

    finalized: Message | None = None
    started: bool = False


class StreamingMerger:
    """Holds at most one ``StreamingSession`` and the post-finalize dedupe memo."""

    def __init__(self, markup: Markup | None = None):
        self._markup: Markup = markup or (lambda text: text)
        self.session: StreamingSession | None = None
        self.last_finalized_text = ""

    @property
    def is_streaming(self) -> bool:
        return self.session is not None

    def append_delta(self, kind: StreamKind, text: str, item_id: str | None = None) -> DeltaResult:
        """Merge ``text`` into the open session, rotating sessions on kind/id change."""
        result = DeltaResult()
        session = self.session

        if session is not None and session.kind == kind and item_id and item_id == session.item_id:
            session.text = merge_streaming_text(session.text, text or "")
            return result

        if session is not None and ((item_id and item_id != session.item_id) or session.kind != kind):
            result.finalized = self.finalize()

        if self.session is None:
            self.session = StreamingSession(kind=kind, item_id=item_id or None)
            result.started = True

        self.session.text = merge_streaming_text(self.session.text, text or "")
        return result

    def finalize(self) -> Message | None:
        """Close the open session; returns its message, or ``None`` when nothing was said."""
        session = self.session
        if session is None:
            return None
        self.session = None

        if session.kind == StreamKind.ASSISTANT:
            self.last_finalized_text = session.text
            if not session.text.strip():
                return None
            return Message(
                type=MessageType.ASSISTANT,
                content=session.text,
                rendered=self._markup(session.text),
            )

        text = strip_leading_blank_lines(session.text)
        if not text.strip():
            return None
        return Message(type=MessageType.REASONING, content=text)

    def matches_open_assistant(self, text: str) -> bool:
        """True when a complete assistant message repeats the in-flight assistant text."""
        session = self.session
        return (
            session is not None
            and session.kind == StreamKind.ASSISTANT
            and bool(text)
            and bool(session.text)
            and text.strip() == session.text.strip()
        )

    def consume_duplicate(self, text: str) -> bool:
        """Check an incoming complete assistant message against the memo.

        The memo is cleared either way, so at most one message is suppressed
        per finalize.
        """
        memo = self.last_finalized_text
        if not memo:
            return False
        self.last_finalized_text = ""
        if text and text == memo:
            logger.debug("Skipping duplicate assistant message")
            return True
        return False

    def render(self, text: str) -> Any:
        return self._markup(text)

    def reset(self) -> None:
        self.session = None
        self.last_finalized_text = ""
