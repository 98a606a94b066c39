"""
Tool call/result correlation.

Results carry no call id, so a result is paired with the most recently
appended invocation that is still pending (last-pending-wins). Two calls
issued back to back therefore take their results in reverse order; the
event shapes offer nothing to disambiguate that.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from . import prompts
from ._types import Effect, Message, MessageType, ToolInvocation, ToolState
from .diff import parse_document
from .extract import extract
from .store import TranscriptStore
from .utils.text import looks_blank, truncate_text

logger = logging.getLogger(__name__)

DEFAULT_RESULT_LIMIT = 500


def result_text(raw: Any) -> str:
    """Trimmed string form of a raw result (JSON for structured values)."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw.strip()
    try:
        return json.dumps(raw).strip()
    except (TypeError, ValueError):
        return str(raw).strip()


class ToolCorrelator:
    """Appends tool invocations and merges later results into them."""

    def __init__(self, store: TranscriptStore, *, result_limit: int = DEFAULT_RESULT_LIMIT):
        self._store = store
        self._result_limit = result_limit

    def on_tool_call(
        self, name: str | None, arguments: Any, timestamp: str | None = None
    ) -> list[Effect]:
        """Append a pending invocation.

        ``AskUserQuestion`` calls become question cards instead; they are
        answered by the user, so they never wait for a tool result.
        """
        name = name or "Tool"
        invocation = ToolInvocation(name=name, arguments=arguments if arguments is not None else "")
        if prompts.is_question_tool(name):
            invocation.questions = prompts.parse_tool_questions(arguments)
            invocation.state = ToolState.COMPLETE
        return self._store.append(
            Message(type=MessageType.TOOL_CALL, content=invocation, timestamp=timestamp)
        )

    def on_tool_result(self, raw: Any) -> list[Effect]:
        """Merge a result into the last pending invocation, or render it standalone."""
        index = self._store.last_pending_tool_call()
        if index is None:
            return self.standalone(raw)

        invocation: ToolInvocation = self._store[index].content
        value = result_text(raw)
        if looks_blank(value):
            invocation.complete()
            return [self._store.updated(index)]

        extraction = extract(raw)
        if extraction.has_diffs:
            invocation.complete()
            effects = [self._store.updated(index)]
            for offset, diff_text in enumerate(extraction.diffs, start=1):
                message = Message(type=MessageType.DIFF, content=parse_document(diff_text))
                effects.extend(self._store.insert(index + offset, message))
            return effects

        invocation.complete(truncate_text(extraction.text or value, self._result_limit))
        return [self._store.updated(index)]

    def standalone(
        self, raw: Any, title: str | None = None, timestamp: str | None = None
    ) -> list[Effect]:
        """Render a result that has no invocation to merge into.

        Empty results produce nothing at all.
        """
        value = result_text(raw)
        if looks_blank(value):
            logger.debug("Dropping empty standalone tool result")
            return []

        extraction = extract(raw)
        if extraction.has_diffs:
            effects: list[Effect] = []
            for diff_text in extraction.diffs:
                message = Message(
                    type=MessageType.DIFF,
                    content=parse_document(diff_text, title),
                    timestamp=timestamp,
                )
                effects.extend(self._store.append(message))
            return effects

        text = truncate_text(extraction.text or value, self._result_limit)
        return self._store.append(
            Message(type=MessageType.TOOL_RETURN, content=text, timestamp=timestamp)
        )
