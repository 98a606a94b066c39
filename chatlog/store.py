"""Transcript store: ordered canonical messages plus plan and diff tally side state."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from typing import Any

from ._types import (
    DiffDocument,
    DiffTally,
    Effect,
    EffectType,
    Message,
    MessageType,
    PlanState,
    ToolInvocation,
)


class TranscriptStore:
    """Single source of truth for rendering.

    Every mutator returns the ``Effect`` list a renderer needs to mirror the
    change. Diff messages bump the ``DiffTally`` as they enter the transcript.
    """

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.plan = PlanState()
        self.tally = DiffTally()

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __getitem__(self, index: int) -> Message:
        return self.messages[index]

    def append(self, message: Message) -> list[Effect]:
        self.messages.append(message)
        effects = [Effect(EffectType.MESSAGE_APPENDED, index=len(self.messages) - 1, message=message)]
        effects.extend(self._tally(message))
        return effects

    def insert(self, index: int, message: Message) -> list[Effect]:
        """Insert at ``index``, clamped to the end of the transcript."""
        index = max(0, min(index, len(self.messages)))
        self.messages.insert(index, message)
        effects = [Effect(EffectType.MESSAGE_INSERTED, index=index, message=message)]
        effects.extend(self._tally(message))
        return effects

    def updated(self, index: int) -> Effect:
        return Effect(EffectType.MESSAGE_UPDATED, index=index, message=self.messages[index])

    def last_pending_tool_call(self) -> int | None:
        """Index of the most recently appended invocation still pending."""
        for index in range(len(self.messages) - 1, -1, -1):
            message = self.messages[index]
            if (
                message.type == MessageType.TOOL_CALL
                and isinstance(message.content, ToolInvocation)
                and message.content.is_pending
            ):
                return index
        return None

    def set_plan(self, plan: PlanState) -> Effect:
        self.plan = plan
        return Effect(EffectType.PLAN_UPDATED, payload=plan)

    def clear(self) -> list[Effect]:
        """Drop every message and reset the tally. The plan survives a clear."""
        self.messages = []
        self.tally.reset()
        return [
            Effect(EffectType.TRANSCRIPT_CLEARED),
            Effect(EffectType.TALLY_CHANGED, payload=replace(self.tally)),
        ]

    def snapshot(self) -> list[dict[str, Any]]:
        return [message.to_dict() for message in self.messages]

    def _tally(self, message: Message) -> list[Effect]:
        if message.type != MessageType.DIFF or not isinstance(message.content, DiffDocument):
            return []
        self.tally.add(message.content)
        return [Effect(EffectType.TALLY_CHANGED, payload=replace(self.tally))]
