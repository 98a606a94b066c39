"""
Transcript engine.

``TranscriptEngine`` owns every piece of mutable transcript state: the
message store, the open streaming session, the dedupe memo, the plan and the
diff tally. Each inbound event is applied synchronously and in arrival
order; the caller gets back a list of ``Effect`` descriptions to render.
User actions (permission answers, question answers, outgoing messages)
return an ``Outbound`` holding the payload for the transport.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any

from . import permissions, prompts
from ._exceptions import AlreadyAnsweredError, UnknownCardError
from ._types import (
    Attachment,
    DiffTally,
    Effect,
    EffectType,
    FileEdit,
    InputState,
    Message,
    MessageType,
    PermissionState,
    PlanContent,
    PlanState,
    StatusState,
    StreamingSession,
    StreamKind,
    ToolInvocation,
    UserInputRequest,
)
from .correlator import DEFAULT_RESULT_LIMIT, ToolCorrelator
from .diff import parse_document
from .events import EventType, InboundEvent, MessageRecord, StatusSignal, StreamDelta
from .merge import Markup, StreamingMerger
from .plan import plan_from_event
from .store import TranscriptStore
from .timers import ElapsedTimer
from .utils.text import strip_leading_blank_lines, truncate_text

logger = logging.getLogger(__name__)

_GENERIC_WORK_RE = re.compile(r"^(thinking|responding|tool completed)\b", re.IGNORECASE)

FILE_EDIT_PREVIEW_LIMIT = 300
STOPPING_NOTE = "Stopping generation..."


@dataclass
class Outbound:
    """Payload for the transport plus the effects of applying the action locally."""

    payload: dict[str, Any]
    effects: list[Effect] = field(default_factory=list)


def status_display(text: str | None, state: StatusState) -> str:
    """Status line text: generic running statuses collapse to ``Working``."""
    safe = (text or "Ready").strip()
    if state == StatusState.RUNNING and _GENERIC_WORK_RE.match(safe):
        return "Working"
    return safe


class TranscriptEngine:
    """Turns inbound events into one de-duplicated, ordered transcript.

    Usage:
        engine = TranscriptEngine()
        for event in events:
            for effect in engine.ingest(event):
                renderer.apply(effect)
    """

    def __init__(
        self,
        *,
        markup: Markup | None = None,
        result_limit: int = DEFAULT_RESULT_LIMIT,
        timer: ElapsedTimer | None = None,
    ):
        self.store = TranscriptStore()
        self.merger = StreamingMerger(markup)
        self.correlator = ToolCorrelator(self.store, result_limit=result_limit)
        self.timer = timer or ElapsedTimer()
        self.status_text = "Ready"
        self.status_state = StatusState.IDLE
        self.generating = False

    # ------------------------------------------------------------------
    # State views

    @property
    def messages(self) -> list[Message]:
        return self.store.messages

    @property
    def session(self) -> StreamingSession | None:
        return self.merger.session

    @property
    def plan(self) -> PlanState:
        return self.store.plan

    @property
    def tally(self) -> DiffTally:
        return self.store.tally

    def snapshot(self) -> dict[str, Any]:
        session = self.merger.session
        return {
            "messages": self.store.snapshot(),
            "session": session.to_dict() if session else None,
            "plan": self.store.plan.to_dict(),
            "tally": self.store.tally.to_dict(),
            "status": {"text": self.status_text, "state": self.status_state.value},
        }

    # ------------------------------------------------------------------
    # Inbound

    def ingest(self, event: InboundEvent | dict[str, Any]) -> list[Effect]:
        """Apply one inbound event (delta, complete record or status signal)."""
        if not isinstance(event, InboundEvent):
            event = InboundEvent.from_dict(event)

        if isinstance(event, StatusSignal):
            return self.set_status(event.text, event.state)
        if isinstance(event, StreamDelta):
            return self._on_delta(event)
        if isinstance(event, MessageRecord):
            return self._on_record(event)
        logger.debug("Ignoring unsupported event %r", event)
        return []

    def load_batch(self, records: Iterable[InboundEvent | dict[str, Any]]) -> list[Effect]:
        """Replace the transcript with an ordered batch of records."""
        effects = self.clear()
        for record in records:
            effects.extend(self.ingest(record))
        return effects

    def clear(self) -> list[Effect]:
        """Drop messages, tally, the dedupe memo and any open session."""
        self.merger.reset()
        return self.store.clear()

    def finalize_stream(self) -> list[Effect]:
        """Close the open streaming session, if any."""
        session = self.merger.session
        if session is None:
            return []
        return self._closed(session, self.merger.finalize())

    # ------------------------------------------------------------------
    # Status

    def set_status(self, text: str | None, state: StatusState | str) -> list[Effect]:
        """Update the status line.

        ``running`` starts the elapsed timer; ``idle`` and ``completed``
        finish the generation (finalizing any open stream); ``idle``,
        ``completed`` and ``error`` stop the timer.
        """
        state = StatusState(state)
        display = status_display(text, state)
        effects: list[Effect] = []

        if state == StatusState.RUNNING:
            self.generating = True
            self.timer.start()
        elif state in (StatusState.IDLE, StatusState.COMPLETED):
            effects.extend(self._finish_generation())
        else:
            self.timer.stop()

        self.status_text = display
        self.status_state = state
        effects.append(
            Effect(
                EffectType.STATUS_CHANGED,
                payload={"text": display, "state": state.value, "elapsed": self.timer.display()},
            )
        )
        return effects

    def stop_generation(self) -> list[Effect]:
        """Note the stop in the transcript and finish the generation.

        Pending tool invocations stay pending; their results still merge.
        """
        if not self.generating and self.merger.session is None:
            return []
        effects = self._track(self.store.append(Message(type=MessageType.SYSTEM, content=STOPPING_NOTE)))
        effects.extend(self._finish_generation())
        return effects

    def notify(self, text: str) -> list[Effect]:
        """One-shot user-visible notification (transport failures)."""
        return [Effect(EffectType.NOTIFICATION, payload=text)]

    # ------------------------------------------------------------------
    # Outbound

    def respond_to_permission(self, request_id: str | None, response_id: str | None) -> Outbound | None:
        """Answer a permission card. Returns ``None`` when an id is missing."""
        if not request_id or not response_id:
            logger.error("Missing request or response ID for permission")
            return None

        effects: list[Effect] = []
        index = self._find(MessageType.PERMISSION_REQUEST, request_id)
        if index is None:
            logger.debug("Permission request %s is not in the transcript", request_id)
        else:
            request = self.store[index].content
            option = next((o for o in request.options if o.id == response_id), None)
            denied = response_id == "deny" or (option is not None and permissions.is_deny(option))
            request.state = PermissionState.DENIED if denied else PermissionState.CONFIRMED
            effects.append(self.store.updated(index))

        return Outbound(payload={"requestId": request_id, "responseId": response_id}, effects=effects)

    def respond_to_user_input(
        self, request_id: str | None, selections: dict[str, prompts.Selection] | None = None
    ) -> Outbound | None:
        """Answer an input request card.

        Raises:
            UnknownCardError: When no card with ``request_id`` is in the transcript
            AlreadyAnsweredError: When the card was answered before
        """
        if not request_id:
            logger.error("Missing request ID for user input")
            return None

        index = self._find(MessageType.USER_INPUT_REQUEST, request_id)
        if index is None:
            raise UnknownCardError(f"No input request {request_id!r} in the transcript", request_id)

        card: UserInputRequest = self.store[index].content
        if card.state == InputState.ANSWERED:
            raise AlreadyAnsweredError(f"Input request {request_id!r} was already answered", request_id)
        answers = prompts.build_answers(card, selections)
        card.state = InputState.ANSWERED
        return Outbound(
            payload={"requestId": request_id, "answers": answers},
            effects=[self.store.updated(index)],
        )

    def answer_tool_question(
        self, index: int, selections: dict[str, prompts.Selection] | None = None
    ) -> Outbound | None:
        """Answer an ``AskUserQuestion`` card with an outgoing user message.

        Returns ``None`` when a question is left unanswered.

        Raises:
            UnknownCardError: When ``index`` is not a question card
            AlreadyAnsweredError: When the question card was answered before
        """
        if index < 0 or index >= len(self.store):
            raise UnknownCardError(f"No transcript message at index {index}", index)
        message = self.store[index]
        invocation = message.content
        if not isinstance(invocation, ToolInvocation) or not invocation.questions:
            raise UnknownCardError(f"Message {index} is not a question card", index)
        if invocation.answered:
            raise AlreadyAnsweredError(f"Question card {index} was already answered", index)

        text = prompts.compose_tool_answer(invocation.questions, selections)
        if text is None:
            return None

        invocation.answered = True
        outbound = self.add_user_message(text)
        if outbound is None:
            return None
        outbound.effects.insert(0, self.store.updated(index))
        return outbound

    def add_user_message(
        self, text: str | None, attachments: list[Attachment] | None = None
    ) -> Outbound | None:
        """Append an outgoing user message and build its payload."""
        content = (text or "").strip()
        attachments = list(attachments or [])
        if not content and not attachments:
            logger.debug("Not sending an empty user message")
            return None

        message = Message(
            type=MessageType.USER,
            content=content,
            timestamp=datetime.now(timezone.utc).isoformat(),
            attachments=attachments,
        )
        effects = self._track(self.store.append(message))
        effects.extend(self.set_status("Sending...", StatusState.RUNNING))

        payload: dict[str, Any] = {"type": "user", "content": content}
        if attachments:
            payload["attachments"] = [a.to_dict() for a in attachments]
        return Outbound(payload=payload, effects=effects)

    # ------------------------------------------------------------------
    # Streaming deltas

    def _on_delta(self, delta: StreamDelta) -> list[Effect]:
        effects: list[Effect] = []
        kind = delta.type

        if kind == EventType.TEXT_CHUNK:
            effects.extend(self._append_delta(StreamKind.ASSISTANT, delta.text, delta.item_id))
            effects.extend(self.set_status("Responding...", StatusState.RUNNING))
        elif kind == EventType.REASONING_CHUNK:
            # Reasoning chunks carry no item id.
            effects.extend(self._append_delta(StreamKind.REASONING, delta.text, None))
            effects.extend(self.set_status("Thinking...", StatusState.RUNNING))
        elif kind == EventType.TOOL_CALL:
            effects.extend(self.finalize_stream())
            effects.extend(self._track(self.correlator.on_tool_call(delta.name, delta.arguments)))
            effects.extend(self.set_status("Running: " + (delta.name or "tool"), StatusState.RUNNING))
        elif kind == EventType.TOOL_RETURN:
            effects.extend(self._track(self.correlator.on_tool_result(delta.content)))
        elif kind == EventType.STATUS:
            effects.extend(self.set_status(delta.text, StatusState.RUNNING))
        elif kind == EventType.PERMISSION_REQUEST:
            effects.extend(self.finalize_stream())
            effects.extend(
                self._add_permission(
                    delta.request_id, delta.tool_name, delta.description, delta.raw_input, delta.options
                )
            )
            effects.extend(self.set_status("Waiting for permission...", StatusState.RUNNING))
        elif kind == EventType.USER_INPUT_REQUEST:
            effects.extend(self.finalize_stream())
            card = prompts.parse_user_input_request(delta.request_id, delta.questions, delta.content)
            effects.extend(self._append(Message(type=MessageType.USER_INPUT_REQUEST, content=card)))
            effects.extend(self.set_status("Waiting for input...", StatusState.RUNNING))
        elif kind == EventType.PLAN_UPDATE:
            effects.extend(self.finalize_stream())
            effects.append(self.store.set_plan(plan_from_event(delta.raw)))
            effects.extend(self.set_status("Plan updated", StatusState.RUNNING))
        elif kind == EventType.PLAN_CONTENT:
            effects.extend(self.finalize_stream())
            effects.extend(self._append(self._plan_content(delta.content, delta.file_path)))
            effects.extend(self.set_status("Plan content", StatusState.RUNNING))
        else:
            logger.debug("Ignoring unknown streaming update %r", delta.raw.get("message_type"))
        return effects

    def _append_delta(self, kind: StreamKind, text: str, item_id: str | None) -> list[Effect]:
        effects: list[Effect] = []
        previous = self.merger.session
        result = self.merger.append_delta(kind, text, item_id)

        if previous is not None and self.merger.session is not previous:
            effects.extend(self._closed(previous, result.finalized))

        session = self.merger.session
        if session is None:
            return effects
        if result.started:
            session.anchor = len(self.store)
        effects.append(Effect(EffectType.STREAM_UPDATED, index=session.anchor, payload=replace(session)))
        return effects

    def _closed(self, session: StreamingSession, message: Message | None) -> list[Effect]:
        effects: list[Effect] = []
        if message is not None:
            effects.extend(self.store.insert(session.anchor, message))
        effects.append(
            Effect(
                EffectType.STREAM_FINALIZED,
                index=session.anchor if message is not None else None,
                message=message,
                payload=replace(session),
            )
        )
        return effects

    # ------------------------------------------------------------------
    # Complete records

    def _on_record(self, record: MessageRecord) -> list[Effect]:
        kind = record.type
        timestamp = record.timestamp

        if kind == MessageType.PLAN_UPDATE:
            return [self.store.set_plan(plan_from_event(record.raw))]

        if kind == MessageType.ASSISTANT:
            return self._assistant_record(record)

        if kind == MessageType.TOOL_RETURN:
            raw = record.get("tool_return") or record.get("result") or record.content
            if self.store.last_pending_tool_call() is not None:
                return self._track(self.correlator.on_tool_result(raw))
            return self._track(self.correlator.standalone(raw, record.get("title"), timestamp))

        if kind == MessageType.TOOL_CALL:
            tool_call = record.get("tool_call")
            if isinstance(tool_call, dict):
                name, arguments = tool_call.get("name"), tool_call.get("arguments")
            else:
                name, arguments = record.get("name"), record.get("arguments", "")
            effects = self.finalize_stream()
            effects.extend(self._track(self.correlator.on_tool_call(name, arguments, timestamp)))
            return effects

        if kind == MessageType.PERMISSION_REQUEST:
            effects = self.finalize_stream()
            effects.extend(
                self._add_permission(
                    record.get("request_id"),
                    record.get("tool_name"),
                    record.get("description"),
                    record.get("raw_input"),
                    record.get("options"),
                    timestamp,
                )
            )
            return effects

        if kind == MessageType.USER_INPUT_REQUEST:
            card = prompts.parse_user_input_request(
                record.get("request_id"), record.get("questions"), record.content
            )
            return self._append(Message(type=MessageType.USER_INPUT_REQUEST, content=card, timestamp=timestamp))

        if kind == MessageType.PLAN_CONTENT:
            message = self._plan_content(record.content, record.get("file_path"))
            message.timestamp = timestamp
            return self._append(message)

        if kind == MessageType.USER:
            attachments = [
                Attachment.from_dict(item)
                for item in record.get("attachments", [])
                if isinstance(item, dict)
            ]
            return self._append(
                Message(type=MessageType.USER, content=record.text, timestamp=timestamp, attachments=attachments)
            )

        if kind == MessageType.REASONING:
            raw_text = record.get("reasoning") or record.text
            text = strip_leading_blank_lines(str(raw_text).rstrip())
            if not text:
                return []
            return self._append(Message(type=MessageType.REASONING, content=text, timestamp=timestamp))

        if kind == MessageType.FILE_EDIT:
            path = record.get("file_path") or record.get("path") or "Unknown file"
            preview = truncate_text(str(record.get("edit_content") or record.text), FILE_EDIT_PREVIEW_LIMIT)
            return self._append(
                Message(type=MessageType.FILE_EDIT, content=FileEdit(path, preview or ""), timestamp=timestamp)
            )

        if kind == MessageType.DIFF:
            diff_text = str(record.get("diff") or record.text)
            if not diff_text.strip():
                logger.debug("Dropping empty diff record")
                return []
            document = parse_document(diff_text, record.get("title"))
            return self._append(Message(type=MessageType.DIFF, content=document, timestamp=timestamp))

        if kind == MessageType.ERROR:
            return self._append(Message(type=MessageType.ERROR, content=record.text, timestamp=timestamp))

        return self._append(Message(type=MessageType.SYSTEM, content=record.text, timestamp=timestamp))

    def _assistant_record(self, record: MessageRecord) -> list[Effect]:
        text = record.text
        if self.merger.matches_open_assistant(text):
            # The live stream already shows this message; close it instead.
            effects = self.finalize_stream()
            self.merger.last_finalized_text = ""
            return effects
        if self.merger.consume_duplicate(text):
            return []
        message = Message(
            type=MessageType.ASSISTANT,
            content=text,
            timestamp=record.timestamp,
            rendered=self.merger.render(text),
        )
        return self._append(message)

    # ------------------------------------------------------------------
    # Helpers

    def _add_permission(
        self,
        request_id: str | None,
        tool_name: str | None,
        description: str | None,
        raw_input: Any,
        options: Any,
        timestamp: str | None = None,
    ) -> list[Effect]:
        request = permissions.build_request(
            request_id or "",
            tool_name or "Action",
            description or "Permission required",
            raw_input or "",
            options,
        )
        return self._append(Message(type=MessageType.PERMISSION_REQUEST, content=request, timestamp=timestamp))

    @staticmethod
    def _plan_content(content: Any, file_path: str | None) -> Message:
        text = content if isinstance(content, str) else ""
        path = file_path or ""
        if text.startswith("{"):
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("plan_content is not JSON, using raw text")
            else:
                if isinstance(payload, dict):
                    text = payload.get("content") or text
                    path = payload.get("file_path") or ""
        return Message(type=MessageType.PLAN_CONTENT, content=PlanContent(text=str(text), file_path=str(path)))

    def _append(self, message: Message) -> list[Effect]:
        return self._track(self.store.append(message))

    def _track(self, effects: list[Effect]) -> list[Effect]:
        """Keep the open session's anchor in place across earlier insertions."""
        session = self.merger.session
        if session is not None:
            for effect in effects:
                if effect.type == EffectType.MESSAGE_INSERTED and effect.index is not None:
                    if effect.index <= session.anchor:
                        session.anchor += 1
        return effects

    def _find(self, kind: MessageType, request_id: str) -> int | None:
        for index in range(len(self.store) - 1, -1, -1):
            message = self.store[index]
            if message.type == kind and getattr(message.content, "request_id", None) == request_id:
                return index
        return None

    def _finish_generation(self) -> list[Effect]:
        self.generating = False
        self.timer.stop()
        return self.finalize_stream()
