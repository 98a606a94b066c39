"""
Inbound event normalization.

Producers deliver two families of loosely-typed dicts:

* streaming deltas, ``{"type": "streaming", "message_type": "text_chunk", ...}``
  (the ``type`` key may be missing), and
* complete message records, ``{"type": "assistant", "content": ...}`` where
  the type may also sit in ``message_type`` and carry a ``_message`` suffix.

``InboundEvent.from_dict`` turns either into a typed event before any
transcript logic runs. ``BridgeFrameAdapter`` translates raw agent bridge
frames (content-block deltas, assistant content blocks, permission prompts)
into those two shapes.
"""

from __future__ import annotations

from collections.abc import Generator, Iterable
from dataclasses import dataclass, field
from enum import Enum
import json
import logging
from typing import Any

from ._types import MessageType, StatusState

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Streaming delta kinds (the ``message_type`` of a delta)."""

    TEXT_CHUNK = "text_chunk"
    REASONING_CHUNK = "reasoning_chunk"
    TOOL_CALL = "tool_call"
    TOOL_RETURN = "tool_return"
    STATUS = "status"
    PERMISSION_REQUEST = "permission_request"
    USER_INPUT_REQUEST = "user_input_request"
    PLAN_UPDATE = "plan_update"
    PLAN_CONTENT = "plan_content"

    UNKNOWN = "unknown"


# Delta kinds that never appear as record types, so a bare ``message_type``
# of one of these always means a delta.
_DELTA_ONLY = {EventType.TEXT_CHUNK, EventType.REASONING_CHUNK, EventType.STATUS}


@dataclass
class InboundEvent:
    """Base class for all inbound events."""

    raw: dict[str, Any]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InboundEvent:
        """Classify a raw inbound dict.

        Returns:
            ``StatusSignal`` when the dict carries a status state,
            ``StreamDelta`` for streaming fragments, otherwise ``MessageRecord``
        """
        if not isinstance(data, dict):
            logger.debug("Ignoring non-mapping inbound event: %r", data)
            return MessageRecord(raw={}, type=MessageType.SYSTEM, content="")

        state = data.get("status_state") or data.get("statusState")
        if state is not None:
            return StatusSignal(
                raw=data,
                text=str(data.get("status") or data.get("content") or ""),
                state=_parse_state(state),
            )

        declared = data.get("type")
        message_type = data.get("message_type")
        if declared == "streaming" or (not declared and _is_delta_only(message_type)):
            return StreamDelta.from_dict(data)

        return MessageRecord.from_dict(data)


@dataclass
class StreamDelta(InboundEvent):
    """Incremental update for the live transcript."""

    type: EventType = EventType.UNKNOWN
    content: Any = ""
    item_id: str | None = None
    name: str | None = None
    arguments: Any = None
    request_id: str | None = None
    tool_name: str | None = None
    description: str | None = None
    raw_input: Any = None
    options: list[Any] = field(default_factory=list)
    questions: Any = None
    file_path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamDelta:
        try:
            event_type = EventType(data.get("message_type", "unknown"))
        except ValueError:
            event_type = EventType.UNKNOWN

        options = data.get("options")
        return cls(
            raw=data,
            type=event_type,
            content=data.get("content") if data.get("content") is not None else "",
            item_id=data.get("item_id") or None,
            name=data.get("name"),
            arguments=data.get("arguments"),
            request_id=data.get("request_id"),
            tool_name=data.get("tool_name"),
            description=data.get("description"),
            raw_input=data.get("raw_input"),
            options=options if isinstance(options, list) else [],
            questions=data.get("questions"),
            file_path=data.get("file_path"),
        )

    @property
    def text(self) -> str:
        return self.content if isinstance(self.content, str) else str(self.content or "")


@dataclass
class MessageRecord(InboundEvent):
    """A complete message, from a batch load or a single live update."""

    type: MessageType = MessageType.SYSTEM
    content: Any = ""
    timestamp: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageRecord:
        raw_type = data.get("type") or data.get("message_type") or "system"
        content = data.get("content") or data.get("text") or ""
        timestamp = data.get("timestamp")
        return cls(
            raw=data,
            type=MessageType.parse(raw_type),
            content=content,
            timestamp=str(timestamp) if timestamp is not None else None,
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Variant-specific field from the raw record."""
        value = self.raw.get(key)
        return default if value is None else value

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return _to_json(self.content)


@dataclass
class StatusSignal(InboundEvent):
    """``(statusText, statusState)`` pair from the producer."""

    text: str = ""
    state: StatusState = StatusState.RUNNING


def _is_delta_only(message_type: Any) -> bool:
    try:
        return EventType(message_type) in _DELTA_ONLY
    except ValueError:
        return False


def _parse_state(value: Any) -> StatusState:
    try:
        return StatusState(str(value).lower())
    except ValueError:
        logger.debug("Unknown status state %r, treating as idle", value)
        return StatusState.IDLE


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


class BridgeFrameAdapter:
    """Translate agent bridge frames into inbound event dicts.

    Frames the transcript has no use for (session bookkeeping, auth status,
    tool progress) translate to nothing.
    """

    EXIT_PLAN_MODE = "ExitPlanMode"

    # Frame types that never collide with record types.
    FRAME_TYPES = {
        "stream_event",
        "status_change",
        "result",
        "message_history",
        "user_message",
        "session_init",
        "session_update",
        "permission_cancelled",
        "tool_progress",
        "tool_use_summary",
        "auth_status",
        "cli_connected",
        "cli_disconnected",
    }

    @classmethod
    def is_frame(cls, data: Any) -> bool:
        """Tell a bridge frame apart from an already-normalized inbound event."""
        if not isinstance(data, dict):
            return False
        frame_type = data.get("type")
        if frame_type in cls.FRAME_TYPES:
            return True
        if frame_type == "assistant":
            return isinstance(data.get("message"), dict)
        if frame_type == "permission_request":
            return isinstance(data.get("request"), dict)
        if frame_type == "error":
            return "message" in data and "content" not in data
        return False

    @classmethod
    def normalize(cls, data: dict[str, Any]) -> list[dict[str, Any]]:
        """Inbound event dicts for ``data``, translating it first when it is a frame."""
        if cls.is_frame(data):
            return cls.translate(data)
        return [data]

    @classmethod
    def translate(cls, frame: dict[str, Any]) -> list[dict[str, Any]]:
        if not isinstance(frame, dict):
            return []

        frame_type = frame.get("type")
        if frame_type == "stream_event":
            return cls._stream_event(frame.get("event"))
        if frame_type == "assistant":
            return cls._assistant(frame.get("message"))
        if frame_type == "permission_request":
            return cls._permission_request(frame.get("request"))
        if frame_type == "status_change":
            status = frame.get("status")
            if status:
                return [{"status": str(status), "status_state": "running"}]
            return [{"status": "Ready", "status_state": "idle"}]
        if frame_type == "result":
            return [{"status": "Completed", "status_state": "completed"}]
        if frame_type == "error":
            return [{"type": "error", "content": str(frame.get("message") or "")}]
        if frame_type == "user_message":
            return [
                {
                    "type": "user",
                    "content": frame.get("content") or "",
                    "timestamp": frame.get("timestamp"),
                }
            ]
        if frame_type == "message_history":
            translated: list[dict[str, Any]] = []
            for message in frame.get("messages") or []:
                translated.extend(cls.translate(message))
            return translated

        logger.debug("Ignoring bridge frame of type %r", frame_type)
        return []

    @classmethod
    def translate_all(cls, frames: Iterable[dict[str, Any]]) -> Generator[dict[str, Any], None, None]:
        for frame in frames:
            yield from cls.translate(frame)

    @staticmethod
    def _stream_event(event: Any) -> list[dict[str, Any]]:
        if not isinstance(event, dict) or event.get("type") != "content_block_delta":
            return []
        delta = event.get("delta")
        if not isinstance(delta, dict):
            return []

        if delta.get("type") == "text_delta" and isinstance(delta.get("text"), str):
            return [
                {
                    "type": "streaming",
                    "message_type": "text_chunk",
                    "content": delta["text"],
                    "item_id": None,
                }
            ]
        if delta.get("type") == "thinking_delta":
            thinking = delta.get("thinking")
            if not isinstance(thinking, str):
                thinking = delta.get("text") if isinstance(delta.get("text"), str) else None
            if thinking:
                return [{"type": "streaming", "message_type": "reasoning_chunk", "content": thinking}]
        return []

    @staticmethod
    def _assistant(message: Any) -> list[dict[str, Any]]:
        blocks = message.get("content") if isinstance(message, dict) else None
        if not isinstance(blocks, list):
            return []

        updates: list[dict[str, Any]] = []
        for block in blocks:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "tool_use":
                updates.append(
                    {
                        "type": "streaming",
                        "message_type": "tool_call",
                        "name": block.get("name") or "tool",
                        "arguments": _to_json(block["input"]) if block.get("input") else "{}",
                    }
                )
            elif block_type == "tool_result":
                content = block.get("content", block.get("output", ""))
                updates.append(
                    {
                        "type": "streaming",
                        "message_type": "tool_return",
                        "content": content if isinstance(content, str) else _to_json(content),
                    }
                )
            elif block_type == "thinking":
                thinking = block.get("thinking")
                if isinstance(thinking, str) and thinking.strip():
                    updates.append(
                        {"type": "streaming", "message_type": "reasoning_chunk", "content": thinking}
                    )
        return updates

    @classmethod
    def _permission_request(cls, request: Any) -> list[dict[str, Any]]:
        if not isinstance(request, dict):
            return []

        if request.get("tool_name") == cls.EXIT_PLAN_MODE:
            tool_input = request.get("input") or {}
            if isinstance(tool_input, str):
                try:
                    tool_input = json.loads(tool_input)
                except json.JSONDecodeError:
                    logger.debug("ExitPlanMode input is not JSON")
                    tool_input = {}
            if not isinstance(tool_input, dict):
                tool_input = {}
            plan = tool_input.get("plan")
            allowed = tool_input.get("allowedPrompts")
            return [
                {
                    "type": "streaming",
                    "message_type": "plan_content",
                    "content": plan if isinstance(plan, str) else "",
                    "request_id": request.get("request_id") or "",
                    "allowed_prompts": allowed if isinstance(allowed, list) else [],
                }
            ]

        options = request.get("options")
        if not isinstance(options, list):
            options = request.get("permission_suggestions")
        return [
            {
                "type": "streaming",
                "message_type": "permission_request",
                "request_id": request.get("request_id") or "",
                "tool_name": request.get("tool_name") or "tool",
                "description": request.get("description") or None,
                "raw_input": _to_json(request["input"]) if request.get("input") else None,
                "options": options if isinstance(options, list) else [],
            }
        ]


def parse_event(data: dict[str, Any]) -> InboundEvent:
    return InboundEvent.from_dict(data)
