"""Dataclass models for the canonical transcript and its side state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageType(str, Enum):
    """Canonical transcript entry variants."""

    USER = "user"
    ASSISTANT = "assistant"
    REASONING = "reasoning"
    TOOL_CALL = "tool_call"
    TOOL_RETURN = "tool_return"
    DIFF = "diff"
    PERMISSION_REQUEST = "permission_request"
    USER_INPUT_REQUEST = "user_input_request"
    PLAN_UPDATE = "plan_update"
    PLAN_CONTENT = "plan_content"
    SYSTEM = "system"
    ERROR = "error"
    FILE_EDIT = "file_edit"

    @classmethod
    def parse(cls, value: Any) -> MessageType:
        """Map a raw record type (including ``*_message`` aliases) to a variant.

        Unrecognized values become ``SYSTEM``.
        """
        raw = str(value or "").strip().lower()
        if raw.endswith("_message"):
            raw = raw[: -len("_message")]
        try:
            return cls(raw)
        except ValueError:
            return cls.SYSTEM


class StreamKind(str, Enum):
    ASSISTANT = "assistant"
    REASONING = "reasoning"


class ToolState(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class PermissionState(str, Enum):
    WAITING = "waiting"
    CONFIRMED = "confirmed"
    DENIED = "denied"


class InputState(str, Enum):
    WAITING = "waiting"
    ANSWERED = "answered"


class StatusState(str, Enum):
    RUNNING = "running"
    IDLE = "idle"
    COMPLETED = "completed"
    ERROR = "error"


class DiffLineKind(str, Enum):
    META = "meta"
    HUNK = "hunk"
    ADD = "add"
    DEL = "del"
    CONTEXT = "context"


@dataclass
class Attachment:
    """An image or file attached to an outgoing user message."""

    id: str
    file_name: str
    mime_type: str
    data_ref: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Attachment:
        return cls(
            id=str(data.get("id") or ""),
            file_name=data.get("fileName") or data.get("file_name") or "",
            mime_type=data.get("mimeType") or data.get("mime_type") or "",
            data_ref=data.get("dataUrl") or data.get("dataRef") or data.get("data_ref"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fileName": self.file_name,
            "mimeType": self.mime_type,
            "dataRef": self.data_ref,
        }


@dataclass
class DiffLine:
    """One rendered row of a unified diff."""

    kind: DiffLineKind
    old_line: int | None
    new_line: int | None
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "oldLineNumber": self.old_line,
            "newLineNumber": self.new_line,
            "text": self.text,
        }


@dataclass
class DiffDocument:
    """A parsed unified diff block."""

    text: str
    lines: list[DiffLine]
    title: str = "Diff"

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines if line.kind == DiffLineKind.ADD)

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if line.kind == DiffLineKind.DEL)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "additions": self.additions,
            "deletions": self.deletions,
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass
class DiffTally:
    """Running additions/deletions across every diff rendered since the last clear."""

    additions: int = 0
    deletions: int = 0

    def add(self, document: DiffDocument) -> None:
        self.additions += document.additions
        self.deletions += document.deletions

    def reset(self) -> None:
        self.additions = 0
        self.deletions = 0

    @property
    def has_changes(self) -> bool:
        return self.additions > 0 or self.deletions > 0

    def to_dict(self) -> dict[str, int]:
        return {"additions": self.additions, "deletions": self.deletions}


@dataclass
class QuestionOption:
    label: str
    description: str = ""


@dataclass
class Question:
    """A single question on a user-input card."""

    id: str
    header: str
    question: str
    options: list[QuestionOption] = field(default_factory=list)
    multi_select: bool = False

    @property
    def is_freeform(self) -> bool:
        return not self.options

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "header": self.header,
            "question": self.question,
            "options": [{"label": o.label, "description": o.description} for o in self.options],
            "multiSelect": self.multi_select,
        }


@dataclass
class ToolInvocation:
    """A tool call awaiting (or holding) its result."""

    name: str
    arguments: Any
    state: ToolState = ToolState.PENDING
    result: str | None = None
    questions: list[Question] | None = None
    answered: bool = False

    @property
    def is_pending(self) -> bool:
        return self.state == ToolState.PENDING

    def complete(self, result: str | None = None) -> None:
        self.state = ToolState.COMPLETE
        self.result = result

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "arguments": self.arguments,
            "state": self.state.value,
            "result": self.result,
        }
        if self.questions is not None:
            data["questions"] = [q.to_dict() for q in self.questions]
            data["answered"] = self.answered
        return data


@dataclass
class PermissionOption:
    """A response choice offered on a permission card."""

    id: str
    label: str = ""
    kind: str = ""
    style: str = ""
    shortcut: str = ""
    icon: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> PermissionOption:
        return cls(
            id=str(data.get("id") or data.get("optionId") or ""),
            label=str(data.get("label") or data.get("name") or ""),
            kind=str(data.get("kind") or ""),
            style=str(data.get("style") or ""),
            shortcut=str(data.get("shortcut") or ""),
            icon=str(data.get("icon") or ""),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind,
            "style": self.style,
            "shortcut": self.shortcut,
        }


@dataclass
class PermissionRequest:
    """A prompt that must be answered before the agent action proceeds."""

    request_id: str
    tool_name: str
    action_label: str
    command: str
    reason: str
    amendment: str
    raw_details: str
    options: list[PermissionOption] = field(default_factory=list)
    state: PermissionState = PermissionState.WAITING

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "toolName": self.tool_name,
            "actionLabel": self.action_label,
            "command": self.command,
            "reason": self.reason,
            "amendment": self.amendment,
            "rawDetails": self.raw_details,
            "options": [o.to_dict() for o in self.options],
            "state": self.state.value,
        }


@dataclass
class UserInputRequest:
    """A question card raised by the agent (``user_input_request``)."""

    request_id: str
    questions: list[Question]
    state: InputState = InputState.WAITING

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "questions": [q.to_dict() for q in self.questions],
            "state": self.state.value,
        }


@dataclass
class PlanStep:
    text: str
    status: str = "pending"


@dataclass
class PlanState:
    """The plan/progress side surface, replaced wholesale on every plan update."""

    explanation: str | None = None
    steps: list[PlanStep] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.steps)

    @property
    def completed(self) -> int:
        return sum(1 for step in self.steps if step.status == "completed")

    def current_step(self) -> PlanStep | None:
        """First in-progress step, else first pending, else the last one."""
        if not self.steps:
            return None
        for status in ("inProgress", "pending"):
            for step in self.steps:
                if step.status == status:
                    return step
        return self.steps[-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "explanation": self.explanation,
            "steps": [{"text": s.text, "status": s.status} for s in self.steps],
        }


@dataclass
class PlanContent:
    """Plan markdown surfaced as an assistant-styled note."""

    text: str
    file_path: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "filePath": self.file_path}


@dataclass
class FileEdit:
    file_path: str
    preview: str

    def to_dict(self) -> dict[str, str]:
        return {"filePath": self.file_path, "preview": self.preview}


@dataclass
class ReviewContext:
    """Branch state gathered for a code review of a task's changes."""

    current_branch: str
    base_branch: str
    commit_log: str = ""
    diff: str = ""
    diff_truncated: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> ReviewContext:
        return cls(
            current_branch=data.get("current_branch") or data.get("currentBranch") or "HEAD",
            base_branch=data.get("base_branch") or data.get("baseBranch") or "main",
            commit_log=data.get("commit_log") or data.get("commitLog") or "",
            diff=data.get("diff") or "",
            diff_truncated=bool(data.get("diff_truncated") or data.get("diffTruncated")),
        )


@dataclass
class StreamingSession:
    """The single in-flight streamed utterance."""

    kind: StreamKind
    item_id: str | None
    text: str = ""
    anchor: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "itemId": self.item_id,
            "text": self.text,
        }


@dataclass
class Message:
    """Canonical transcript entry.

    ``content`` is plain text for text variants, otherwise the variant's
    structured payload (``ToolInvocation``, ``DiffDocument``,
    ``PermissionRequest``, ``UserInputRequest``, ``PlanContent``, ``FileEdit``).
    """

    type: MessageType
    content: Any
    timestamp: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    rendered: Any = None

    @property
    def text(self) -> str:
        """Plain text view of the content, for text variants."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, PlanContent):
            return self.content.text
        return ""

    def to_dict(self) -> dict[str, Any]:
        content = self.content
        if hasattr(content, "to_dict"):
            content = content.to_dict()
        data: dict[str, Any] = {"type": self.type.value, "content": content}
        if self.timestamp:
            data["timestamp"] = self.timestamp
        if self.attachments:
            data["attachments"] = [a.to_dict() for a in self.attachments]
        return data


class EffectType(str, Enum):
    """Kinds of render instructions produced by a state transition."""

    MESSAGE_APPENDED = "message_appended"
    MESSAGE_INSERTED = "message_inserted"
    MESSAGE_UPDATED = "message_updated"
    STREAM_UPDATED = "stream_updated"
    STREAM_FINALIZED = "stream_finalized"
    PLAN_UPDATED = "plan_updated"
    STATUS_CHANGED = "status_changed"
    TALLY_CHANGED = "tally_changed"
    TRANSCRIPT_CLEARED = "transcript_cleared"
    NOTIFICATION = "notification"


@dataclass
class Effect:
    """One thing a renderer must do after an event was applied.

    ``index`` is the transcript position for message effects; ``payload``
    carries the session, plan, tally, status or notification text.
    """

    type: EffectType
    index: int | None = None
    message: Message | None = None
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.index is not None:
            data["index"] = self.index
        if self.message is not None:
            data["message"] = self.message.to_dict()
        if self.payload is not None:
            payload = self.payload
            data["payload"] = payload.to_dict() if hasattr(payload, "to_dict") else payload
        return data
