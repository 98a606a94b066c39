"""
chatlog - transcript normalization and merge engine for agent sessions.

Turns streamed deltas, complete message records and status signals from an
agent bridge into one ordered, de-duplicated transcript.
"""

__version__ = "0.1.0"

from ._client import ChatLog
from ._exceptions import (
    AlreadyAnsweredError,
    APIError,
    AuthenticationError,
    ChatlogError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    TranscriptError,
    UnknownCardError,
    ValidationError,
)
from ._types import (
    Attachment,
    DiffDocument,
    DiffTally,
    Effect,
    EffectType,
    Message,
    MessageType,
    PermissionRequest,
    PlanState,
    StatusState,
    ToolInvocation,
    UserInputRequest,
)
from .engine import Outbound, TranscriptEngine
from .events import BridgeFrameAdapter, parse_event
from .merge import merge_streaming_text
from .session import LiveSession

__all__ = [
    "AlreadyAnsweredError",
    "APIError",
    "Attachment",
    "AuthenticationError",
    "BridgeFrameAdapter",
    # Main client
    "ChatLog",
    "ChatlogError",
    "ConflictError",
    "DiffDocument",
    "DiffTally",
    "Effect",
    "EffectType",
    "LiveSession",
    "Message",
    "MessageType",
    "NotFoundError",
    "Outbound",
    "PermissionDeniedError",
    "PermissionRequest",
    "PlanState",
    "RateLimitError",
    "StatusState",
    "ToolInvocation",
    "TranscriptError",
    # Core engine
    "TranscriptEngine",
    "UnknownCardError",
    "UserInputRequest",
    "ValidationError",
    "merge_streaming_text",
    "parse_event",
]
