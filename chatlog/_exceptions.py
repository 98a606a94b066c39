"""Typed errors: bridge transport failures, and user actions on transcript cards."""


class ChatlogError(Exception):
    """Base exception for all chatlog errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        request_id: str | None = None,
        method: str | None = None,
        path: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        self.method = method
        self.path = path


class AuthenticationError(ChatlogError):
    """401: bridge token missing or rejected."""


class PermissionDeniedError(ChatlogError):
    """403: token lacks access to the task."""


class NotFoundError(ChatlogError):
    """404: unknown task, request or attachment."""


class ConflictError(ChatlogError):
    """409: request already answered."""


class ValidationError(ChatlogError):
    """400/422, or a call the transcript state cannot satisfy."""


class RateLimitError(ChatlogError):
    """429: too many requests."""


class APIError(ChatlogError):
    """5xx, or the bridge could not be reached."""


class TranscriptError(ValidationError):
    """A user action the current transcript cannot satisfy."""

    def __init__(self, message: str, card: str | int | None = None):
        super().__init__(message)
        self.card = card


class UnknownCardError(TranscriptError):
    """No permission, input or question card matches the id or index."""


class AlreadyAnsweredError(TranscriptError, ConflictError):
    """The card was answered already, locally or on the bridge."""


# Map HTTP status codes to exception classes.
STATUS_MAP: dict[int, type[ChatlogError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    429: RateLimitError,
}
