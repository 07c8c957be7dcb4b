"""Error taxonomy shared by the protocol, the stores and the HTTP layer."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for every error surfaced to a chat client."""

    kind = "ChatError"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class ValidationError(ChatError):
    kind = "ValidationError"
    status_code = 400


class AccessDenied(ChatError):
    """Unknown conversation id or wrong secret. Never says which."""

    kind = "AccessDenied"
    status_code = 401

    def __init__(self, message: str = "Invalid conversation access") -> None:
        super().__init__(message)


class FeatureNotAvailable(ChatError):
    kind = "FeatureNotAvailable"
    status_code = 403


class QuotaExceeded(ChatError):
    kind = "QuotaExceeded"
    status_code = 403


class ConversationInactive(ChatError):
    kind = "ConversationInactive"
    status_code = 409


class RateLimitExceeded(ChatError):
    kind = "RateLimitExceeded"
    status_code = 429

    def __init__(self, message: str = "Too many requests. Please try again later.") -> None:
        super().__init__(message)


class UpstreamError(ChatError):
    kind = "UpstreamError"
    status_code = 502


class UpstreamTimeout(UpstreamError):
    kind = "UpstreamTimeout"


class StorageError(ChatError):
    kind = "StorageError"
    status_code = 500
