"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    GUEST = "guest"
    USER = "user"
    PREMIUM = "premium"
    ADMIN = "admin"


class ConversationStatus(StrEnum):
    ACTIVE = "active"
    CLOSED = "closed"
    EXPIRED = "expired"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class CloseReason(StrEnum):
    MANUAL_CLOSE = "manual_close"
    USER_CLOSE = "user_close"
    TIMEOUT = "timeout"


class ExportFormat(StrEnum):
    JSON = "json"
    TEXT = "text"
