"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from support_chat.core.types import ConversationStatus, MessageRole, UserRole


@dataclass
class Conversation:
    id: str
    user_name: str
    user_email: str
    role: UserRole
    secret: str
    status: ConversationStatus
    created_at: datetime
    updated_at: datetime
    last_activity_at: datetime
    timeout_at: datetime
    thread_id: Optional[str] = None
    is_threaded: bool = False
    close_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE


@dataclass
class Message:
    id: str
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime
    thread_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "role": str(self.role),
            "created_at": self.created_at.isoformat(),
            "thread_id": self.thread_id,
        }


@dataclass
class ConversationThread:
    id: str
    conversation_id: str
    thread_name: str
    created_by: str
    is_active: bool
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "thread_name": self.thread_name,
            "created_by": self.created_by,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
        }
