"""Conversation repository: identity, secret, status and sliding timeout."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from support_chat.core.types import ConversationStatus, UserRole
from support_chat.log import get_logger
from support_chat.storage.database import Database, format_ts, parse_ts, storage_op
from support_chat.storage.models import Conversation

logger = get_logger(__name__)


class ConversationRepository:
    """CRUD and lifecycle transitions over the conversations table."""

    def __init__(self, db: Database):
        self._db = db

    @storage_op
    async def create(
        self,
        user_name: str,
        user_email: str,
        role: UserRole,
        secret: str,
        now: datetime,
        timeout_at: datetime,
    ) -> Conversation:
        """Insert a new active conversation and return it."""
        conversation = Conversation(
            id=str(uuid.uuid4()),
            user_name=user_name,
            user_email=user_email,
            role=role,
            secret=secret,
            status=ConversationStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            last_activity_at=now,
            timeout_at=timeout_at,
        )
        await self._db.conn.execute(
            """INSERT INTO conversations
               (id, user_name, user_email, user_role, conversation_secret, status,
                created_at, updated_at, last_activity_at, timeout_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                conversation.id,
                user_name,
                user_email,
                str(role),
                secret,
                str(conversation.status),
                format_ts(now),
                format_ts(now),
                format_ts(now),
                format_ts(timeout_at),
            ),
        )
        await self._db.conn.commit()
        logger.info("conversation_created", conversation_id=conversation.id, role=str(role))
        return conversation

    @storage_op
    async def get(self, conversation_id: str) -> Optional[Conversation]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_conversation(row) if row else None

    @storage_op
    async def touch(self, conversation_id: str, now: datetime, timeout_at: datetime) -> None:
        """Record activity and push the timeout forward."""
        await self._db.conn.execute(
            """UPDATE conversations
               SET last_activity_at = ?, timeout_at = ?, updated_at = ?
               WHERE id = ?""",
            (format_ts(now), format_ts(timeout_at), format_ts(now), conversation_id),
        )
        await self._db.conn.commit()

    @storage_op
    async def finish(
        self,
        conversation_id: str,
        status: ConversationStatus,
        now: datetime,
        reason: Optional[str] = None,
    ) -> bool:
        """Move an active conversation to a terminal status. False if it was not active."""
        cursor = await self._db.conn.execute(
            """UPDATE conversations
               SET status = ?, close_reason = ?, updated_at = ?
               WHERE id = ? AND status = 'active'""",
            (str(status), reason, format_ts(now), conversation_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount > 0

    @storage_op
    async def expire_idle(self, now: datetime) -> int:
        """Expire every active conversation whose timeout has passed."""
        cursor = await self._db.conn.execute(
            """UPDATE conversations
               SET status = 'expired', close_reason = 'timeout', updated_at = ?
               WHERE status = 'active' AND timeout_at < ?""",
            (format_ts(now), format_ts(now)),
        )
        await self._db.conn.commit()
        return cursor.rowcount

    @storage_op
    async def set_current_thread(
        self, conversation_id: str, thread_id: Optional[str], now: datetime
    ) -> None:
        await self._db.conn.execute(
            """UPDATE conversations
               SET thread_id = ?, is_threaded = CASE WHEN ? IS NULL THEN is_threaded ELSE 1 END,
                   updated_at = ?
               WHERE id = ?""",
            (thread_id, thread_id, format_ts(now), conversation_id),
        )
        await self._db.conn.commit()

    @staticmethod
    def _row_to_conversation(row) -> Conversation:
        return Conversation(
            id=row["id"],
            user_name=row["user_name"],
            user_email=row["user_email"],
            role=UserRole(row["user_role"]),
            secret=row["conversation_secret"],
            status=ConversationStatus(row["status"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
            last_activity_at=parse_ts(row["last_activity_at"]),
            timeout_at=parse_ts(row["timeout_at"]),
            thread_id=row["thread_id"],
            is_threaded=bool(row["is_threaded"]),
            close_reason=row["close_reason"],
        )
