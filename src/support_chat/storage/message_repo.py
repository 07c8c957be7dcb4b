"""Append-only message log scoped to a conversation."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from support_chat.core.types import MessageRole
from support_chat.storage.database import Database, format_ts, parse_ts, storage_op
from support_chat.storage.models import Message


class MessageRepository:
    """Insert and ordered reads over the messages table. No updates, no deletes."""

    def __init__(self, db: Database):
        self._db = db

    @storage_op
    async def append(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        now: datetime,
        thread_id: Optional[str] = None,
    ) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=now,
            thread_id=thread_id,
        )
        await self._db.conn.execute(
            """INSERT INTO messages (id, conversation_id, thread_id, role, content, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (message.id, conversation_id, thread_id, str(role), content, format_ts(now)),
        )
        await self._db.conn.commit()
        return message

    @storage_op
    async def list_for_conversation(
        self, conversation_id: str, thread_id: Optional[str] = None
    ) -> list[Message]:
        """Messages in created_at order; rowid breaks ties in insertion order."""
        if thread_id:
            cursor = await self._db.conn.execute(
                """SELECT * FROM messages
                   WHERE conversation_id = ? AND thread_id = ?
                   ORDER BY created_at ASC, rowid ASC""",
                (conversation_id, thread_id),
            )
        else:
            cursor = await self._db.conn.execute(
                """SELECT * FROM messages
                   WHERE conversation_id = ?
                   ORDER BY created_at ASC, rowid ASC""",
                (conversation_id,),
            )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    @storage_op
    async def count(self, conversation_id: str, role: Optional[MessageRole] = None) -> int:
        if role is None:
            cursor = await self._db.conn.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            )
        else:
            cursor = await self._db.conn.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ? AND role = ?",
                (conversation_id, str(role)),
            )
        row = await cursor.fetchone()
        return row[0]

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            thread_id=row["thread_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            created_at=parse_ts(row["created_at"]),
        )
