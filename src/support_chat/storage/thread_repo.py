"""Named sub-threads within a conversation."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from support_chat.storage.database import Database, format_ts, parse_ts, storage_op
from support_chat.storage.models import ConversationThread


class ThreadRepository:
    def __init__(self, db: Database):
        self._db = db

    @storage_op
    async def create(
        self, conversation_id: str, thread_name: str, created_by: str, now: datetime
    ) -> ConversationThread:
        thread = ConversationThread(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            thread_name=thread_name,
            created_by=created_by,
            is_active=True,
            created_at=now,
        )
        await self._db.conn.execute(
            """INSERT INTO conversation_threads
               (id, conversation_id, thread_name, created_by, is_active, created_at)
               VALUES (?, ?, ?, ?, 1, ?)""",
            (thread.id, conversation_id, thread_name, created_by, format_ts(now)),
        )
        await self._db.conn.commit()
        return thread

    @storage_op
    async def get(self, conversation_id: str, thread_id: str) -> Optional[ConversationThread]:
        """Fetch a thread only if it belongs to the given conversation."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM conversation_threads WHERE id = ? AND conversation_id = ?",
            (thread_id, conversation_id),
        )
        row = await cursor.fetchone()
        return self._row_to_thread(row) if row else None

    @storage_op
    async def list_for_conversation(
        self, conversation_id: str, active_only: bool = True
    ) -> list[ConversationThread]:
        query = "SELECT * FROM conversation_threads WHERE conversation_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at ASC, rowid ASC"
        cursor = await self._db.conn.execute(query, (conversation_id,))
        rows = await cursor.fetchall()
        return [self._row_to_thread(row) for row in rows]

    @storage_op
    async def deactivate(self, thread_id: str) -> bool:
        cursor = await self._db.conn.execute(
            "UPDATE conversation_threads SET is_active = 0 WHERE id = ? AND is_active = 1",
            (thread_id,),
        )
        await self._db.conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_thread(row) -> ConversationThread:
        return ConversationThread(
            id=row["id"],
            conversation_id=row["conversation_id"],
            thread_name=row["thread_name"],
            created_by=row["created_by"],
            is_active=bool(row["is_active"]),
            created_at=parse_ts(row["created_at"]),
        )
