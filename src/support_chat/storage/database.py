"""SQLite database connection manager with schema migration."""

from __future__ import annotations

import functools
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import aiosqlite

from support_chat.errors import StorageError
from support_chat.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS conversations (
    id                TEXT PRIMARY KEY,
    user_name         TEXT NOT NULL,
    user_email        TEXT NOT NULL,
    user_role         TEXT NOT NULL DEFAULT 'guest'
                      CHECK(user_role IN ('guest','user','premium','admin')),
    conversation_secret TEXT NOT NULL,
    status            TEXT NOT NULL DEFAULT 'active'
                      CHECK(status IN ('active','closed','expired')),
    is_threaded       INTEGER NOT NULL DEFAULT 0,
    thread_id         TEXT,
    close_reason      TEXT,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,
    last_activity_at  TEXT NOT NULL,
    timeout_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_conversations_timeout
    ON conversations(status, timeout_at);

CREATE TABLE IF NOT EXISTS conversation_threads (
    id                TEXT PRIMARY KEY,
    conversation_id   TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    thread_name       TEXT NOT NULL,
    created_by        TEXT NOT NULL,
    is_active         INTEGER NOT NULL DEFAULT 1,
    created_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_threads_conversation
    ON conversation_threads(conversation_id, created_at);

CREATE TABLE IF NOT EXISTS messages (
    id                TEXT PRIMARY KEY,
    conversation_id   TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    thread_id         TEXT REFERENCES conversation_threads(id),
    role              TEXT NOT NULL CHECK(role IN ('user','assistant')),
    content           TEXT NOT NULL CHECK(length(content) > 0),
    created_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation
    ON messages(conversation_id, created_at);

CREATE TABLE IF NOT EXISTS function_rate_limits (
    ip_address        TEXT NOT NULL,
    function_name     TEXT NOT NULL,
    window_start      TEXT NOT NULL,
    request_count     INTEGER NOT NULL DEFAULT 1,
    UNIQUE (ip_address, function_name)
);

CREATE INDEX IF NOT EXISTS idx_rate_limits_window
    ON function_rate_limits(window_start);
"""


def format_ts(value: datetime) -> str:
    """Render a timestamp as fixed-width UTC ISO-8601 so text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def storage_op(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Translate driver errors raised by a repository method into StorageError."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except aiosqlite.Error as e:
            logger.error("storage_error", operation=func.__qualname__, error=str(e))
            raise StorageError(f"Storage failure in {func.__name__}") from e

    return wrapper


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and run migrations."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        if self._db_path != ":memory:":
            await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("database_initialized", path=self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("Database not initialized. Call initialize() first.")
        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
