"""Per-IP, per-function request windows stored in SQLite."""

from __future__ import annotations

from datetime import timedelta

import aiosqlite

from support_chat.config import RateLimitConfig
from support_chat.core.clock import Clock, utc_now
from support_chat.errors import StorageError
from support_chat.log import get_logger
from support_chat.storage.database import Database, format_ts

logger = get_logger(__name__)


class RateLimiter:
    """Caps requests per (ip, function) within a fixed-length window.

    The increment is a single ``INSERT ... ON CONFLICT DO UPDATE ... WHERE``
    statement, so concurrent checks for one key can never both slip past the
    cap. Storage failures allow the request.
    """

    def __init__(self, db: Database, config: RateLimitConfig, clock: Clock = utc_now):
        self._db = db
        self._window = timedelta(seconds=config.window_seconds)
        self._max_requests = config.max_requests
        self._clock = clock

    async def check(self, ip_address: str, function_name: str) -> bool:
        """Count this request and return whether it is within budget."""
        now = self._clock()
        cutoff = format_ts(now - self._window)
        try:
            await self._db.conn.execute(
                """DELETE FROM function_rate_limits
                   WHERE ip_address = ? AND function_name = ? AND window_start <= ?""",
                (ip_address, function_name, cutoff),
            )
            rows = await self._db.conn.execute_fetchall(
                """INSERT INTO function_rate_limits
                       (ip_address, function_name, window_start, request_count)
                   VALUES (?, ?, ?, 1)
                   ON CONFLICT(ip_address, function_name)
                   DO UPDATE SET request_count = request_count + 1
                   WHERE request_count < ?
                   RETURNING request_count""",
                (ip_address, function_name, format_ts(now), self._max_requests),
            )
            await self._db.conn.commit()
        except (aiosqlite.Error, StorageError) as e:
            logger.error(
                "rate_limit_storage_error",
                ip=ip_address,
                function=function_name,
                error=str(e),
            )
            return True

        if not rows:
            logger.warning("rate_limit_exceeded", ip=ip_address, function=function_name)
            return False
        return True

    async def purge_expired(self) -> int:
        """Delete every window older than the window length."""
        cutoff = format_ts(self._clock() - self._window)
        cursor = await self._db.conn.execute(
            "DELETE FROM function_rate_limits WHERE window_start <= ?", (cutoff,)
        )
        await self._db.conn.commit()
        return cursor.rowcount
