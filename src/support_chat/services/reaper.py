"""Periodic expiry of idle conversations."""

from __future__ import annotations

from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from support_chat.config import ReaperConfig
from support_chat.core.clock import Clock, utc_now
from support_chat.log import get_logger
from support_chat.services.base import Service
from support_chat.services.rate_limiter import RateLimiter
from support_chat.storage.conversation_repo import ConversationRepository

logger = get_logger(__name__)

JOB_ID = "timeout_sweep"


class TimeoutReaper:
    """Expires every active conversation whose sliding timeout has passed."""

    def __init__(
        self,
        conversations: ConversationRepository,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Clock = utc_now,
    ):
        self._conversations = conversations
        self._rate_limiter = rate_limiter
        self._clock = clock

    async def sweep(self) -> int:
        """Return how many conversations were expired. Re-running without new idle rows returns 0."""
        expired = await self._conversations.expire_idle(self._clock())
        logger.info("timeouts_swept", expired_count=expired)
        return expired

    async def run_maintenance(self) -> None:
        """Scheduled job body: sweep timeouts, then prune stale rate-limit windows."""
        try:
            await self.sweep()
        except Exception as e:
            logger.error("timeout_sweep_failed", error=str(e))
        if self._rate_limiter is None:
            return
        try:
            purged = await self._rate_limiter.purge_expired()
            if purged:
                logger.info("rate_limit_windows_purged", count=purged)
        except Exception as e:
            logger.error("rate_limit_purge_failed", error=str(e))


class ReaperService(Service):
    """Runs the reaper on an APScheduler interval trigger."""

    def __init__(self, reaper: TimeoutReaper, config: ReaperConfig):
        self._reaper = reaper
        self._config = config
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)

    @property
    def service_name(self) -> str:
        return "reaper"

    async def start(self) -> None:
        self._scheduler.add_job(
            self._reaper.run_maintenance,
            IntervalTrigger(minutes=self._config.interval_minutes),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("reaper_started", interval_minutes=self._config.interval_minutes)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("reaper_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    def details(self) -> dict[str, Any]:
        return {"interval_minutes": self._config.interval_minutes, "next_run": self.next_run_time()}

    def next_run_time(self) -> Optional[str]:
        job = self._scheduler.get_job(JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return str(job.next_run_time)
