"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from typing import Optional

from support_chat.ai.client import AIClient, create_ai_client
from support_chat.config import AppConfig
from support_chat.core.clock import Clock, utc_now
from support_chat.core.policy import RoleResolver, role_table_resolver
from support_chat.core.protocol import ChatSessionProtocol
from support_chat.log import get_logger
from support_chat.services.notifier import Notifier, create_notifier
from support_chat.services.rate_limiter import RateLimiter
from support_chat.services.reaper import ReaperService, TimeoutReaper
from support_chat.services.transcript import TranscriptExporter
from support_chat.storage.conversation_repo import ConversationRepository
from support_chat.storage.database import Database
from support_chat.storage.message_repo import MessageRepository
from support_chat.storage.thread_repo import ThreadRepository

logger = get_logger(__name__)


class SupportChatApp:
    """Top-level application orchestrator.

    ``ai_client``, ``notifier`` and ``role_resolver`` may be injected (tests,
    alternative deployments); otherwise they are built from the config. The
    default resolver reads roles from ``access.roles``.
    """

    def __init__(
        self,
        config: AppConfig,
        ai_client: Optional[AIClient] = None,
        notifier: Optional[Notifier] = None,
        clock: Clock = utc_now,
        role_resolver: Optional[RoleResolver] = None,
    ):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.conversation_repo = ConversationRepository(self.db)
        self.message_repo = MessageRepository(self.db)
        self.thread_repo = ThreadRepository(self.db)
        self.rate_limiter = RateLimiter(self.db, config.rate_limit, clock=clock)
        self.notifier = notifier or create_notifier(config.notifications)
        self.exporter = TranscriptExporter(self.notifier)
        self.ai_client = ai_client or create_ai_client(config.ai, config.anthropic, config.openai)
        self.protocol = ChatSessionProtocol(
            conversations=self.conversation_repo,
            messages=self.message_repo,
            threads=self.thread_repo,
            rate_limiter=self.rate_limiter,
            ai_client=self.ai_client,
            notifier=self.notifier,
            exporter=self.exporter,
            chat_config=config.chat,
            ai_config=config.ai,
            notification_config=config.notifications,
            clock=clock,
            role_resolver=role_resolver or role_table_resolver(config.access.roles),
        )
        self.reaper = TimeoutReaper(self.conversation_repo, self.rate_limiter, clock=clock)
        self.reaper_service = ReaperService(self.reaper, config.reaper)

    async def start(self, run_scheduler: bool = True) -> None:
        """Initialize storage and start background services."""
        await self.db.initialize()

        if run_scheduler and self.config.reaper.enabled:
            await self.reaper_service.start()

        logger.info(
            "support_chat_started",
            backend=self.config.ai.backend,
            model=self.ai_client.model_name,
            scheduler=run_scheduler and self.config.reaper.enabled,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        try:
            await self.reaper_service.stop()
        except Exception as e:
            logger.error("reaper_stop_error", error=str(e))

        await self.protocol.drain()
        await self.db.close()
        logger.info("support_chat_stopped")
