"""Chat session protocol: registration, message exchange, history, close, export, threads."""

from __future__ import annotations

import asyncio
import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from support_chat.ai.client import AIClient
from support_chat.ai.conversation import build_messages, build_system_prompt
from support_chat.config import AIConfig, ChatConfig, NotificationConfig
from support_chat.core import policy
from support_chat.core.clock import Clock, utc_now
from support_chat.core.types import (
    CloseReason,
    ConversationStatus,
    ExportFormat,
    MessageRole,
    UserRole,
)
from support_chat.errors import (
    AccessDenied,
    ChatError,
    ConversationInactive,
    FeatureNotAvailable,
    QuotaExceeded,
    RateLimitExceeded,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)
from support_chat.log import get_logger
from support_chat.services.notifier import Notifier, staff_notification_html
from support_chat.services.rate_limiter import RateLimiter
from support_chat.services.transcript import ExportedTranscript, TranscriptExporter
from support_chat.storage.conversation_repo import ConversationRepository
from support_chat.storage.message_repo import MessageRepository
from support_chat.storage.models import Conversation, ConversationThread, Message
from support_chat.storage.thread_repo import ThreadRepository

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_THREAD_NAME_LENGTH = 100


def generate_conversation_secret() -> str:
    """64 hex characters from 32 random bytes."""
    return secrets.token_hex(32)


@dataclass(frozen=True, slots=True)
class ChatIdentity:
    name: str
    email: str
    role: UserRole = UserRole.GUEST


@dataclass(frozen=True, slots=True)
class SendResult:
    reply: str
    conversation_id: str
    secret: str


class ChatSessionProtocol:
    """Drives one chat turn end-to-end and enforces secret-based access control."""

    def __init__(
        self,
        conversations: ConversationRepository,
        messages: MessageRepository,
        threads: ThreadRepository,
        rate_limiter: RateLimiter,
        ai_client: AIClient,
        notifier: Notifier,
        exporter: TranscriptExporter,
        chat_config: ChatConfig,
        ai_config: AIConfig,
        notification_config: NotificationConfig,
        clock: Clock = utc_now,
        role_resolver: Optional[policy.RoleResolver] = None,
    ):
        self._conversations = conversations
        self._messages = messages
        self._threads = threads
        self._rate_limiter = rate_limiter
        self._ai_client = ai_client
        self._notifier = notifier
        self._exporter = exporter
        self._chat_config = chat_config
        self._ai_config = ai_config
        self._notification_config = notification_config
        self._clock = clock
        self._resolve_role = role_resolver or policy.role_table_resolver({})
        self._background: set[asyncio.Task[None]] = set()

    # ── registration ────────────────────────────────────────────

    def register(self, name: str, email: str) -> ChatIdentity:
        """Validate the visitor's name and e-mail and return the identity to chat as."""
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise ValidationError("Please enter your name.")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Please enter a valid email address.")
        return ChatIdentity(name=name, email=email, role=self._resolve_role(email))

    # ── message exchange ────────────────────────────────────────

    async def send_message(
        self,
        conversation_id: Optional[str],
        secret: Optional[str],
        identity: Optional[ChatIdentity],
        text: str,
        ip_address: str,
        thread_id: Optional[str] = None,
    ) -> SendResult:
        text = self._validate_text(text)
        if not conversation_id:
            if identity is None:
                raise ValidationError("Name and email are required to start a conversation.")
            if thread_id:
                raise ValidationError("A new conversation has no threads yet.")

        if not await self._rate_limiter.check(ip_address, self._chat_config.function_name):
            raise RateLimitExceeded()

        now = self._clock()
        if not conversation_id:
            conversation = await self._conversations.create(
                user_name=identity.name,
                user_email=identity.email,
                role=identity.role,
                secret=generate_conversation_secret(),
                now=now,
                timeout_at=self._timeout_from(now, identity.role),
            )
        else:
            conversation = await self._authorize(conversation_id, secret)
            await self._require_active(conversation, now)
            user_count = await self._messages.count(conversation.id, MessageRole.USER)
            if not policy.within_message_limit(conversation.role, user_count):
                raise QuotaExceeded(
                    f"Message limit of {policy.message_limit(conversation.role)} reached "
                    f"for {conversation.role} conversations."
                )

        if thread_id:
            thread = await self._threads.get(conversation.id, thread_id)
            if thread is None or not thread.is_active:
                raise ValidationError("Unknown or closed thread.")

        await self._messages.append(conversation.id, MessageRole.USER, text, now, thread_id)
        if self._chat_config.staff_notification:
            self._spawn(self._notify_staff(conversation, text))
        await self._conversations.touch(
            conversation.id, now, self._timeout_from(now, conversation.role)
        )

        history = await self._messages.list_for_conversation(conversation.id)
        reply = await self._complete(conversation, history)

        await self._messages.append(
            conversation.id, MessageRole.ASSISTANT, reply, self._clock(), thread_id
        )
        logger.info(
            "chat_turn_completed",
            conversation_id=conversation.id,
            history_length=len(history) + 1,
        )

        return SendResult(reply=reply, conversation_id=conversation.id, secret=conversation.secret)

    async def get_history(
        self, conversation_id: str, secret: str, thread_id: Optional[str] = None
    ) -> list[Message]:
        """All messages of a conversation in order. Allowed in any status."""
        conversation = await self._authorize(conversation_id, secret)
        return await self._messages.list_for_conversation(conversation.id, thread_id)

    # ── lifecycle ───────────────────────────────────────────────

    async def close_conversation(
        self,
        conversation_id: str,
        secret: str,
        reason: CloseReason | str = CloseReason.USER_CLOSE,
        send_transcript: bool = True,
    ) -> Conversation:
        """Close an active conversation. Closing a finished one changes nothing."""
        try:
            reason = CloseReason(reason)
        except ValueError:
            raise ValidationError(f"Unknown close reason: {reason}") from None

        conversation = await self._authorize(conversation_id, secret)
        now = self._clock()
        closed = await self._conversations.finish(
            conversation.id, ConversationStatus.CLOSED, now, reason=str(reason)
        )
        if not closed:
            return conversation

        logger.info("conversation_closed", conversation_id=conversation.id, reason=str(reason))
        if send_transcript:
            history = await self._messages.list_for_conversation(conversation.id)
            self._spawn(
                self._exporter.deliver(
                    conversation.user_name, conversation.user_email, history, reason, now
                ),
                event="transcript_delivery_failed",
                conversation_id=conversation.id,
            )
        refreshed = await self._conversations.get(conversation.id)
        return refreshed or conversation

    async def export_transcript(
        self, conversation_id: str, secret: str, fmt: ExportFormat | str
    ) -> ExportedTranscript:
        try:
            fmt = ExportFormat(fmt)
        except ValueError:
            raise ValidationError(f"Unsupported export format: {fmt}") from None

        conversation = await self._authorize(conversation_id, secret)
        if not policy.can_export(conversation.role):
            raise FeatureNotAvailable("Conversation export requires a registered account.")

        history = await self._messages.list_for_conversation(conversation.id)
        return self._exporter.render(
            fmt,
            conversation.user_name,
            conversation.user_email,
            conversation.id,
            history,
            self._clock(),
        )

    # ── threads ─────────────────────────────────────────────────

    async def create_thread(
        self, conversation_id: str, secret: str, thread_name: str, created_by: str
    ) -> ConversationThread:
        thread_name = (thread_name or "").strip()
        if not thread_name:
            raise ValidationError("Please enter a thread name.")
        if len(thread_name) > MAX_THREAD_NAME_LENGTH:
            raise ValidationError(
                f"Thread name too long. Maximum {MAX_THREAD_NAME_LENGTH} characters allowed."
            )

        conversation = await self._authorize(conversation_id, secret)
        now = self._clock()
        await self._require_active(conversation, now)
        if not policy.can_use_threading(conversation.role):
            raise FeatureNotAvailable("Threads are not available for this conversation.")

        thread = await self._threads.create(conversation.id, thread_name, created_by, now)
        await self._conversations.set_current_thread(conversation.id, thread.id, now)
        logger.info("thread_created", conversation_id=conversation.id, thread_id=thread.id)
        return thread

    async def close_thread(
        self, conversation_id: str, secret: str, thread_id: str, requested_by: str
    ) -> ConversationThread:
        conversation = await self._authorize(conversation_id, secret)
        thread = await self._threads.get(conversation.id, thread_id)
        if thread is None:
            raise ValidationError("Unknown thread.")
        if thread.created_by != requested_by:
            raise AccessDenied("Only the thread creator can close it.")

        if thread.is_active:
            await self._threads.deactivate(thread.id)
            thread.is_active = False
            if conversation.thread_id == thread.id:
                await self._conversations.set_current_thread(conversation.id, None, self._clock())
            logger.info("thread_closed", conversation_id=conversation.id, thread_id=thread.id)
        return thread

    async def list_threads(
        self, conversation_id: str, secret: str, active_only: bool = True
    ) -> list[ConversationThread]:
        conversation = await self._authorize(conversation_id, secret)
        return await self._threads.list_for_conversation(conversation.id, active_only)

    # ── background work ─────────────────────────────────────────

    async def drain(self) -> None:
        """Wait for outstanding notification and transcript tasks."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, coro, event: str = "staff_notification_failed", **context: str) -> None:
        async def _guarded() -> None:
            try:
                await coro
            except Exception as e:
                logger.error(event, error=str(e), **context)

        task = asyncio.create_task(_guarded())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _notify_staff(self, conversation: Conversation, text: str) -> None:
        recipients = self._notification_config.staff_addresses
        if not recipients:
            return
        await self._notifier.send(
            recipients,
            f"New chat message from {conversation.user_name}",
            staff_notification_html(
                conversation.user_name, conversation.user_email, conversation.id, text
            ),
        )

    # ── helpers ─────────────────────────────────────────────────

    def _validate_text(self, text: str) -> str:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty.")
        limit = self._chat_config.max_message_length
        if len(text) > limit:
            raise ValidationError(f"Message too long. Maximum {limit} characters allowed.")
        return text

    async def _authorize(self, conversation_id: Optional[str], secret: Optional[str]) -> Conversation:
        if not conversation_id or not secret:
            raise AccessDenied()
        conversation = await self._conversations.get(conversation_id)
        # Compare against a dummy when the id is unknown so both paths do the same work.
        stored = conversation.secret if conversation else generate_conversation_secret()
        if not hmac.compare_digest(stored.encode(), secret.encode()) or conversation is None:
            logger.warning("conversation_access_denied", conversation_id=conversation_id)
            raise AccessDenied()
        return conversation

    async def _require_active(self, conversation: Conversation, now: datetime) -> None:
        if conversation.is_active and now > conversation.timeout_at:
            await self._conversations.finish(
                conversation.id, ConversationStatus.EXPIRED, now, reason=str(CloseReason.TIMEOUT)
            )
            conversation.status = ConversationStatus.EXPIRED
            logger.info("conversation_expired_on_access", conversation_id=conversation.id)
        if not conversation.is_active:
            raise ConversationInactive(f"This conversation is {conversation.status}.")

    @staticmethod
    def _timeout_from(now: datetime, role: UserRole) -> datetime:
        return now + timedelta(minutes=policy.timeout_minutes(role))

    async def _complete(self, conversation: Conversation, history: list[Message]) -> str:
        system = build_system_prompt(self._ai_config.system_prompt, conversation)
        try:
            reply = await asyncio.wait_for(
                self._ai_client.complete(system, build_messages(history)),
                timeout=self._chat_config.upstream_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "upstream_timeout",
                conversation_id=conversation.id,
                timeout=self._chat_config.upstream_timeout,
            )
            raise UpstreamTimeout("The assistant took too long to respond. Please try again.") from None
        except ChatError:
            raise
        except Exception as e:
            logger.error("upstream_error", conversation_id=conversation.id, error=str(e))
            raise UpstreamError("Failed to get AI response") from e

        reply = (reply or "").strip()
        if not reply:
            raise UpstreamError("The assistant returned an empty response.")
        return reply
