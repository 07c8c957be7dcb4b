"""E-mail delivery for staff notifications and chat transcripts."""

from __future__ import annotations

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from html import escape

from support_chat.config import NotificationConfig
from support_chat.log import get_logger

logger = get_logger(__name__)


class Notifier(ABC):
    """Sends an HTML e-mail. Raises on delivery failure; callers decide whether to swallow."""

    @abstractmethod
    async def send(self, to: list[str], subject: str, html_body: str) -> None:
        ...


class SmtpNotifier(Notifier):
    """SMTP delivery; the blocking smtplib session runs in a worker thread."""

    def __init__(self, config: NotificationConfig):
        self._config = config

    async def send(self, to: list[str], subject: str, html_body: str) -> None:
        if not to:
            return
        await asyncio.to_thread(self._send_sync, to, subject, html_body)
        logger.info("email_sent", recipients=len(to), subject=subject)

    def _send_sync(self, to: list[str], subject: str, html_body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._config.from_address
        msg["To"] = ", ".join(to)
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(
            self._config.smtp_host, self._config.smtp_port, timeout=self._config.timeout
        ) as s:
            s.ehlo()
            if self._config.use_tls:
                s.starttls()
                s.ehlo()
            if self._config.smtp_user and self._config.smtp_password:
                s.login(self._config.smtp_user, self._config.smtp_password)
            s.send_message(msg)


class LogOnlyNotifier(Notifier):
    """Used when e-mail is disabled: records what would have been sent."""

    async def send(self, to: list[str], subject: str, html_body: str) -> None:
        logger.info("email_skipped", recipients=len(to), subject=subject)


def create_notifier(config: NotificationConfig) -> Notifier:
    return SmtpNotifier(config) if config.enabled else LogOnlyNotifier()


def staff_notification_html(user_name: str, user_email: str, conversation_id: str, text: str) -> str:
    """Body of the e-mail staff receive for each incoming chat message."""
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px;">'
        "<h2>New support chat message</h2>"
        f"<p><strong>From:</strong> {escape(user_name)} &lt;{escape(user_email)}&gt;</p>"
        f"<p><strong>Conversation:</strong> {escape(conversation_id)}</p>"
        f'<div style="padding: 12px; background-color: #f5f5f5; white-space: pre-wrap;">{escape(text)}</div>'
        "</div>"
    )
