"""Transcript rendering (JSON, plain text, HTML e-mail) and delivery."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Sequence

from support_chat.core.types import CloseReason, ExportFormat, MessageRole
from support_chat.log import get_logger
from support_chat.services.notifier import Notifier
from support_chat.storage.models import Message

logger = get_logger(__name__)

TRANSCRIPT_TITLE = "Smart Tech Analytics - Chat Conversation Export"
ASSISTANT_LABEL = "Support Assistant"
EMPTY_PLACEHOLDER = "No messages were exchanged in this conversation."
EMAIL_SUBJECT = "Your Chat Transcript - Smart Tech Analytics Support"

_REASON_TEXT = {
    CloseReason.MANUAL_CLOSE: "manually closed",
    CloseReason.TIMEOUT: "automatically closed due to inactivity",
    CloseReason.USER_CLOSE: "ended by user",
}


@dataclass(frozen=True, slots=True)
class ExportedTranscript:
    filename: str
    media_type: str
    body: bytes


def _display_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


class TranscriptExporter:
    """Pure renderings of a message log. Nothing here touches storage."""

    def __init__(self, notifier: Notifier):
        self._notifier = notifier

    def render_json(
        self,
        user_name: str,
        user_email: str,
        conversation_id: str,
        messages: Sequence[Message],
        exported_at: datetime,
    ) -> bytes:
        data = {
            "conversation_id": conversation_id,
            "user_name": user_name,
            "user_email": user_email,
            "exported_at": exported_at.isoformat(),
            "message_count": len(messages),
            "messages": [m.to_dict() for m in messages],
        }
        return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")

    def render_text(
        self,
        user_name: str,
        user_email: str,
        conversation_id: str,
        messages: Sequence[Message],
        exported_at: datetime,
    ) -> bytes:
        lines = [
            TRANSCRIPT_TITLE,
            f"User: {user_name} ({user_email})",
            f"Conversation ID: {conversation_id}",
            f"Exported: {_display_time(exported_at)}",
            f"Total Messages: {len(messages)}",
            "=" * 60,
            "",
        ]
        if not messages:
            lines.append(EMPTY_PLACEHOLDER)
            lines.append("")
        for msg in messages:
            sender = user_name if msg.role == MessageRole.USER else ASSISTANT_LABEL
            thread_info = f" [Thread: {msg.thread_id[:8]}]" if msg.thread_id else ""
            lines.append(f"[{_display_time(msg.created_at)}] {sender}{thread_info}:")
            lines.append(msg.content)
            lines.append("")
        return "\n".join(lines).encode("utf-8")

    def render(
        self,
        fmt: ExportFormat,
        user_name: str,
        user_email: str,
        conversation_id: str,
        messages: Sequence[Message],
        exported_at: datetime,
    ) -> ExportedTranscript:
        match fmt:
            case ExportFormat.JSON:
                body = self.render_json(user_name, user_email, conversation_id, messages, exported_at)
                media_type = "application/json"
            case ExportFormat.TEXT:
                body = self.render_text(user_name, user_email, conversation_id, messages, exported_at)
                media_type = "text/plain; charset=utf-8"
            case _:
                raise ValueError(f"Unknown export format: {fmt}")
        return ExportedTranscript(
            filename=self.filename(conversation_id, fmt, exported_at),
            media_type=media_type,
            body=body,
        )

    @staticmethod
    def filename(conversation_id: str, fmt: ExportFormat, exported_at: datetime) -> str:
        ext = "json" if fmt == ExportFormat.JSON else "txt"
        return f"chat-conversation-{conversation_id[:8]}-{exported_at.date().isoformat()}.{ext}"

    def render_email_html(
        self,
        user_name: str,
        messages: Sequence[Message],
        reason: CloseReason | str,
        closed_at: datetime,
    ) -> str:
        if messages:
            blocks = []
            for msg in messages:
                is_user = msg.role == MessageRole.USER
                sender = user_name if is_user else ASSISTANT_LABEL
                bg_color = "#e3f2fd" if is_user else "#f5f5f5"
                border = "#1976d2" if is_user else "#666"
                blocks.append(
                    f'<div style="margin: 10px 0; padding: 12px; background-color: {bg_color}; '
                    f'border-radius: 8px; border-left: 4px solid {border};">'
                    f'<div style="font-weight: bold; color: #333; margin-bottom: 5px;">'
                    f"{escape(sender)} "
                    f'<span style="font-weight: normal; color: #666; font-size: 12px;">'
                    f"{_display_time(msg.created_at)}</span></div>"
                    f'<div style="color: #333; white-space: pre-wrap;">{escape(msg.content)}</div>'
                    "</div>"
                )
            history = "".join(blocks)
        else:
            history = f'<p style="color: #666; font-style: italic;">{EMPTY_PLACEHOLDER}</p>'

        try:
            reason_text = _REASON_TEXT[CloseReason(reason)]
        except ValueError:
            reason_text = "ended"

        return (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
            "<h2>Chat Transcript</h2>"
            f"<h3>Hi {escape(user_name)},</h3>"
            "<p>Thank you for contacting Smart Tech Analytics support. "
            f"Your chat session was {reason_text} on {_display_time(closed_at)}. "
            "Below is the complete transcript of your conversation:</p>"
            f'<div style="margin: 20px 0; padding: 15px; background: #f9f9f9;">{history}</div>'
            "<p>Feel free to start a new chat session or contact us directly at "
            "info@smarttechanalytics.com</p>"
            "</div>"
        )

    async def deliver(
        self,
        user_name: str,
        user_email: str,
        messages: Sequence[Message],
        reason: CloseReason | str,
        closed_at: datetime,
    ) -> None:
        """E-mail the transcript to the user. Delivery errors propagate."""
        html_body = self.render_email_html(user_name, messages, reason, closed_at)
        await self._notifier.send([user_email], EMAIL_SUBJECT, html_body)
        logger.info("transcript_delivered", message_count=len(messages), reason=str(reason))
