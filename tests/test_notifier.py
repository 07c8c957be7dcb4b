"""Tests for e-mail delivery."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from support_chat.config import NotificationConfig
from support_chat.services.notifier import (
    LogOnlyNotifier,
    SmtpNotifier,
    create_notifier,
    staff_notification_html,
)


class TestSmtpNotifier:
    async def test_sends_html_with_starttls_and_login(self):
        config = NotificationConfig(
            enabled=True,
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="bot",
            smtp_password="pw",
        )
        smtp = MagicMock()
        with patch("support_chat.services.notifier.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = smtp
            await SmtpNotifier(config).send(["a@example.com", "b@example.com"], "Hi", "<p>x</p>")

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=20)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot", "pw")
        msg = smtp.send_message.call_args.args[0]
        assert msg["To"] == "a@example.com, b@example.com"
        assert msg["Subject"] == "Hi"

    async def test_no_login_without_credentials(self):
        smtp = MagicMock()
        with patch("support_chat.services.notifier.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = smtp
            await SmtpNotifier(NotificationConfig(enabled=True, use_tls=False)).send(
                ["a@example.com"], "Hi", "<p>x</p>"
            )

        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    async def test_empty_recipients_skipped(self):
        with patch("support_chat.services.notifier.smtplib.SMTP") as smtp_cls:
            await SmtpNotifier(NotificationConfig(enabled=True)).send([], "Hi", "<p>x</p>")
        smtp_cls.assert_not_called()


def test_factory_respects_enabled_flag():
    assert isinstance(create_notifier(NotificationConfig(enabled=False)), LogOnlyNotifier)
    assert isinstance(create_notifier(NotificationConfig(enabled=True)), SmtpNotifier)


def test_staff_html_escapes_input():
    html = staff_notification_html("<b>Dana</b>", "dana@example.com", "c-1", "1 < 2")
    assert "&lt;b&gt;Dana&lt;/b&gt;" in html
    assert "1 &lt; 2" in html
