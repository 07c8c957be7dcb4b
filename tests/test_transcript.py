"""Tests for transcript rendering and delivery."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from support_chat.core.types import CloseReason, ExportFormat, MessageRole
from support_chat.services.transcript import EMPTY_PLACEHOLDER, TranscriptExporter
from support_chat.storage.models import Message

from conftest import RecordingNotifier

EXPORTED_AT = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
CONVERSATION_ID = "5f2b9c1e-8d3a-4c57-9a0e-1b2c3d4e5f60"


@pytest.fixture
def exporter(notifier):
    return TranscriptExporter(notifier)


@pytest.fixture
def messages():
    start = datetime(2025, 3, 14, 11, 0, tzinfo=timezone.utc)
    return [
        Message("m1", CONVERSATION_ID, MessageRole.USER, "Do you offer <cloud> hosting?", start),
        Message(
            "m2",
            CONVERSATION_ID,
            MessageRole.ASSISTANT,
            "Yes, we do.",
            start + timedelta(seconds=5),
            thread_id="a1b2c3d4e5f6",
        ),
    ]


class TestJson:
    def test_structure(self, exporter, messages):
        data = json.loads(
            exporter.render_json("Dana", "dana@example.com", CONVERSATION_ID, messages, EXPORTED_AT)
        )
        assert data["conversation_id"] == CONVERSATION_ID
        assert data["user_name"] == "Dana"
        assert data["user_email"] == "dana@example.com"
        assert data["exported_at"] == "2025-03-14T12:00:00+00:00"
        assert data["message_count"] == 2
        assert data["messages"][0] == {
            "id": "m1",
            "content": "Do you offer <cloud> hosting?",
            "role": "user",
            "created_at": "2025-03-14T11:00:00+00:00",
            "thread_id": None,
        }

    def test_deterministic(self, exporter, messages):
        args = ("Dana", "dana@example.com", CONVERSATION_ID, messages, EXPORTED_AT)
        assert exporter.render_json(*args) == exporter.render_json(*args)

    def test_empty(self, exporter):
        data = json.loads(exporter.render_json("Dana", "d@example.com", CONVERSATION_ID, [], EXPORTED_AT))
        assert data["message_count"] == 0
        assert data["messages"] == []


class TestText:
    def test_layout(self, exporter, messages):
        text = exporter.render_text(
            "Dana", "dana@example.com", CONVERSATION_ID, messages, EXPORTED_AT
        ).decode()
        lines = text.splitlines()

        assert lines[0] == "Smart Tech Analytics - Chat Conversation Export"
        assert lines[1] == "User: Dana (dana@example.com)"
        assert lines[2] == f"Conversation ID: {CONVERSATION_ID}"
        assert lines[3] == "Exported: 2025-03-14 12:00:00 UTC"
        assert lines[4] == "Total Messages: 2"
        assert lines[5] == "=" * 60
        assert "[2025-03-14 11:00:00 UTC] Dana:" in lines
        assert "[2025-03-14 11:00:05 UTC] Support Assistant [Thread: a1b2c3d4]:" in lines

    def test_empty_placeholder(self, exporter):
        text = exporter.render_text("Dana", "d@example.com", CONVERSATION_ID, [], EXPORTED_AT).decode()
        assert EMPTY_PLACEHOLDER in text
        assert "Total Messages: 0" in text


class TestRender:
    @pytest.mark.parametrize(
        "fmt,media_type,ext",
        [(ExportFormat.JSON, "application/json", "json"), (ExportFormat.TEXT, "text/plain; charset=utf-8", "txt")],
    )
    def test_formats(self, exporter, messages, fmt, media_type, ext):
        exported = exporter.render(fmt, "Dana", "d@example.com", CONVERSATION_ID, messages, EXPORTED_AT)
        assert exported.media_type == media_type
        assert exported.filename == f"chat-conversation-5f2b9c1e-2025-03-14.{ext}"


class TestEmail:
    def test_escapes_content(self, exporter, messages):
        html = exporter.render_email_html("Dana", messages, CloseReason.TIMEOUT, EXPORTED_AT)
        assert "&lt;cloud&gt;" in html
        assert "<cloud>" not in html
        assert "automatically closed due to inactivity" in html

    def test_empty_conversation(self, exporter):
        html = exporter.render_email_html("Dana", [], "user_close", EXPORTED_AT)
        assert EMPTY_PLACEHOLDER in html

    def test_unknown_reason_falls_back(self, exporter):
        html = exporter.render_email_html("Dana", [], "something", EXPORTED_AT)
        assert "was ended on" in html

    async def test_deliver_sends_to_user(self, exporter, notifier: RecordingNotifier, messages):
        await exporter.deliver("Dana", "dana@example.com", messages, CloseReason.MANUAL_CLOSE, EXPORTED_AT)
        [(to, subject, body)] = notifier.sent
        assert to == ["dana@example.com"]
        assert "Chat Transcript" in subject
        assert "manually closed" in body
