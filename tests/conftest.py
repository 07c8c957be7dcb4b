"""Shared fixtures: in-memory database, fake completion service, recording notifier."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from support_chat.ai.client import AIClient, AIResponse
from support_chat.app import SupportChatApp
from support_chat.config import AccessConfig, AppConfig, ChatConfig, NotificationConfig, StorageConfig
from support_chat.core.types import UserRole
from support_chat.services.notifier import Notifier
from support_chat.storage.database import Database


class FrozenClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeAIClient(AIClient):
    def __init__(self, reply: str = "Hi! How can I help you today?"):
        self.reply = reply
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.error: Exception | None = None
        self.delay: float = 0.0

    @property
    def model_name(self) -> str:
        return "fake-model"

    async def chat(self, system: str, messages: list[dict[str, Any]]) -> AIResponse:
        self.calls.append((system, [dict(m) for m in messages]))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return AIResponse(text=self.reply)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: list[tuple[list[str], str, str]] = []
        self.error: Exception | None = None

    async def send(self, to: list[str], subject: str, html_body: str) -> None:
        if self.error:
            raise self.error
        self.sent.append((list(to), subject, html_body))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def ai_client():
    return FakeAIClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    return AppConfig(
        storage=StorageConfig(db_path=":memory:"),
        chat=ChatConfig(upstream_timeout=0.5),
        notifications=NotificationConfig(staff_addresses=["staff@example.com"]),
        access=AccessConfig(roles={"sam@example.com": UserRole.USER}),
    )


@pytest.fixture
async def db():
    database = Database(":memory:")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
async def chat_app(config, ai_client, notifier, clock):
    app = SupportChatApp(config, ai_client=ai_client, notifier=notifier, clock=clock)
    await app.start(run_scheduler=False)
    yield app
    await app.stop()


@pytest.fixture
def protocol(chat_app):
    return chat_app.protocol
