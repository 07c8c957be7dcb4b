"""Lifecycle interface for background services run alongside the HTTP server."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Service(ABC):
    """A component started and stopped together with ``SupportChatApp``."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    def details(self) -> dict[str, Any]:
        return {}

    async def status(self) -> dict[str, Any]:
        """Health summary reported by the /health endpoint."""
        return {
            "name": self.service_name,
            "healthy": await self.health_check(),
            **self.details(),
        }
