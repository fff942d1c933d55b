"""Lifecycle base for HWnow's background pollers."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from ..utils.logging import get_logger


class BaseModule(ABC):
    """A named background module started and stopped by the app lifespan.

    Subclasses implement ``start``/``stop``/``health_check``; ``spawn_poller``
    and ``cancel_poller`` cover the common "run a step every N seconds" loop.
    """

    def __init__(self, name: str, config: dict | None = None):
        self.name = name
        self.config = config or {}
        self.enabled = True
        self.running = False
        self.health_status = "initialized"
        self.last_heartbeat: Optional[datetime] = None
        self.error_count = 0
        self.logger = get_logger(f"module.{name}")
        self._poller: Optional[asyncio.Task] = None

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> dict:
        """Return ``{"status": str, "details": dict}``."""
        ...

    def heartbeat(self) -> None:
        self.last_heartbeat = datetime.now(timezone.utc)

    def record_error(self, event: str, exc: Exception) -> None:
        self.error_count += 1
        self.logger.error(event, error=str(exc), errors=self.error_count)

    def spawn_poller(self, interval: float, step: Callable[[], Awaitable[object]]) -> None:
        """Run ``step`` every ``interval`` seconds while the module is running.

        A failing step is counted and logged; the loop keeps going.
        """

        async def _loop() -> None:
            while self.running:
                try:
                    await asyncio.sleep(interval)
                    if self.running:
                        await step()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    self.record_error(f"{self.name}_step_error", e)

        self._poller = asyncio.create_task(_loop())

    async def cancel_poller(self) -> None:
        if self._poller and not self._poller.done():
            self._poller.cancel()
            try:
                await self._poller
            except asyncio.CancelledError:
                pass
        self._poller = None

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "running": self.running,
            "health_status": self.health_status,
            "errors": self.error_count,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
        }
