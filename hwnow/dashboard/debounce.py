"""Trailing-edge debouncer on top of asyncio tasks."""

import asyncio
from typing import Awaitable, Callable, Optional

from ..utils.logging import get_logger

logger = get_logger("dashboard.debounce")


class Debouncer:
    """Runs ``action`` once, ``delay`` seconds after the last ``schedule()``.

    Each ``schedule()`` cancels the pending timer and starts a new one, so a
    burst of calls produces a single run. The action reads whatever state is
    current when it fires.
    """

    def __init__(self, action: Callable[[], Awaitable[object]], delay: float):
        self._action = action
        self._delay = delay
        self._timer: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def schedule(self) -> None:
        self.cancel()
        self._timer = asyncio.create_task(self._wait_then_run())

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> None:
        """Run a pending action now and wait for it, including one already firing."""
        if self.pending:
            self.cancel()
            await self._run()
        elif self._running is not None and not self._running.done():
            await asyncio.shield(self._running)

    async def _wait_then_run(self) -> None:
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            return
        self._timer = None
        self._running = asyncio.current_task()
        await self._run()

    async def _run(self) -> None:
        try:
            await self._action()
        except Exception as e:
            logger.error("debounced_action_failed", error=str(e))
