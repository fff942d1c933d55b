"""Buffered, best-effort writer for the append-only resource log."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

from ..utils.logging import get_logger
from .repository import DashboardRepository, ResourceSample

logger = get_logger("persistence.resource_log")

# Snapshot keys that are not metric values
_NON_METRIC_KEYS = {"timestamp", "gpu_name"}


class ResourceLogWriter:
    """Collects metric snapshots and flushes them to ``resource_logs`` in batches.

    Each flush writes the whole buffer in one transaction. A failed flush is
    logged and the batch dropped; the log is historical data only.
    """

    def __init__(
        self,
        repository: DashboardRepository,
        flush_interval: float = 1.0,
        max_buffer: int = 500,
    ):
        self._repository = repository
        self._flush_interval = flush_interval
        self._max_buffer = max_buffer
        self._buffer: list[ResourceSample] = []
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._total_written = 0
        self._total_dropped = 0

    def record(self, snapshot: dict) -> None:
        """Queue every numeric metric of a snapshot."""
        raw_ts = snapshot.get("timestamp")
        timestamp = datetime.fromisoformat(raw_ts) if isinstance(raw_ts, str) else datetime.now()
        timestamp = timestamp.replace(tzinfo=None)
        for metric, value in snapshot.items():
            if metric in _NON_METRIC_KEYS or isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                self._buffer.append(ResourceSample(timestamp, metric, float(value)))

        overflow = len(self._buffer) - self._max_buffer
        if overflow > 0:
            del self._buffer[:overflow]
            self._total_dropped += overflow
            logger.warning("resource_log_buffer_overflow", dropped=overflow)

    async def flush(self) -> int:
        if not self._buffer:
            return 0
        batch, self._buffer = self._buffer, []
        try:
            written = await self._repository.append_resource_logs(batch)
        except Exception as e:
            self._total_dropped += len(batch)
            logger.error("resource_log_flush_failed", samples=len(batch), error=str(e))
            return 0
        self._total_written += written
        return written

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._flush_loop())
        logger.info("resource_log_writer_started", interval=self._flush_interval)

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self.flush()
        logger.info("resource_log_writer_stopped", written=self._total_written)

    async def _flush_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break

    def get_stats(self) -> dict:
        return {
            "running": self._running,
            "buffered": len(self._buffer),
            "total_written": self._total_written,
            "total_dropped": self._total_dropped,
        }
