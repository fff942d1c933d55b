"""Resource Monitor Module — polls the metric source on a fixed interval.

Keeps the latest snapshot and a rolling history in memory, and hands every
snapshot to the resource log writer when one is attached.
"""

import asyncio
from collections import deque
from typing import Optional

from .base_module import BaseModule
from .metric_source import MetricSource, PsutilMetricSource


class ResourceMonitor(BaseModule):
    """Samples system metrics for the dashboard's periodic pull."""

    def __init__(self, config: dict | None = None, source: MetricSource | None = None):
        super().__init__(name="resource_monitor", config=config)

        cfg = config or {}
        self._poll_interval: float = cfg.get("poll_interval", 2.0)
        self._source = source or PsutilMetricSource(
            cpu=cfg.get("enable_cpu", True),
            memory=cfg.get("enable_memory", True),
            disk=cfg.get("enable_disk", True),
            network=cfg.get("enable_network", True),
            gpu=cfg.get("enable_gpu", True),
        )

        # 300 samples = 10 minutes at 2s intervals
        self._snapshot_history: deque[dict] = deque(maxlen=cfg.get("history_size", 300))
        self._current: Optional[dict] = None
        self._log_writer = None

    def set_log_writer(self, writer) -> None:
        """Attach the resource log writer that persists each snapshot."""
        self._log_writer = writer
        self.logger.info("resource_log_writer_attached")

    async def start(self) -> None:
        self.running = True
        self.health_status = "running"
        self.logger.info("resource_monitor_starting", interval=self._poll_interval)

        try:
            await self._take_snapshot()
        except Exception as e:
            self.record_error("resource_snapshot_error", e)

        self.spawn_poller(self._poll_interval, self._take_snapshot)
        self.heartbeat()
        self.logger.info("resource_monitor_started")

    async def stop(self) -> None:
        self.running = False
        await self.cancel_poller()
        self.health_status = "stopped"
        self.logger.info("resource_monitor_stopped")

    async def health_check(self) -> dict:
        self.heartbeat()
        return {
            "status": self.health_status,
            "details": {
                "snapshots": len(self._snapshot_history),
                "current_cpu": self._current.get("cpu") if self._current else None,
                "current_ram": self._current.get("ram") if self._current else None,
                "errors": self.error_count,
            },
        }

    async def _take_snapshot(self) -> dict:
        loop = asyncio.get_running_loop()
        snapshot = await loop.run_in_executor(None, self._source.collect)
        self._current = snapshot
        self._snapshot_history.append(snapshot)
        if self._log_writer is not None:
            self._log_writer.record(snapshot)
        self.heartbeat()
        return snapshot

    # --- Public API ---

    def get_current(self) -> dict:
        return self._current or {}

    def get_history(self, limit: int = 60) -> list[dict]:
        history = list(self._snapshot_history)
        return history[-limit:] if limit > 0 else []
