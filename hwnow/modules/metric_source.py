"""Metric sources — where the resource monitor gets its numbers from.

``MetricSource`` is the capability interface; ``PsutilMetricSource`` is the
implementation used on every platform. Tests inject their own source.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import psutil

from ..gpu import nvidia
from ..utils.logging import get_logger

logger = get_logger("modules.metric_source")


class MetricSource(ABC):
    """Produces one dict of named metric values per call."""

    @abstractmethod
    def collect(self) -> dict:
        ...


def _root_path() -> str:
    return "C:\\" if psutil.WINDOWS else "/"


class PsutilMetricSource(MetricSource):
    """psutil-backed metrics with optional GPU data from nvidia-smi.

    Rates (``disk_read``, ``disk_write``, ``net_sent``, ``net_recv``) are in
    bytes per second and are 0.0 on the first sample.
    """

    def __init__(
        self,
        cpu: bool = True,
        memory: bool = True,
        disk: bool = True,
        network: bool = True,
        gpu: bool = True,
    ):
        self.cpu = cpu
        self.memory = memory
        self.disk = disk
        self.network = network
        self.gpu = gpu
        self._gpu_available: Optional[bool] = None
        self._prev_time: Optional[float] = None
        self._prev_disk: Optional[tuple[int, int]] = None
        self._prev_net: Optional[tuple[int, int]] = None

    def collect(self) -> dict:
        now = time.monotonic()
        elapsed = now - self._prev_time if self._prev_time is not None else 0.0
        metrics: dict = {"timestamp": datetime.now(timezone.utc).isoformat()}

        if self.cpu:
            metrics["cpu"] = psutil.cpu_percent(interval=None)
            metrics["cpu_cores"] = psutil.cpu_count(logical=True) or 0

        if self.memory:
            mem = psutil.virtual_memory()
            metrics["ram"] = mem.percent
            metrics["ram_used_gb"] = round(mem.used / (1024 ** 3), 2)
            metrics["ram_total_gb"] = round(mem.total / (1024 ** 3), 2)

        if self.disk:
            usage = psutil.disk_usage(_root_path())
            metrics["disk_usage"] = usage.percent
            io = psutil.disk_io_counters()
            if io is not None:
                current = (io.read_bytes, io.write_bytes)
                metrics["disk_read"] = self._rate(self._prev_disk, current, 0, elapsed)
                metrics["disk_write"] = self._rate(self._prev_disk, current, 1, elapsed)
                self._prev_disk = current

        if self.network:
            net = psutil.net_io_counters()
            if net is not None:
                current = (net.bytes_sent, net.bytes_recv)
                metrics["net_sent"] = self._rate(self._prev_net, current, 0, elapsed)
                metrics["net_recv"] = self._rate(self._prev_net, current, 1, elapsed)
                self._prev_net = current

        metrics["system_uptime"] = max(0.0, time.time() - psutil.boot_time())

        battery = self._read_battery()
        if battery is not None:
            metrics["battery"] = battery

        if self.gpu and self._gpu_available is not False:
            summary = nvidia.query_gpu_summary()
            self._gpu_available = summary is not None
            if summary:
                metrics.update({k: v for k, v in summary.items() if v is not None})

        self._prev_time = now
        return metrics

    @staticmethod
    def _rate(previous: Optional[tuple[int, int]], current: tuple[int, int], index: int, elapsed: float) -> float:
        if previous is None or elapsed <= 0:
            return 0.0
        return max(0.0, (current[index] - previous[index]) / elapsed)

    @staticmethod
    def _read_battery() -> Optional[float]:
        try:
            battery = psutil.sensors_battery()
        except (AttributeError, NotImplementedError):
            return None
        return float(battery.percent) if battery is not None else None
