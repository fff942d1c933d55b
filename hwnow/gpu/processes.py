"""GPU compute process listing."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import psutil

from ..utils.cache import TTLCache
from ..utils.logging import get_logger
from . import nvidia
from .protection import ProcessProtection, ProtectionLevel

logger = get_logger("gpu.processes")

_CACHE_KEY = "gpu_processes"


class GpuProcessSource:
    """Lists processes using the GPU, enriched with psutil details.

    The listing is cached for ``cache_seconds`` since each refresh spawns
    nvidia-smi.
    """

    def __init__(
        self,
        cache_seconds: float = 5.0,
        protection: Optional[ProcessProtection] = None,
        query: Callable[[], Optional[list[dict]]] = nvidia.query_compute_apps,
    ):
        self._cache = TTLCache(default_ttl=cache_seconds, max_entries=4)
        self._protection = protection or ProcessProtection()
        self._query = query

    async def list_processes(self) -> list[dict]:
        return await self._cache.get_or_compute(_CACHE_KEY, self._refresh)

    def invalidate(self) -> None:
        self._cache.invalidate(_CACHE_KEY)

    async def _refresh(self) -> list[dict]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._collect)

    def _collect(self) -> list[dict]:
        raw = self._query()
        if raw is None:
            logger.debug("gpu_processes_unavailable")
            return []
        return [self._enrich(entry) for entry in raw]

    def _enrich(self, entry: dict) -> dict:
        info = dict(entry)
        info.update({"status": "unknown", "cpu_percent": 0.0, "memory_mb": 0.0, "username": None})
        try:
            proc = psutil.Process(entry["pid"])
            with proc.oneshot():
                info["name"] = proc.name() or info["name"]
                info["status"] = proc.status()
                info["cpu_percent"] = proc.cpu_percent(interval=None)
                info["memory_mb"] = round(proc.memory_info().rss / (1024 ** 2), 1)
                info["username"] = proc.username()
        except psutil.NoSuchProcess:
            info["status"] = "exited"
        except psutil.AccessDenied:
            pass
        level = self._protection.level_of(info["name"], info["pid"])
        info["protection_level"] = level.name
        info["controllable"] = level < ProtectionLevel.HIGH
        return info
