"""Short-lived value cache for expensive probes (nvidia-smi, /health)."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ..utils.logging import get_logger

logger = get_logger("utils.cache")


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    """Keyed cache whose entries expire ``ttl`` seconds after being set.

    ``None`` is a legitimate cached value (e.g. "no GPU present"), so
    lookups distinguish a miss from a cached ``None`` via ``contains``.
    Each key has its own lock; a slow refresh of one key never blocks another.
    """

    def __init__(self, default_ttl: float = 5.0, max_entries: int = 64):
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._entries: dict[str, _Entry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.hits = 0
        self.misses = 0

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is not None and time.monotonic() > entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def contains(self, key: str) -> bool:
        return self._live(key) is not None

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._live(key)
        return default if entry is None else entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if key not in self._entries:
            self._make_room()
        lifetime = self._default_ttl if ttl is None else ttl
        self._entries[key] = _Entry(value, time.monotonic() + lifetime)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """Return the cached value for ``key``, computing it on a miss.

        Concurrent misses on the same key share a single computation. A
        failing ``compute_fn`` caches nothing and the exception propagates.
        """
        entry = self._live(key)
        if entry is not None:
            self.hits += 1
            return entry.value

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            entry = self._live(key)
            if entry is not None:
                self.hits += 1
                return entry.value

            self.misses += 1
            value = await compute_fn()
            self.set(key, value, ttl)
            logger.debug("cache_refreshed", key=key)
            return value

    def stats(self) -> dict:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def _make_room(self) -> None:
        now = time.monotonic()
        for k in [k for k, e in self._entries.items() if now > e.expires_at]:
            del self._entries[k]
        while len(self._entries) >= self._max_entries:
            soonest = min(self._entries, key=lambda k: self._entries[k].expires_at)
            del self._entries[soonest]
