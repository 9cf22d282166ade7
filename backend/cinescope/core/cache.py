"""
In-process get-or-compute cache with per-entry TTL.

Every upstream call (TMDb, OMDb, MovieGlu) goes through ``cache.get_or_set``
so pages stay fast and rate limits stay comfortable. Entries live in the
worker's memory only; a restart starts cold.
"""
import hashlib
import time
from collections.abc import Awaitable, Callable
from typing import Any

# ── TTLs (seconds) ────────────────────────────────────────────────────────────
TTL_SEARCH = 300
TTL_SHOWTIMES = 1800
TTL_CATALOG = 3600
TTL_LIST_DETAILS = 3600
TTL_CONTENT = 6 * 3600
TTL_DAY = 24 * 3600

_MISSING = object()


def hash_key(*parts: Any) -> str:
    """Short stable digest for free-text cache key parts (search queries)."""
    raw = "|".join(str(p) for p in parts)
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


class TTLCache:
    """Dict-backed store where each entry expires *ttl* seconds after writing."""

    def __init__(self, max_entries: int = 5000, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._max_entries = max_entries
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            self.misses += 1
            return default
        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._evict()
        self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def get_or_set(
        self,
        key: str,
        ttl: float,
        factory: Callable[[], Awaitable[Any]],
        *,
        cache_empty: bool = True,
    ) -> Any:
        """
        Return the cached value for *key*, computing it with *factory* on miss.

        With ``cache_empty=False`` a falsy result ({} / [] / None) is returned
        but not stored, so the next call retries upstream.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value

        value = await factory()
        if value or cache_empty:
            self.set(key, value, ttl)
        return value

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total * 100, 1) if total > 0 else 0.0,
        }

    def _evict(self) -> None:
        """Drop expired entries; if still full, drop the ones expiring soonest."""
        now = self._clock()
        for key in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            del self._entries[key]
        overflow = len(self._entries) - self._max_entries + 1
        if overflow > 0:
            oldest = sorted(self._entries.items(), key=lambda kv: kv[1][0])[:overflow]
            for key, _ in oldest:
                del self._entries[key]


cache = TTLCache()
