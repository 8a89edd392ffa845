from __future__ import annotations

import logging
import time
from typing import Any, Callable

from vehicle_safety.data_models import CacheEntry

logger = logging.getLogger(__name__)


class SafetyCache:
    """Process-local TTL cache with lazy expiry on read.

    Entries are immutable ``CacheEntry`` objects; ``put`` replaces the whole
    entry for a key, so a reader sees either the old or the new value. The
    clock is injectable so tests can move time forward.
    """

    def __init__(
        self,
        namespace: str = "safety",
        *,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10_000,
    ) -> None:
        self.namespace = namespace
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def _build_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        full_key = self._build_key(key)
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Only drop the entry we looked at; a concurrent put may have replaced it.
            if self._entries.get(full_key) is entry:
                del self._entries[full_key]
            return None
        return entry.value

    async def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        full_key = self._build_key(key)
        self._entries[full_key] = CacheEntry(key=full_key, value=value, expires_at=self._clock() + ttl_seconds)
        if len(self._entries) > self.max_entries:
            removed = self.purge_expired()
            logger.debug("cache over capacity, purged %d expired entries", removed)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for k in expired:
            del self._entries[k]
        return len(expired)
