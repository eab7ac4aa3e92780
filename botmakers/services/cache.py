"""In-process TTL cache used for short-lived per-tenant responses."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    value: Any
    stored_at: float
    expires_at: float


class TTLCache:
    """Key/value cache where every entry expires after a fixed TTL.

    Expiry is checked on read. When the store grows past ``max_entries``,
    entries older than twice the TTL are pruned on the next write.
    Not shared across processes; a restart clears it.
    """

    def __init__(self, ttl_seconds: float, max_entries: int = 500) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: dict[str, _CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if time.monotonic() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        now = time.monotonic()
        self._entries[key] = _CacheEntry(value=value, stored_at=now, expires_at=now + self.ttl_seconds)
        if len(self._entries) > self.max_entries:
            self._prune(now)

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _prune(self, now: float) -> None:
        cutoff = now - self.ttl_seconds * 2
        stale = [key for key, entry in self._entries.items() if entry.stored_at < cutoff]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Pruned {len(stale)} stale cache entries")
