"""Process-local cache backend."""

import fnmatch
import logging
import threading
from contextlib import AbstractContextManager
from typing import Any

from project_service.cache.base import CacheBackend, CacheEntry
from project_service.locks import KeyedLock

logger = logging.getLogger(__name__)


class InMemoryCache(CacheBackend):
    """
    Dictionary-backed cache for a single process.

    Used by tests and single-worker deployments; contents are lost on
    restart. Each key has its own lock, so tenants never contend with each
    other.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._locks = KeyedLock()
        # Protects the dict itself while it is iterated or resized
        self._entries_lock = threading.Lock()
        self._open = True

    @property
    def name(self) -> str:
        return "memory"

    @property
    def is_connected(self) -> bool:
        return self._open

    def entry(self, key: str) -> CacheEntry | None:
        with self._locks.hold(key):
            return self._entries.get(key)

    def get(self, key: str) -> Any | None:
        found = self.entry(key)
        return None if found is None else found.value

    def set(self, key: str, value: Any) -> bool:
        with self._locks.hold(key):
            previous = self._entries.get(key)
            stored = previous.replaced_by(value) if previous else CacheEntry(value=value)
            with self._entries_lock:
                self._entries[key] = stored
        return True

    def delete(self, key: str) -> bool:
        with self._locks.hold(key), self._entries_lock:
            return self._entries.pop(key, None) is not None

    def keys(self, pattern: str = "*") -> list[str]:
        with self._entries_lock:
            return fnmatch.filter(self._entries, pattern)

    def lock(self, key: str) -> AbstractContextManager[Any]:
        return self._locks.hold(key)

    def close(self) -> None:
        with self._entries_lock:
            dropped = len(self._entries)
            self._entries.clear()
        self._open = False
        logger.debug(f"In-memory cache closed, {dropped} entries dropped")

    def __len__(self) -> int:
        return len(self._entries)

    def health_check(self) -> dict[str, Any]:
        health = super().health_check()
        health["total_entries"] = len(self)
        return health
