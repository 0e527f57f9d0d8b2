"""Key-value storage interface behind the limits cache."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    """
    A stored value plus write bookkeeping.

    Entries have no expiry. ``version`` counts writes to the key so that
    diagnostics can tell a refreshed value from the first one.
    """

    value: Any
    stored_at: datetime = field(default_factory=_utcnow)
    version: int = 1

    def replaced_by(self, value: Any) -> "CacheEntry":
        return CacheEntry(value=value, version=self.version + 1)


class CacheBackend(ABC):
    """
    Storage for JSON-serializable values keyed by string.

    Single-key operations are linearizable. ``lock(key)`` hands callers the
    same per-key serialization point for read-modify-write sequences such
    as "read, fetch on miss, store".
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier, e.g. ``memory`` or ``redis``."""

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Stored value, or None when the key is absent or unreadable."""

    @abstractmethod
    def set(self, key: str, value: Any) -> bool:
        """Store ``value`` under ``key``; False when the write failed."""

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def keys(self, pattern: str = "*") -> list[str]:
        """Keys matching a shell-style glob."""

    @abstractmethod
    def lock(self, key: str) -> AbstractContextManager[Any]: ...

    @abstractmethod
    def close(self) -> None: ...

    def health_check(self) -> dict[str, Any]:
        return {"backend": self.name, "connected": self.is_connected}
