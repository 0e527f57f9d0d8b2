"""Per-key locking for in-process serialization."""

import threading
from contextlib import contextmanager
from typing import Generator


class KeyedLock:
    """
    A family of reentrant locks addressed by key.

    Holders of different keys never block each other. Lock objects are
    created on first use and discarded when the last holder releases them,
    so the table does not grow with the number of keys ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [RLock, holders]

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
