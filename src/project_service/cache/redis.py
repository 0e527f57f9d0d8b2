"""Redis cache backend shared by all worker processes."""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, TypeVar

import redis

from project_service.cache.base import CacheBackend
from project_service.locks import KeyedLock

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisCache(CacheBackend):
    """
    Cache stored in Redis so that every API worker sees the same limits.

    Values are written as ``{"v": value, "t": written_at}`` JSON documents
    with no expiry. Redis failures are logged and reported as a miss (or a
    failed write), which sends the limits lookup back to the tenant service.
    ``lock(key)`` adds a Redis lock to a process-local one so that it holds
    across processes; its lifetime must exceed the slowest guarded block,
    which for the limits cache is a tenant-service fetch with retries.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "project-service:",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        lock_timeout: float = 10.0,
        lock_blocking_timeout: float = 5.0,
        client: Any = None,
    ) -> None:
        """
        Args:
            url: Redis connection URL
            prefix: Namespace prepended to every key
            max_connections: Connection pool size
            socket_timeout: Connect and read timeout in seconds
            lock_timeout: Lifetime of a held key lock in seconds
            lock_blocking_timeout: Wait for a key lock before continuing
                with the process-local lock only
            client: Existing redis client (tests, shared pools)
        """
        self._url = url
        self._prefix = prefix
        self._pool_options = {
            "max_connections": max_connections,
            "socket_timeout": socket_timeout,
            "socket_connect_timeout": socket_timeout,
        }
        self._lock_timeout = lock_timeout
        self._lock_blocking_timeout = lock_blocking_timeout
        self._client: Any = client
        self._local_locks = KeyedLock()

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def connect(self) -> bool:
        """Open the connection pool and ping the server."""
        if self._client is not None:
            return True
        try:
            client = redis.Redis.from_url(self._url, **self._pool_options)
            client.ping()
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {self._url}: {e}")
            return False
        self._client = client
        logger.info(f"Connected to Redis at {self._url}")
        return True

    def _run(self, operation: str, key: str, call: Callable[[Any], T], failed: T) -> T:
        if not self.connect():
            return failed
        try:
            return call(self._client)
        except redis.RedisError as e:
            logger.error(f"Redis {operation} failed for {key}: {e}")
            return failed

    def get(self, key: str) -> Any | None:
        raw = self._run("GET", key, lambda c: c.get(self._full_key(key)), None)
        if raw is None:
            return None
        try:
            return json.loads(raw)["v"]
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable cache value for {key}: {e}")
            return None

    def set(self, key: str, value: Any) -> bool:
        document = json.dumps({"v": value, "t": datetime.now(timezone.utc).isoformat()})

        def write(client: Any) -> bool:
            client.set(self._full_key(key), document)
            return True

        return self._run("SET", key, write, False)

    def delete(self, key: str) -> bool:
        return self._run("DEL", key, lambda c: c.delete(self._full_key(key)) > 0, False)

    def keys(self, pattern: str = "*") -> list[str]:
        def scan(client: Any) -> list[str]:
            found = []
            for raw in client.scan_iter(match=self._full_key(pattern)):
                name = raw.decode("utf-8") if isinstance(raw, bytes) else raw
                found.append(name[len(self._prefix):])
            return found

        return self._run("SCAN", pattern, scan, [])

    def _acquire(self, key: str) -> Any | None:
        if not self.connect():
            logger.warning(f"Redis unavailable, locking {key} in this process only")
            return None
        try:
            candidate = self._client.lock(
                self._full_key(f"lock:{key}"),
                timeout=self._lock_timeout,
                blocking_timeout=self._lock_blocking_timeout,
            )
            if candidate.acquire():
                return candidate
            logger.warning(f"Timed out waiting for Redis lock on {key}, locking in this process only")
        except redis.RedisError as e:
            logger.error(f"Redis lock on {key} failed, locking in this process only: {e}")
        return None

    @staticmethod
    def _release(key: str, held: Any) -> None:
        try:
            held.release()
        except redis.RedisError as e:
            # LockNotOwnedError: the lock expired while the block was running
            logger.warning(f"Redis lock on {key} was lost before release: {e}")

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """
        Serialize callers on ``key`` across processes.

        The process-local lock is always taken first. The Redis lock is
        added on top when Redis answers; when it does not, or when the lock
        expires before release, the failure is logged and never replaces
        the outcome of the guarded block.
        """
        with self._local_locks.hold(key):
            held = self._acquire(key)
            try:
                yield
            finally:
                if held is not None:
                    self._release(key, held)

    def close(self) -> None:
        if self._client is None:
            return
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            self._client = None

    def health_check(self) -> dict[str, Any]:
        health = super().health_check()
        try:
            if not self.connect():
                health["error"] = "Not connected to Redis"
                return health
            health["connected"] = True
            health["redis_version"] = self._client.info("server").get("redis_version")
            health["total_keys"] = self._client.dbsize()
        except redis.RedisError as e:
            health["error"] = str(e)
        return health
