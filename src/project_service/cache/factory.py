"""Builds the cache backend selected in settings."""

import logging

from project_service.cache.base import CacheBackend
from project_service.cache.memory import InMemoryCache
from project_service.cache.redis import RedisCache
from project_service.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Slack on top of the slowest tenant-service fetch for writing the result
LOCK_MARGIN_SECONDS = 5.0


def create_cache(backend: str | None = None, config: Settings | None = None) -> CacheBackend:
    """
    Create the backend named by ``backend`` or ``limits_cache_backend``.

    A Redis backend that is unconfigured or unreachable degrades to an
    in-memory cache with a warning; limits are then fetched per process.

    Raises:
        ValueError: If the backend name is unknown
    """
    config = config or default_settings
    kind = backend or config.limits_cache_backend

    if kind == "memory":
        return InMemoryCache()
    if kind != "redis":
        raise ValueError(f"Unknown cache backend: {kind}")

    if not config.redis_url:
        logger.warning("REDIS_URL is not set, limits cache stays in memory")
        return InMemoryCache()

    # A limits fetch runs under the key lock, which must outlive it
    lock_seconds = config.tenant_fetch_worst_case_seconds + LOCK_MARGIN_SECONDS
    cache = RedisCache(
        url=config.redis_url,
        prefix=config.redis_prefix,
        lock_timeout=lock_seconds,
        lock_blocking_timeout=lock_seconds,
    )
    if not cache.connect():
        logger.warning("Redis unreachable, limits cache stays in memory")
        return InMemoryCache()
    return cache
