"""
Cache module for the tenant limits store.

Provides pluggable key-value backends (in-memory and Redis) so that
limits can be kept per process or shared by several workers.
"""

from project_service.cache.base import CacheBackend, CacheEntry
from project_service.cache.memory import InMemoryCache
from project_service.cache.redis import RedisCache
from project_service.cache.factory import create_cache

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "InMemoryCache",
    "RedisCache",
    "create_cache",
]
