"""
Cache infrastructure.

- ttl_cache: in-memory TTLCache shared by all services
- cache_keys: key format and TTL per data type
"""

from .cache_keys import CacheDataType, CacheKeyGenerator, CacheTTL
from .ttl_cache import (
    MISSING,
    CacheListener,
    CacheStats,
    LoggingCacheListener,
    TTLCache,
)

__all__ = [
    "CacheDataType",
    "CacheKeyGenerator",
    "CacheTTL",
    "MISSING",
    "CacheListener",
    "CacheStats",
    "LoggingCacheListener",
    "TTLCache",
]
