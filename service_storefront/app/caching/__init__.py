"""
Storefront caching package.

Holds the in-memory TTL store, the API response cache middleware that
reads through it and invalidates it on mutations, and the HTTP
Cache-Control header policy.
"""

from .tags import CacheTag
from .ttl_store import DEFAULT_TTL_SECONDS, MISSING, CacheEntry, TTLStore
from .response_cache import (
    ApiCacheMiddleware,
    ApiResponseCache,
    CacheRoute,
    InvalidationRoute,
)
from .cache_control import CacheControlMiddleware, cache_control_for_path

__all__ = [
    "ApiCacheMiddleware",
    "ApiResponseCache",
    "CacheControlMiddleware",
    "CacheEntry",
    "CacheRoute",
    "CacheTag",
    "DEFAULT_TTL_SECONDS",
    "InvalidationRoute",
    "MISSING",
    "TTLStore",
    "cache_control_for_path",
]
