"""
Invalidation tags for the API response cache.

Cacheable routes declare the tags their responses are stored under and
mutating routes declare the tags they invalidate, so route wiring never
depends on the shape of cache keys.
"""

from enum import Enum


class CacheTag(str, Enum):
    """Resource families the storefront caches responses for."""

    PRODUCTS = "products"
    CATEGORIES = "categories"
    SETTINGS = "settings"
    STATS = "stats"
