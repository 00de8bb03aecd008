"""Two-tier (in-process LRU + shared Redis) read-through cache for record sequences."""

from tickreplay.cache.local import LocalTier
from tickreplay.cache.remote import RemoteTier
from tickreplay.cache.tiered import CacheKey, CacheStats, TieredCache

__all__ = ["CacheKey", "CacheStats", "LocalTier", "RemoteTier", "TieredCache"]
