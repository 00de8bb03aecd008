"""
Two-tier read-through cache.

Lookup order is local -> remote -> loader. A fresh load populates remote
first, then local, and is returned as an immutable tuple. The remote tier is
best effort: its failures are logged and bypassed, never raised. Loader
errors propagate unchanged.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from opentelemetry import trace

from tickreplay.cache.local import LocalTier
from tickreplay.cache.remote import RemoteTier
from tickreplay.core.config import Settings
from tickreplay.core.errors import CacheTierDegraded
from tickreplay.core.models import (
    Interval,
    MarketRecord,
    RecentWindow,
    Resolution,
    TimeRange,
    Window,
    resolution_token,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Loader = Callable[[], Awaitable[Sequence[MarketRecord]]]


@dataclass(frozen=True)
class CacheKey:
    """Identifies one record sequence. Only exact matches are reused."""

    symbol: str
    resolution: Resolution
    window: Window

    @property
    def kind(self) -> str:
        return "bar" if isinstance(self.resolution, Interval) else "trade"

    def render(self, prefix: str, generation: int) -> str:
        return (
            f"{prefix}:g{generation}:{self.symbol}:"
            f"{resolution_token(self.resolution)}:{self.window.token}"
        )

    @classmethod
    def for_range(
        cls, symbol: str, resolution: Resolution, time_range: TimeRange
    ) -> "CacheKey":
        return cls(symbol, resolution, time_range)

    @classmethod
    def for_recent(cls, symbol: str, resolution: Resolution, count: int) -> "CacheKey":
        return cls(symbol, resolution, RecentWindow(count=count))


@dataclass
class CacheStats:
    local_hits: int = 0
    remote_hits: int = 0
    loads: int = 0
    remote_failures: int = 0


class TieredCache:
    """
    Composition of a LocalTier and an optional RemoteTier.

    Simultaneous misses on the same key may each run the loader; the last
    writer wins and every writer stores the same records.
    """

    def __init__(
        self,
        local: LocalTier,
        remote: Optional[RemoteTier] = None,
        prefix: str = "tickreplay",
        generation: int = 1,
    ):
        self.local = local
        self.remote = remote
        self.prefix = prefix
        self.generation = generation
        self.stats = CacheStats()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TieredCache":
        local = LocalTier(
            capacity=settings.CACHE_LOCAL_CAPACITY,
            ttl_seconds=settings.CACHE_LOCAL_TTL_SECONDS,
        )
        remote = None
        if settings.REDIS_CACHE_ENABLED:
            remote = RemoteTier.from_url(
                settings.REDIS_URL,
                ttl_seconds=settings.CACHE_REMOTE_TTL_SECONDS,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )
        return cls(
            local,
            remote,
            prefix=settings.CACHE_KEY_PREFIX,
            generation=settings.CACHE_GENERATION,
        )

    def render(self, key: CacheKey) -> str:
        return key.render(self.prefix, self.generation)

    async def get_or_load(
        self, key: CacheKey, loader: Loader
    ) -> Tuple[MarketRecord, ...]:
        generation = self.generation
        rendered = key.render(self.prefix, generation)

        with tracer.start_as_current_span("cache.get_or_load") as span:
            span.set_attribute("cache.key", rendered)

            cached = self.local.get(rendered, generation)
            if cached is not None:
                self.stats.local_hits += 1
                span.set_attribute("cache.tier", "local")
                return cached

            remote_records = await self._remote_get(rendered, key.kind, generation)
            if remote_records is not None:
                records = tuple(remote_records)
                self.stats.remote_hits += 1
                self.local.put(rendered, records, generation)
                span.set_attribute("cache.tier", "remote")
                return records

            loaded: List[MarketRecord] = list(await loader())
            records = tuple(loaded)
            self.stats.loads += 1
            span.set_attribute("cache.tier", "loader")
            span.set_attribute("cache.records", len(records))

            await self._remote_set(rendered, loaded, key.kind, generation)
            self.local.put(rendered, records, generation)
            logger.debug(f"Cache: loaded {len(records)} records for {rendered}")
            return records

    def invalidate(self) -> int:
        """Bump the generation so every existing entry becomes unreachable."""
        self.generation += 1
        self.local.clear()
        logger.info(f"🧹 Cache: invalidated, now at generation {self.generation}")
        return self.generation

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()

    async def _remote_get(
        self, rendered: str, kind: str, generation: int
    ) -> Optional[List[MarketRecord]]:
        if self.remote is None:
            return None
        try:
            return await self.remote.get(rendered, kind, generation)
        except CacheTierDegraded as e:
            self.stats.remote_failures += 1
            logger.warning(f"⚠️ Cache: remote tier degraded, bypassing ({e.message})")
            return None

    async def _remote_set(
        self, rendered: str, records: List[MarketRecord], kind: str, generation: int
    ) -> None:
        if self.remote is None:
            return
        try:
            await self.remote.set(rendered, records, kind, generation)
        except CacheTierDegraded as e:
            self.stats.remote_failures += 1
            logger.warning(f"⚠️ Cache: remote tier degraded, not stored ({e.message})")
