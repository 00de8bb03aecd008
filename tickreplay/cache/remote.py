"""Shared Redis tier. Every failure is reported as ``CacheTierDegraded``."""

import asyncio
import logging
from typing import List, Optional

import orjson
from redis.asyncio import Redis
from redis.exceptions import RedisError

from tickreplay.core.errors import CacheTierDegraded
from tickreplay.core.models import MarketRecord
from tickreplay.core.serialization import decode_records, encode_records

logger = logging.getLogger(__name__)

_TIER_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RemoteTier:
    def __init__(self, client: Redis, ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(
        cls, url: str, ttl_seconds: int, socket_timeout: Optional[float] = None
    ) -> "RemoteTier":
        client = Redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, ttl_seconds)

    async def get(
        self, key: str, kind: str, generation: int
    ) -> Optional[List[MarketRecord]]:
        """
        Fetch and decode an entry.

        Undecodable payloads and envelopes from another generation or record
        kind read as misses.
        """
        try:
            payload = await self.client.get(key)
        except _TIER_ERRORS as e:
            raise CacheTierDegraded(f"Redis GET failed for {key}: {e}") from e

        if payload is None:
            return None
        try:
            return decode_records(payload, kind, generation)
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"⚠️ Cache: discarding undecodable entry {key}: {e}")
            return None

    async def set(
        self, key: str, records: List[MarketRecord], kind: str, generation: int
    ) -> None:
        payload = encode_records(records, kind, generation)
        try:
            await self.client.set(key, payload, ex=self.ttl_seconds)
        except _TIER_ERRORS as e:
            raise CacheTierDegraded(f"Redis SET failed for {key}: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()
