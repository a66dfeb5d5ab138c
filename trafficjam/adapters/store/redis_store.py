"""Redis-backed limit store.

Records are Redis hashes. The conditional write uses optimistic locking:
``WATCH`` the key, re-read it, compare with the expected state and commit
``HSET`` + ``EXPIRE`` inside ``MULTI``/``EXEC``. Redis aborts the transaction
when another client touched the key after ``WATCH``.
"""

from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import WatchError

from trafficjam.adapters.store.base import AbstractLimitStore
from trafficjam.core.drift import CounterState

logger = logging.getLogger(__name__)


class RedisLimitStore(AbstractLimitStore):
    """Limit store shared by every process connected to the same Redis."""

    def __init__(self, client: redis.Redis) -> None:
        """Initialize the store.

        Args:
            client: Async Redis client. Responses may be decoded or raw bytes.
        """
        self._client = client

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = None,
        **kwargs: Any,
    ) -> RedisLimitStore:
        """Create a store with its own client from a Redis URL."""

        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=socket_timeout,
            **kwargs,
        )
        return cls(client)

    async def get(self, key: str) -> CounterState | None:
        fields = await self._client.hgetall(key)
        return CounterState.from_fields(fields)

    async def compare_and_set(
        self,
        key: str,
        *,
        expected: CounterState | None,
        new: CounterState,
        ttl_seconds: int,
    ) -> bool:
        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = CounterState.from_fields(await pipe.hgetall(key))
                if current != expected:
                    logger.debug("store.compare_mismatch", extra={"limit_key": key})
                    return False

                pipe.multi()
                pipe.hset(key, mapping=new.to_fields())
                pipe.expire(key, ttl_seconds)
                await pipe.execute()
            except WatchError:
                logger.debug("store.watch_conflict", extra={"limit_key": key})
                return False

        return True

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def aclose(self) -> None:
        """Close the underlying client and its connection pool."""

        await self._client.aclose()
