"""In-memory limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Coroutine-safe: an asyncio lock guards the compare-and-set.
- TTLs are enforced lazily against the injected clock.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from trafficjam.adapters.store.base import AbstractLimitStore
from trafficjam.core.drift import CounterState


@dataclass
class _Record:
    fields: dict[str, str]
    expires_at: float


class InMemoryLimitStore(AbstractLimitStore):
    """Limit store holding records in a process-local dict.

    Records are kept in their encoded string form so reads go through the
    same decoding as the Redis store.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds, used for TTLs.
        """
        self._clock = clock
        self._lock = asyncio.Lock()
        self._records: dict[str, _Record] = {}

    def _live_fields(self, key: str) -> dict[str, str] | None:
        record = self._records.get(key)
        if record is None:
            return None
        if record.expires_at <= self._clock():
            del self._records[key]
            return None
        return record.fields

    async def get(self, key: str) -> CounterState | None:
        return CounterState.from_fields(self._live_fields(key))

    async def get_fields(self, key: str) -> dict[str, str]:
        """Return a copy of the raw encoded fields of a record."""

        return dict(self._live_fields(key) or {})

    async def ttl(self, key: str) -> float | None:
        """Seconds until the record expires, None when absent."""

        if self._live_fields(key) is None:
            return None
        return self._records[key].expires_at - self._clock()

    async def compare_and_set(
        self,
        key: str,
        *,
        expected: CounterState | None,
        new: CounterState,
        ttl_seconds: int,
    ) -> bool:
        async with self._lock:
            current = CounterState.from_fields(self._live_fields(key))
            if current != expected:
                return False
            self._records[key] = _Record(
                fields=new.to_fields(),
                expires_at=self._clock() + ttl_seconds,
            )
            return True

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._records.pop(key, None)
