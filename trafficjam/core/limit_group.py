"""Apply several limits as one.

Group semantics are all-or-nothing: an increment is kept only when every
member accepts it. Members that accepted before a sibling rejected (or
failed) are rolled back with a decrement at the same timestamp, which
cancels exactly as long as no newer write reached that key in between.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Iterable, Union

from trafficjam.core.drift import now_ms
from trafficjam.core.errors import quota_exceeded
from trafficjam.core.limit import Limit

logger = logging.getLogger(__name__)

Member = Union[Limit, "LimitGroup", Iterable]


def _flatten(members: Iterable[Member]) -> list[Limit]:
    flat: list[Limit] = []
    for member in members:
        if isinstance(member, (Limit, LimitGroup)):
            flat.extend(member.flatten())
        elif isinstance(member, Iterable) and not isinstance(member, (str, bytes)):
            flat.extend(_flatten(member))
        else:
            raise TypeError(f"not a limit: {member!r}")
    return flat


class LimitGroup:
    """A set of limits incremented together.

    Attributes:
        limits: Flattened member limits.
    """

    def __init__(
        self,
        limits: Iterable[Member] = (),
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limits: list[Limit] = _flatten(limits)
        self._clock = clock

    def __repr__(self) -> str:
        return f"LimitGroup({self.limits!r})"

    def __len__(self) -> int:
        return len(self.limits)

    def push(self, limit: Member) -> int:
        """Add a limit (or nested group) and return the new member count."""

        self.limits.extend(_flatten([limit]))
        return len(self.limits)

    def flatten(self) -> list[Limit]:
        return list(self.limits)

    async def _increment_all(
        self, amount: int | None, timestamp: int | None
    ) -> tuple[bool, Limit | None]:
        if amount is None:
            amount = 1
        event_time = int(timestamp) if timestamp else now_ms(self._clock)

        results = await asyncio.gather(
            *(limit.increment(amount, event_time) for limit in self.limits),
            return_exceptions=True,
        )

        accepted = [limit for limit, result in zip(self.limits, results) if result is True]
        rejected = [limit for limit, result in zip(self.limits, results) if result is False]
        errors = [result for result in results if isinstance(result, BaseException)]

        if not rejected and not errors:
            return True, None

        if accepted:
            logger.info(
                "limit_group.rollback",
                extra={
                    "limit_keys": [limit.key for limit in accepted],
                    "amount": amount,
                },
            )
            await asyncio.gather(
                *(limit.decrement(amount, event_time) for limit in accepted)
            )

        if errors:
            raise errors[0]
        return False, rejected[0]

    async def increment(self, amount: int | None = 1, timestamp: int | None = None) -> bool:
        """Increment every member, or none of them.

        Returns:
            True when all members accepted, False when any rejected (the
            accepted members are rolled back).
        """
        success, _ = await self._increment_all(amount, timestamp)
        return success

    async def increment_or_raise(
        self, amount: int | None = 1, timestamp: int | None = None
    ) -> bool:
        """Like ``increment`` but raise with the first rejecting limit.

        Raises:
            QuotaExceeded: If any member would be exceeded.
        """
        success, rejected = await self._increment_all(amount, timestamp)
        if not success and rejected is not None:
            raise quota_exceeded(rejected)
        return True

    async def decrement(self, amount: int | None = 1, timestamp: int | None = None) -> bool:
        if amount is None:
            amount = 1
        event_time = int(timestamp) if timestamp else now_ms(self._clock)
        results = await asyncio.gather(
            *(limit.decrement(amount, event_time) for limit in self.limits)
        )
        return all(results)

    async def would_exceed(self, amount: int = 1) -> bool:
        return await self.limit_exceeded(amount) is not None

    async def limit_exceeded(self, amount: int = 1) -> Limit | None:
        """Return the first member that ``amount`` would exceed, else None."""

        results = await asyncio.gather(
            *(limit.limit_exceeded(amount) for limit in self.limits)
        )
        return next((limit for limit in results if limit is not None), None)

    async def reset(self) -> None:
        await asyncio.gather(*(limit.reset() for limit in self.limits))

    async def remaining(self) -> float:
        """Smallest remaining quota across members (infinite when empty)."""

        values = await asyncio.gather(*(limit.remaining() for limit in self.limits))
        return min(values, default=math.inf)
