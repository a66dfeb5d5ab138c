"""Per-key quota limit.

A ``Limit`` binds an action and a subject to a quota of ``max`` units per
``period`` seconds, and enforces it against a shared store.

Every store-touching operation is a coroutine doing one read and, when the
event is accepted, one conditional write of amount + timestamp + TTL. A lost
race re-reads and recomputes, so concurrent increments from several
processes never overwrite each other.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from trafficjam.adapters.store.base import AbstractLimitStore
from trafficjam.core.drift import apply_event, decayed_usage, now_ms, validate_delta
from trafficjam.core.errors import (
    StoreConflictError,
    ValidationAppError,
    missing_argument,
    quota_exceeded,
)
from trafficjam.core.keys import KeyDeriver

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (str, bytes)) and not value)


class Limit:
    """Quota of ``max`` units per ``period`` seconds for one action/subject.

    Attributes:
        action: Quota type identifier.
        subject: Who the quota applies to.
        max: Quota capacity (0 denies any positive consumption).
        period: Window length in seconds.
        key: Derived store key.
    """

    def __init__(
        self,
        action: str,
        subject: Any,
        max: float,
        period: int,
        *,
        store: AbstractLimitStore,
        key_deriver: KeyDeriver | None = None,
        clock: Callable[[], float] = time.time,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """Validate arguments and derive the key.

        Args:
            action: Quota type identifier (e.g. ``"login"``).
            subject: Who the quota applies to (e.g. a user id).
            max: Quota capacity, >= 0.
            period: Window length in whole seconds, > 0.
            store: Shared counter store.
            key_deriver: Key namespacing; defaults to ``KeyDeriver()``.
            clock: Time source returning UNIX time in seconds.
            max_attempts: Conditional write attempts before giving up.

        Raises:
            MissingArgumentError: Subclass named after the missing argument.
            ValidationAppError: If max is negative, or period or
                max_attempts is not a positive integer.
        """
        if not action:
            raise missing_argument("action")
        if _is_empty(subject):
            raise missing_argument("subject")
        if max is None:
            raise missing_argument("max")
        if not period:
            raise missing_argument("period")
        if max < 0:
            raise ValidationAppError(
                code="invalid_max",
                message="max must be >= 0",
                details={"max": max},
            )
        if isinstance(period, bool) or not isinstance(period, int) or period < 1:
            raise ValidationAppError(
                code="invalid_period",
                message="period must be a positive integer number of seconds",
                details={"context": {"period": repr(period)}},
            )
        if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
            raise ValidationAppError(
                code="invalid_max_attempts",
                message="max_attempts must be a positive integer",
                details={"context": {"max_attempts": repr(max_attempts)}},
            )

        self.action = action
        self.subject = subject
        self.max = max
        self.period = period

        self._store = store
        self._clock = clock
        self._max_attempts = max_attempts
        self.key = (key_deriver or KeyDeriver()).derive(action, subject)

    def __repr__(self) -> str:
        return (
            f"Limit(action={self.action!r}, key={self.key!r}, "
            f"max={self.max}, period={self.period})"
        )

    def _log_extra(self, **extra: Any) -> dict[str, Any]:
        return {
            "action": self.action,
            "limit_key": self.key,
            "max_amount": self.max,
            "period_s": self.period,
            **extra,
        }

    async def would_exceed(self, amount: int = 1) -> bool:
        """Return True when consuming ``amount`` now would exceed the quota."""

        return (await self.used()) + amount > self.max

    async def limit_exceeded(self, amount: int = 1) -> Limit | None:
        """Return this limit when ``amount`` would exceed it, else None."""

        if await self.would_exceed(amount):
            return self
        return None

    async def increment(self, amount: int | None = 1, timestamp: int | None = None) -> bool:
        """Consume ``amount`` units at ``timestamp``.

        Args:
            amount: Integer units; negative releases quota. None means 1.
            timestamp: Event time in epoch milliseconds; defaults to now.
                Events older than the last write are discounted by drift.

        Returns:
            True when accepted and persisted, False when the quota would be
            exceeded (nothing is written).

        Raises:
            InvalidAmountError: If amount is not an integer.
            StoreConflictError: If concurrent writers won every attempt.
        """
        if amount is None:
            amount = 1

        delta = validate_delta(amount)
        if self.max == 0:
            return delta <= 0

        event_time = int(timestamp) if timestamp else now_ms(self._clock)

        for attempt in range(1, self._max_attempts + 1):
            stored = await self._store.get(self.key)
            outcome = apply_event(
                stored,
                max_amount=self.max,
                period=self.period,
                delta=delta,
                timestamp=event_time,
            )

            if not outcome.accepted:
                logger.info("limit.exceeded", extra=self._log_extra(amount=delta))
                return False

            if outcome.state is None:
                logger.debug("limit.absorbed", extra=self._log_extra(amount=delta))
                return True

            written = await self._store.compare_and_set(
                self.key,
                expected=stored,
                new=outcome.state,
                ttl_seconds=self.period,
            )
            if written:
                logger.debug(
                    "limit.accepted",
                    extra=self._log_extra(amount=delta, new_amount=outcome.state.amount),
                )
                return True

            logger.debug("limit.conflict", extra=self._log_extra(attempt=attempt))

        logger.warning(
            "limit.conflict_exhausted",
            extra=self._log_extra(attempts=self._max_attempts),
        )
        raise StoreConflictError(
            code="store_conflict",
            message="concurrent updates prevented the limit from being written",
            details={"key": self.key, "attempts": self._max_attempts},
        )

    async def increment_or_raise(
        self, amount: int | None = 1, timestamp: int | None = None
    ) -> bool:
        """Like ``increment`` but raise instead of returning False.

        Raises:
            QuotaExceeded: If the quota would be exceeded.
        """
        if not await self.increment(amount, timestamp):
            raise quota_exceeded(self)
        return True

    async def decrement(self, amount: int | None = 1, timestamp: int | None = None) -> bool:
        """Release ``amount`` units at ``timestamp``."""

        if amount is None:
            amount = 1
        return await self.increment(-validate_delta(amount), timestamp)

    async def reset(self) -> None:
        """Delete the key's record entirely."""

        await self._store.delete(self.key)
        logger.info("limit.reset", extra=self._log_extra())

    async def used(self) -> int:
        """Whole units consumed right now, decayed and clamped to ``[0, max]``."""

        if self.max == 0:
            return 0
        stored = await self._store.get(self.key)
        return decayed_usage(
            stored,
            max_amount=self.max,
            period=self.period,
            now=now_ms(self._clock),
        )

    async def remaining(self) -> float:
        """Units still available right now."""

        return self.max - await self.used()

    def flatten(self) -> list[Limit]:
        return [self]
