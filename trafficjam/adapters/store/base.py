"""Limit store interfaces.

The limit core depends on this abstraction (not a concrete client) so the
shared store can be Redis in production and an in-memory dict in tests.

Each record is a hash with two string fields, ``amount`` and ``timestamp``,
plus a key TTL. The only write primitive is a conditional one: both fields
and the TTL are committed together, and only if the record still holds the
state the caller computed from.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from trafficjam.core.drift import CounterState


class AbstractLimitStore(ABC):
    """Interface for shared counter stores."""

    @abstractmethod
    async def get(self, key: str) -> CounterState | None:
        """Read all fields of a record.

        Args:
            key: Derived limit key.

        Returns:
            The decoded state, or None when the key has no record.
        """
        raise NotImplementedError

    @abstractmethod
    async def compare_and_set(
        self,
        key: str,
        *,
        expected: CounterState | None,
        new: CounterState,
        ttl_seconds: int,
    ) -> bool:
        """Atomically replace a record if it still equals ``expected``.

        The amount, timestamp and TTL are written as one group: no reader may
        observe a new amount with a stale TTL or vice versa.

        Args:
            key: Derived limit key.
            expected: State the new value was computed from (None = absent).
            new: State to persist.
            ttl_seconds: Expiry to set on the key.

        Returns:
            True when written, False when the record changed concurrently.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a record (no-op when absent)."""
        raise NotImplementedError
