"""Drift-compensated counter arithmetic.

Consumption behaves like a continuous-time leaky bucket: the stored amount
decays linearly at ``max / period`` units per second since the last write.
Every function here is pure; reading and writing the store is the caller's
job (see ``trafficjam.core.limit``).

Timestamps are integer epoch milliseconds, periods are whole seconds.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from trafficjam.core.errors import InvalidAmountError

AMOUNT_FIELD = "amount"
TIMESTAMP_FIELD = "timestamp"

# Digits kept before rounding usage up, so float noise like 2.0000000000000004
# is not reported as 3.
_USAGE_PRECISION = 9


@dataclass(frozen=True)
class CounterState:
    """Persisted consumption level of one key.

    Attributes:
        amount: Consumption level at ``timestamp`` (may be stale or out of range).
        timestamp: Epoch milliseconds of the authoritative last write.
    """

    amount: float
    timestamp: int

    def to_fields(self) -> dict[str, str]:
        """Encode the state as string hash fields."""

        return {
            AMOUNT_FIELD: repr(float(self.amount)),
            TIMESTAMP_FIELD: str(int(self.timestamp)),
        }

    @classmethod
    def from_fields(cls, fields: Mapping[Any, Any] | None) -> CounterState | None:
        """Decode hash fields, returning None for an absent record.

        Field names and values may be ``str`` or ``bytes`` depending on how
        the store client decodes responses.
        """

        if not fields:
            return None
        decoded = {_text(name): _text(value) for name, value in fields.items()}
        raw_timestamp = decoded.get(TIMESTAMP_FIELD)
        if not raw_timestamp:
            return None
        return cls(
            amount=float(decoded.get(AMOUNT_FIELD) or 0),
            timestamp=int(float(raw_timestamp)),
        )


@dataclass(frozen=True)
class DriftOutcome:
    """Result of applying one event to a counter.

    Attributes:
        accepted: Whether the event stays within quota.
        state: New state to persist, or None when nothing must be written
            (rejected, or absorbed entirely by drift).
    """

    accepted: bool
    state: CounterState | None = None


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def now_ms(clock: Callable[[], float]) -> int:
    """Convert an epoch-seconds clock reading to integer milliseconds."""

    return int(clock() * 1000)


def clamp_amount(amount: float, max_amount: float) -> float:
    """Clamp a stored amount to ``[0, max_amount]``."""

    return min(max(amount, 0.0), max_amount)


def drift_for(time_diff_ms: float, *, max_amount: float, period: int) -> float:
    """Amount decayed over ``time_diff_ms`` milliseconds (signed)."""

    return (time_diff_ms / 1000) * max_amount / period


def validate_delta(delta: Any) -> int:
    """Ensure an increment/decrement amount is an integer.

    Integral floats such as ``2.0`` are accepted and converted.

    Raises:
        InvalidAmountError: If the amount is not an integer.
    """

    if isinstance(delta, bool):
        raise _invalid_amount(delta)
    if isinstance(delta, numbers.Integral):
        return int(delta)
    if isinstance(delta, float) and delta.is_integer():
        return int(delta)
    raise _invalid_amount(delta)


def _invalid_amount(delta: Any) -> InvalidAmountError:
    return InvalidAmountError(
        code="invalid_amount",
        message="amount must be an integer",
        details={"context": {"amount": repr(delta)}},
    )


def apply_event(
    stored: CounterState | None,
    *,
    max_amount: float,
    period: int,
    delta: int,
    timestamp: int,
) -> DriftOutcome:
    """Compute the counter state after an increment (or decrement) event.

    Args:
        stored: Current persisted state, None when the key has no record.
        max_amount: Quota capacity.
        period: Window length in seconds.
        delta: Signed amount; positive consumes, negative releases.
        timestamp: Event time in epoch milliseconds.

    Returns:
        DriftOutcome telling whether the event is accepted and what to write.
    """

    if stored is None or not stored.timestamp:
        return _check(CounterState(amount=delta, timestamp=timestamp), max_amount)

    time_diff = timestamp - stored.timestamp
    drift = drift_for(time_diff, max_amount=max_amount, period=period)
    old_amount = clamp_amount(stored.amount, max_amount)

    if time_diff < 0:
        # Backdated: discount the event by what would have decayed between
        # its own time and the last recorded write.
        if delta < 0:
            adjusted = delta - drift
            magnitude = -adjusted
        else:
            adjusted = delta + drift
            magnitude = adjusted
        if magnitude <= 0:
            return DriftOutcome(accepted=True)
        new_state = CounterState(amount=old_amount + adjusted, timestamp=stored.timestamp)
        return _check(new_state, max_amount)

    current = max(old_amount - drift, 0.0)
    return _check(CounterState(amount=current + delta, timestamp=timestamp), max_amount)


def _check(state: CounterState, max_amount: float) -> DriftOutcome:
    if state.amount > max_amount:
        return DriftOutcome(accepted=False)
    return DriftOutcome(accepted=True, state=state)


def decayed_usage(
    stored: CounterState | None,
    *,
    max_amount: float,
    period: int,
    now: int,
) -> int:
    """Whole units consumed at ``now`` (epoch ms), clamped to ``[0, max]``."""

    if stored is None or not stored.timestamp or not stored.amount:
        return 0

    elapsed_seconds = max(round((now - stored.timestamp) / 1000), 0)
    drift = max_amount * elapsed_seconds / period
    remaining = round(clamp_amount(stored.amount, max_amount) - drift, _USAGE_PRECISION)
    return max(math.ceil(remaining), 0)
