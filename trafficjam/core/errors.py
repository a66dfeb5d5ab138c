"""Domain exception types.

This module defines the errors raised across the limit core, the store
adapters and the integrations, enabling consistent error handling, logging,
and HTTP responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict

if TYPE_CHECKING:
    from trafficjam.core.limit import Limit


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what is relevant to it.
    """

    code: str
    message: str
    hint: str
    argument: str
    action: str
    key: str
    max: float
    period: int
    attempts: int
    retry_after: float
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for trafficjam failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when caller input or configuration validation fails."""


class MissingArgumentError(ValidationAppError):
    """Raised when a required Limit constructor argument is missing."""


class ActionRequiredError(MissingArgumentError):
    """Raised when a Limit is built without an action."""


class SubjectRequiredError(MissingArgumentError):
    """Raised when a Limit is built without a subject."""


class MaxRequiredError(MissingArgumentError):
    """Raised when a Limit is built without a max."""


class PeriodRequiredError(MissingArgumentError):
    """Raised when a Limit is built without a period."""


class InvalidAmountError(ValidationAppError):
    """Raised when an increment/decrement amount is not an integer."""


class LimitNotFoundError(ValidationAppError):
    """Raised when no rule is registered for an action."""


class StoreConflictError(AppError):
    """Raised when a conditional write keeps losing races for the same key."""


@dataclass
class QuotaExceeded(AppError):
    """Raised by ``increment_or_raise`` when the quota would be exceeded.

    Attributes:
        limit: The limit whose quota was exceeded.
    """

    limit: Limit | None = None


def missing_argument(argument: str) -> MissingArgumentError:
    """Build the named error for a missing constructor argument."""

    error_cls = {
        "action": ActionRequiredError,
        "subject": SubjectRequiredError,
        "max": MaxRequiredError,
        "period": PeriodRequiredError,
    }.get(argument, MissingArgumentError)
    return error_cls(
        code=f"{argument}_required",
        message=f"{argument} is required",
        details={"argument": argument},
    )


def quota_exceeded(limit: Limit) -> QuotaExceeded:
    """Build a QuotaExceeded error carrying the limit's identity."""

    return QuotaExceeded(
        code="quota_exceeded",
        message="limit exceeded",
        details={
            "action": limit.action,
            "key": limit.key,
            "max": limit.max,
            "period": limit.period,
        },
        limit=limit,
    )
