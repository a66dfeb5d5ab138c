"""FastAPI wiring for configured limits.

This module exposes limits to an HTTP layer without the core depending on
FastAPI:

- ``require_quota`` builds a route dependency that consumes quota and
  answers 429 Too Many Requests when it is exhausted.
- ``setup_exception_handlers`` maps domain errors (including
  ``QuotaExceeded`` raised by ``increment_or_raise`` inside routes) to
  consistent JSON responses.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from trafficjam.adapters.store.base import AbstractLimitStore
from trafficjam.core.errors import AppError, QuotaExceeded, ValidationAppError
from trafficjam.core.limit import Limit
from trafficjam.core.registry import LimitsConfig

logger = logging.getLogger(__name__)

SubjectGetter = Callable[[Request], Any]


def client_host(request: Request) -> str:
    """Default subject: the client IP address."""

    return request.client.host if request.client else "unknown"


def retry_after_seconds(limit: Limit, used: int, amount: int = 1) -> int:
    """Seconds until ``amount`` fits again, given the current usage."""

    if limit.max <= 0 or amount > limit.max:
        return limit.period
    excess = used + amount - limit.max
    if excess <= 0:
        return 0
    return max(1, math.ceil(excess * limit.period / limit.max))


def _hash_subject(subject: Any) -> str:
    """Hash the subject for logging without exposing it."""
    return hashlib.sha256(str(subject).encode()).hexdigest()[:16]


async def _rate_limit_headers(limit: Limit, amount: int) -> dict[str, str]:
    used = await limit.used()
    return {
        "Retry-After": str(retry_after_seconds(limit, used, amount)),
        "X-RateLimit-Limit": f"{limit.max:g}",
        "X-RateLimit-Remaining": f"{max(0, limit.max - used):g}",
    }


def require_quota(
    config: LimitsConfig,
    action: str,
    *,
    store: AbstractLimitStore,
    subject_from: SubjectGetter = client_host,
    amount: int = 1,
    include_headers: bool = True,
    clock: Callable[[], float] = time.time,
) -> Callable[[Request], Awaitable[Limit]]:
    """Build a FastAPI dependency enforcing the limit of ``action``.

    Args:
        config: Registry holding the rule for ``action``.
        action: Configured action name.
        store: Shared counter store.
        subject_from: Extracts the subject from the request.
        amount: Units consumed per request.
        include_headers: Add Retry-After and X-RateLimit-* headers on 429.
        clock: Time source returning UNIX time in seconds.

    Returns:
        Dependency returning the consumed ``Limit``.

    Raises:
        LimitNotFoundError: If ``action`` has no configured rule.
    """

    # Unknown actions fail at wiring time.
    config.rule(action)

    async def enforce(request: Request) -> Limit:
        subject = subject_from(request)
        limit = config.limit(action, subject, store=store, clock=clock)

        if await limit.increment(amount):
            logger.info(
                "quota.allowed",
                extra={"action": action, "subject_hash": _hash_subject(subject)},
            )
            return limit

        headers = await _rate_limit_headers(limit, amount) if include_headers else {}
        logger.warning(
            "quota.exceeded",
            extra={
                "action": action,
                "subject_hash": _hash_subject(subject),
                "retry_after_s": headers.get("Retry-After"),
            },
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers=headers or None,
        )

    return enforce


async def quota_exceeded_handler(request: Request, exc: QuotaExceeded) -> JSONResponse:
    """Translate ``QuotaExceeded`` into 429 with rate limit headers."""

    headers: dict[str, str] = {}
    if exc.limit is not None:
        headers = await _rate_limit_headers(exc.limit, 1)

    logger.warning(
        "quota_exceeded_handled",
        extra={"error_code": exc.code, "request_path": request.url.path},
    )

    error_content: dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": error_content},
        headers=headers or None,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain errors with a consistent JSON format.

    - ValidationAppError → 400 Bad Request (client fault)
    - any other AppError → 500 Internal Server Error
    """
    status_code = 400 if isinstance(exc, ValidationAppError) else 500

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content: dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the domain exception handlers with a FastAPI app.

    Specific handlers are registered before the general AppError one.
    """
    app.exception_handler(QuotaExceeded)(quota_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
