"""Structured logging for trafficjam.

Every module logs under the ``trafficjam`` logger with a dotted event name
as the message and the limit context in ``extra``::

    logger.info("limit.exceeded", extra={"action": "login", "limit_key": key})

The package itself only installs a ``NullHandler``. Applications either
route ``trafficjam`` records through their own handlers (adding
``SensitiveDataFilter`` keeps subjects and store passwords out of them) or
call ``enable_logging`` for ready-made JSON or plain lines.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging import LogRecord
from typing import Any, Iterable, Mapping, TextIO
from urllib.parse import urlsplit, urlunsplit

from trafficjam.core.config import LogSettings, settings

LOGGER_NAME = "trafficjam"

REDACTED = "[REDACTED]"

# Limit context, emitted first and in this order.
CONTEXT_FIELDS = (
    "action",
    "limit_key",
    "limit_keys",
    "max_amount",
    "period_s",
    "amount",
    "new_amount",
    "attempt",
    "attempts",
    "subject_hash",
)

SENSITIVE_FIELDS = frozenset({"subject", "password", "authorization", "token"})
URL_FIELDS = frozenset({"redis_url", "url"})

_RECORD_ATTRS = frozenset(LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}


def mask_url(url: str) -> str:
    """Hide the password of a connection URL, keeping user, host and path."""

    parts = urlsplit(url)
    if parts.password is None:
        return url
    host = parts.netloc.rpartition("@")[2]
    return urlunsplit(parts._replace(netloc=f"{parts.username or ''}:***@{host}"))


def _scrub(name: str, value: Any, sensitive: frozenset[str]) -> Any:
    name = name.lower()
    if name in sensitive:
        return REDACTED
    if name in URL_FIELDS and isinstance(value, str):
        return mask_url(value)
    if isinstance(value, Mapping):
        return {k: _scrub(str(k), v, sensitive) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub("", v, sensitive) for v in value]
    return value


def record_context(
    record: LogRecord, sensitive_fields: Iterable[str] = SENSITIVE_FIELDS
) -> dict[str, Any]:
    """Return the ``extra`` fields of ``record`` with sensitive values scrubbed."""

    sensitive = frozenset(f.lower() for f in sensitive_fields)
    return {
        key: _scrub(key, value, sensitive)
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def _ordered(context: dict[str, Any]) -> dict[str, Any]:
    ordered = {key: context.pop(key) for key in CONTEXT_FIELDS if key in context}
    ordered.update(sorted(context.items()))
    return ordered


class SensitiveDataFilter(logging.Filter):
    """Scrub subjects and store credentials on the record itself.

    Attach it to a handler so that every formatter behind it, including
    ones this package does not control, sees the scrubbed values.
    """

    def __init__(self, sensitive_fields: Iterable[str] = SENSITIVE_FIELDS) -> None:
        super().__init__()
        self.sensitive_fields = frozenset(f.lower() for f in sensitive_fields)

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in record_context(record, self.sensitive_fields).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ``ts``, ``level``, ``logger``, ``event``, context."""

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(_ordered(record_context(record)))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class PlainFormatter(logging.Formatter):
    """``<time> <LEVEL> <logger> <event> key=value ...`` lines."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: LogRecord) -> str:  # noqa: D401
        line = super().format(record)
        context = _ordered(record_context(record))
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


class _PackageHandler(logging.StreamHandler):
    """Handler installed by ``enable_logging``; replaced on the next call."""


def enable_logging(
    log_settings: LogSettings | None = None, *, stream: TextIO | None = None
) -> logging.Handler:
    """Write trafficjam's records to ``stream`` (stderr by default).

    Only the ``trafficjam`` logger is configured; the root logger and its
    handlers are left alone. Calling again replaces the previous handler.

    Args:
        log_settings: Level and format; defaults to ``settings.log``.
        stream: Destination text stream.

    Returns:
        The installed handler.
    """

    cfg = log_settings or settings.log
    logger = logging.getLogger(LOGGER_NAME)

    for handler in [h for h in logger.handlers if isinstance(h, _PackageHandler)]:
        logger.removeHandler(handler)
        handler.close()

    handler = _PackageHandler(stream or sys.stderr)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(PlainFormatter() if cfg.format == "plain" else JsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
    return handler
