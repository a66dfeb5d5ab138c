"""Tests for log redaction, formatting and the package logger."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

import trafficjam
from trafficjam.core.config import LogSettings
from trafficjam.core.logging import (
    JsonFormatter,
    PlainFormatter,
    SensitiveDataFilter,
    enable_logging,
    mask_url,
)


def _capture(name: str, formatter: logging.Formatter | None = None) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(formatter or JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


@pytest.fixture
def package_logger():
    logger = logging.getLogger("trafficjam")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


def test_subject_is_redacted() -> None:
    logger, stream = _capture("test_subject_redaction")

    logger.info(
        "limit.exceeded",
        extra={"subject": "alice@example.com", "limit_key": "tj:login:abc"},
    )

    payload = json.loads(stream.getvalue())
    assert payload["subject"] == "[REDACTED]"
    assert payload["limit_key"] == "tj:login:abc"


def test_store_url_keeps_host_but_hides_password() -> None:
    logger, stream = _capture("test_url_masking")

    logger.info(
        "store.created",
        extra={"store": {"redis_url": "redis://:hunter2@cache:6379/0", "backend": "redis"}},
    )

    payload = json.loads(stream.getvalue())
    assert payload["store"] == {"redis_url": "redis://:***@cache:6379/0", "backend": "redis"}


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("redis://:secret@cache:6379/0", "redis://:***@cache:6379/0"),
        ("redis://app:secret@[::1]:6379", "redis://app:***@[::1]:6379"),
        ("redis://cache:6379/0", "redis://cache:6379/0"),
    ],
)
def test_mask_url(url: str, expected: str) -> None:
    assert mask_url(url) == expected


def test_json_puts_event_and_limit_context_first() -> None:
    logger, stream = _capture("test_json_shape")

    logger.info(
        "limit.accepted",
        extra={"zone": "eu", "amount": 1, "action": "login", "limit_key": "tj:login:abc"},
    )

    payload = json.loads(stream.getvalue())
    assert list(payload) == ["ts", "level", "logger", "event", "action", "limit_key", "amount", "zone"]
    assert payload["event"] == "limit.accepted"
    assert payload["level"] == "info"
    assert payload["logger"] == "test_json_shape"


def test_plain_lines_append_context_pairs() -> None:
    logger, stream = _capture("test_plain_shape", PlainFormatter())

    logger.info("limit.exceeded", extra={"action": "login", "subject": "alice"})

    line = stream.getvalue().strip()
    assert line.endswith("limit.exceeded action=login subject=[REDACTED]")
    assert "alice" not in line


def test_package_logger_has_null_handler() -> None:
    logger = logging.getLogger(trafficjam.__name__)
    assert any(isinstance(h, logging.NullHandler) for h in logger.handlers)


def test_enable_logging_leaves_root_logger_alone(package_logger) -> None:
    root = logging.getLogger()
    root_handlers = list(root.handlers)

    handler = enable_logging(LogSettings(level="debug"), stream=StringIO())

    assert root.handlers == root_handlers
    assert handler in package_logger.handlers
    assert package_logger.level == logging.DEBUG
    assert isinstance(handler.formatter, JsonFormatter)


def test_enable_logging_replaces_previous_handler(package_logger) -> None:
    first = enable_logging(stream=StringIO())
    second = enable_logging(LogSettings(format="plain"), stream=StringIO())

    assert first not in package_logger.handlers
    assert second in package_logger.handlers
    assert isinstance(second.formatter, PlainFormatter)


@pytest.mark.asyncio
async def test_limit_events_reach_enabled_stream(package_logger, make_limit) -> None:
    stream = StringIO()
    enable_logging(LogSettings(level="info"), stream=stream)
    limit = make_limit(max=1)

    assert await limit.increment() is True
    assert await limit.increment() is False

    (line,) = stream.getvalue().splitlines()
    payload = json.loads(line)
    assert payload["event"] == "limit.exceeded"
    assert payload["logger"] == "trafficjam.core.limit"
    assert payload["limit_key"] == limit.key
    assert payload["max_amount"] == 1
    assert "user1" not in line
