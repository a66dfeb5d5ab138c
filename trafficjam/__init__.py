"""trafficjam - distributed, drift-compensated quota limits.

Quickstart::

    store = RedisLimitStore.from_url("redis://localhost:6379/0")
    limit = Limit("login", user_id, 5, 60, store=store)
    if not await limit.increment():
        ...  # too many attempts
"""

import logging

from trafficjam.adapters.store import (
    AbstractLimitStore,
    InMemoryLimitStore,
    RedisLimitStore,
    create_limit_store,
)
from trafficjam.core.config import LimitRule, Settings, env_file_for, load_settings, settings
from trafficjam.core.drift import CounterState
from trafficjam.core.errors import (
    ActionRequiredError,
    AppError,
    InvalidAmountError,
    LimitNotFoundError,
    MaxRequiredError,
    MissingArgumentError,
    PeriodRequiredError,
    QuotaExceeded,
    StoreConflictError,
    SubjectRequiredError,
    ValidationAppError,
)
from trafficjam.core.keys import KeyDeriver
from trafficjam.core.limit import Limit
from trafficjam.core.limit_group import LimitGroup
from trafficjam.core.logging import enable_logging
from trafficjam.core.registry import LimitsConfig

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "AbstractLimitStore",
    "ActionRequiredError",
    "AppError",
    "CounterState",
    "InMemoryLimitStore",
    "InvalidAmountError",
    "KeyDeriver",
    "Limit",
    "LimitGroup",
    "LimitNotFoundError",
    "LimitRule",
    "LimitsConfig",
    "MaxRequiredError",
    "MissingArgumentError",
    "PeriodRequiredError",
    "QuotaExceeded",
    "RedisLimitStore",
    "Settings",
    "StoreConflictError",
    "SubjectRequiredError",
    "ValidationAppError",
    "create_limit_store",
    "enable_logging",
    "env_file_for",
    "load_settings",
    "settings",
]
