"""Limit store adapters - abstract over the shared counter store."""

from trafficjam.adapters.store.base import AbstractLimitStore
from trafficjam.adapters.store.factory import create_limit_store
from trafficjam.adapters.store.in_memory import InMemoryLimitStore
from trafficjam.adapters.store.redis_store import RedisLimitStore

__all__ = [
    "AbstractLimitStore",
    "InMemoryLimitStore",
    "RedisLimitStore",
    "create_limit_store",
]
