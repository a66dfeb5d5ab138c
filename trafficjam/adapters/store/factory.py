"""Factory for creating limit store instances."""

import logging

from trafficjam.adapters.store.base import AbstractLimitStore
from trafficjam.adapters.store.in_memory import InMemoryLimitStore
from trafficjam.adapters.store.redis_store import RedisLimitStore
from trafficjam.core.config import StoreSettings, settings
from trafficjam.core.errors import ValidationAppError
from trafficjam.core.logging import mask_url

logger = logging.getLogger(__name__)


def create_limit_store(store_settings: StoreSettings | None = None) -> AbstractLimitStore:
    """Instantiate the limit store selected by configuration.

    Args:
        store_settings: Store settings; defaults to the global settings.

    Returns:
        AbstractLimitStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "redis":
        if not cfg.redis_url:
            raise ValidationAppError(
                code="store_missing_redis_url",
                message="Redis backend requires TRAFFICJAM_STORE_REDIS_URL",
            )
        logger.info(
            "store.created",
            extra={"backend": backend, "redis_url": mask_url(cfg.redis_url)},
        )
        return RedisLimitStore.from_url(
            cfg.redis_url,
            socket_timeout=cfg.socket_timeout_seconds,
        )

    if backend == "memory":
        logger.info("store.created", extra={"backend": backend})
        return InMemoryLimitStore()

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown store backend: '{backend}'. Supported backends: redis, memory",
    )
