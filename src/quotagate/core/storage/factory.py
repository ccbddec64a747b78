"""Store construction from application settings."""

import structlog

from quotagate.config import Settings, StoreType
from quotagate.core.duration import parse_duration
from quotagate.core.errors import ConfigurationError
from quotagate.core.storage.base import CounterStore
from quotagate.core.storage.memory import MemoryStore
from quotagate.core.storage.redis import RedisStore

logger = structlog.get_logger()


def create_store(settings: Settings) -> CounterStore:
    """
    Create the counter store selected by ``settings.store_backend``.

    Raises:
        ConfigurationError: Redis was selected without a ``redis_url``.
    """
    if settings.store_backend == StoreType.REDIS:
        if not settings.redis_url:
            raise ConfigurationError("redis_url is required when store_backend is 'redis'")
        logger.info("store_created", backend="redis", prefix=settings.redis_prefix)
        return RedisStore.from_url(settings.redis_url, prefix=settings.redis_prefix)

    logger.info("store_created", backend="memory", max_size=settings.memory_max_size)
    return MemoryStore(
        max_size=settings.memory_max_size,
        cleanup_interval=parse_duration(settings.memory_cleanup_interval),
    )
