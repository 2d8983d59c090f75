"""Runtime wiring for the revcache distributed cache."""

from __future__ import annotations

import logging
from functools import partial

from revcache.cache import DistributedCache
from revcache.config import Settings, settings
from revcache.keys import get_key_encoder
from revcache.observability.logging import configure_logging
from revcache.observability.metrics import get_metrics
from revcache.store.base import KeyValueStore
from revcache.store.memory import InMemoryKeyValueStore
from revcache.store.redis import open_redis_store

logger = logging.getLogger(__name__)

_cache: DistributedCache | None = None


def create_cache(config: Settings | None = None) -> DistributedCache:
    """Create a distributed cache based on configuration."""
    config = config or settings
    backend = config.store_backend.lower()

    if backend in {"memory", "inmemory", "in_memory"}:
        memory_store = InMemoryKeyValueStore(bucket=config.bucket)

        async def open_memory_store() -> KeyValueStore:
            return memory_store

        store_factory = open_memory_store
    elif backend == "redis":
        store_factory = partial(
            open_redis_store,
            config.redis_url,
            config.bucket,
            namespace=config.namespace,
        )
    else:
        raise ValueError("Unsupported store_backend. Supported values: memory, redis.")

    return DistributedCache(
        store_factory,
        key_encoder=get_key_encoder(config.key_encoder),
        key_prefix=config.key_prefix,
    )


def get_cache() -> DistributedCache:
    """Get the singleton cache instance."""
    global _cache
    if _cache is None:
        _cache = create_cache()
        logger.info("Distributed cache created for bucket %s", settings.bucket)
    return _cache


async def start_cache() -> DistributedCache:
    """Configure logging and metrics from settings and return the cache.

    Call once at application startup.
    """
    configure_logging(json_format=settings.log_json, level=settings.log_level)
    get_metrics()  # Initialize metrics registry

    cache = get_cache()
    logger.info("Distributed cache started (%s)", settings.store_backend)
    return cache


async def close_cache() -> None:
    """Close the singleton cache instance."""
    global _cache
    if _cache is None:
        return
    await _cache.aclose()
    _cache = None
