"""Revisioned key-value stores for revcache.

- InMemoryKeyValueStore: for single-process use and tests
- RedisKeyValueStore: for multi-instance deployments
"""

from revcache.store.base import KeyValueStore, KvEntry
from revcache.store.memory import InMemoryKeyValueStore
from revcache.store.redis import RedisKeyValueStore, open_redis_store

__all__ = [
    "KeyValueStore",
    "KvEntry",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "open_redis_store",
]
