"""revcache: a distributed byte cache over a revisioned key-value store."""

from revcache.cache import DistributedCache
from revcache.errors import (
    CacheError,
    CorruptEntryError,
    InvalidArgumentError,
    InvalidKeyError,
    RevisionConflictError,
)
from revcache.expiration import CacheEntryOptions, compute_effective_ttl
from revcache.keys import KeyEncoder, PercentKeyEncoder, PunycodeKeyEncoder, get_key_encoder

__all__ = [
    "DistributedCache",
    "CacheEntryOptions",
    "compute_effective_ttl",
    # Keys
    "KeyEncoder",
    "PercentKeyEncoder",
    "PunycodeKeyEncoder",
    "get_key_encoder",
    # Errors
    "CacheError",
    "CorruptEntryError",
    "InvalidArgumentError",
    "InvalidKeyError",
    "RevisionConflictError",
]
