"""Expiration policy for cache entries.

The store only knows per-entry TTLs. Absolute, relative and sliding
expiration options are folded into a single effective TTL here, together
with the metadata the entry carries so later reads can enforce the absolute
bound and renew the sliding window.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from revcache.errors import InvalidArgumentError

_ZERO = timedelta(0)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class CacheEntryOptions:
    """Expiration options for a cache write. Any subset may be set."""

    absolute_expiration: datetime | None = None
    absolute_expiration_relative_to_now: timedelta | None = None
    sliding_expiration: timedelta | None = None


@dataclass(frozen=True)
class ExpirationPlan:
    """Validated expiration for a single write.

    Attributes:
        ttl: TTL to hand the store (None means no TTL, zero means already expired)
        absolute_expiration: Resolved absolute instant stored with the entry
        sliding_expiration: Sliding window stored with the entry
    """

    ttl: timedelta | None
    absolute_expiration: datetime | None
    sliding_expiration: timedelta | None


def validate_options(options: CacheEntryOptions, now: datetime) -> None:
    """Reject options that can never describe a live entry.

    Raises:
        InvalidArgumentError: On a naive or non-future absolute expiration, or a
            non-positive relative or sliding duration.
    """
    absolute = options.absolute_expiration
    if absolute is not None:
        if absolute.tzinfo is None or absolute.utcoffset() is None:
            raise InvalidArgumentError(
                "absolute_expiration",
                absolute,
                "The absolute expiration must be timezone-aware.",
            )
        if absolute <= now:
            raise InvalidArgumentError(
                "absolute_expiration",
                absolute,
                "The absolute expiration value must be in the future.",
            )

    relative = options.absolute_expiration_relative_to_now
    if relative is not None and relative <= _ZERO:
        raise InvalidArgumentError(
            "absolute_expiration_relative_to_now",
            relative,
            "The relative expiration value must be positive.",
        )

    sliding = options.sliding_expiration
    if sliding is not None and sliding <= _ZERO:
        raise InvalidArgumentError(
            "sliding_expiration", sliding, "The sliding expiration value must be positive."
        )


def resolve_absolute_expiration(options: CacheEntryOptions, now: datetime) -> datetime | None:
    """Resolve the absolute bound; a relative duration takes precedence."""
    if options.absolute_expiration_relative_to_now is not None:
        return now + options.absolute_expiration_relative_to_now
    return options.absolute_expiration


def plan_expiration(options: CacheEntryOptions, now: datetime) -> ExpirationPlan:
    """Validate options and compute the TTL plus stored metadata."""
    validate_options(options, now)

    absolute = resolve_absolute_expiration(options, now)
    sliding = options.sliding_expiration

    if absolute is None:
        return ExpirationPlan(ttl=sliding, absolute_expiration=None, sliding_expiration=sliding)

    ttl = absolute - now
    if ttl <= _ZERO:
        # Already past; callers treat this as an immediate delete
        ttl = _ZERO
    elif sliding is not None:
        ttl = min(ttl, sliding)

    return ExpirationPlan(ttl=ttl, absolute_expiration=absolute, sliding_expiration=sliding)


def compute_effective_ttl(options: CacheEntryOptions, now: datetime) -> timedelta | None:
    """Compute the TTL the store should apply to a write.

    Returns:
        None when no expiration is configured, ``timedelta(0)`` when the
        absolute bound has already passed, otherwise the smaller of the
        remaining absolute lifetime and the sliding window.

    Raises:
        InvalidArgumentError: If the options fail validation.
    """
    return plan_expiration(options, now).ttl


def renewal_ttl(
    absolute_expiration: datetime | None,
    sliding_expiration: timedelta,
    now: datetime,
) -> timedelta:
    """TTL for renewing a sliding entry, capped by its absolute bound.

    The result may be zero or negative when the absolute bound has passed;
    callers skip the renewal in that case.
    """
    if absolute_expiration is None:
        return sliding_expiration
    return min(sliding_expiration, absolute_expiration - now)
