"""Distributed cache facade.

Composes key encoding, expiration planning, the entry format and the
sliding renewal protocol on top of a revisioned key-value store.

Every operation is available as a coroutine (``get``, ``set``, ``remove``,
``refresh``, ``try_get``) and as a blocking call with a ``_sync`` suffix.
Blocking calls run the coroutine on a background event loop owned by the
cache and wait for the result; use either the async or the blocking API on
a given instance, not both.

Example:
    cache = DistributedCache(lambda: open_redis_store(url, "sessions"))

    await cache.set(
        "user:42",
        b"...",
        CacheEntryOptions(sliding_expiration=timedelta(minutes=20)),
    )
    payload = await cache.get("user:42")
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable, Coroutine
from datetime import timedelta
from typing import Any, TypeVar

from revcache.entry import CacheEntry, encode_entry
from revcache.expiration import CacheEntryOptions, Clock, plan_expiration, utc_now
from revcache.keys import KeyEncoder, PercentKeyEncoder, validate_store_key
from revcache.observability.logging import LogContext
from revcache.observability.metrics import record_cache_operation
from revcache.renewal import RenewalProtocol
from revcache.store.base import KeyValueStore

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], Awaitable[KeyValueStore]]
BytesLike = bytes | bytearray | memoryview

T = TypeVar("T")


class DistributedCache:
    """Byte-payload cache with absolute and sliding expiration.

    Args:
        store_factory: Coroutine function that opens the backing store. Called
            lazily on first use; a failed call is retried by the next operation.
        key_encoder: Maps application keys to store keys (percent encoding by default)
        key_prefix: Prepended to every encoded key as ``"{prefix}."``
        clock: Source of the current UTC time
        hybrid_cache_active: Predicate reporting whether a hybrid cache sits in
            front of this instance
    """

    def __init__(
        self,
        store_factory: StoreFactory,
        *,
        key_encoder: KeyEncoder | None = None,
        key_prefix: str = "",
        clock: Clock | None = None,
        hybrid_cache_active: Callable[[], bool] | None = None,
    ):
        self._store_factory = store_factory
        self._key_encoder = key_encoder or PercentKeyEncoder()
        self._key_prefix = key_prefix.rstrip(".")
        if self._key_prefix:
            validate_store_key(self._key_prefix)
        self._clock = clock or utc_now
        self._hybrid_cache_active = hybrid_cache_active

        self._store: KeyValueStore | None = None
        self._opening: asyncio.Task[KeyValueStore] | None = None
        self._opening_waiters = 0

        # Background loop for blocking calls
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._loop_lock = threading.Lock()

    @property
    def key_prefix(self) -> str:
        """Prefix applied to encoded keys (empty if none)."""
        return self._key_prefix

    def is_hybrid_cache_active(self) -> bool:
        """Check whether a hybrid cache uses this instance as its backend."""
        if self._hybrid_cache_active is None:
            return False
        return bool(self._hybrid_cache_active())

    def store_key(self, key: str) -> str:
        """Encode an application key into the key written to the store.

        Raises:
            InvalidKeyError: If the key is empty.
        """
        encoded = self._key_encoder.encode(key)
        if self._key_prefix:
            return f"{self._key_prefix}.{encoded}"
        return encoded

    # -------------------------------------------------------------------------
    # Store handle
    # -------------------------------------------------------------------------

    async def _get_store(self) -> KeyValueStore:
        """Get the store, opening it on first use.

        Concurrent callers share one in-flight open attempt and all see its
        result, including its failure. A caller that gives up does not cancel
        the attempt for the others; the attempt is cancelled only when its
        last waiter leaves. A failed or cancelled attempt leaves no handle
        behind, so the next caller starts a new one.
        """
        if self._store is not None:
            return self._store

        task = self._opening
        if task is None or task.done() or task.cancelling():
            task = asyncio.create_task(self._open_store())
            task.add_done_callback(self._clear_opening)
            self._opening = task

        self._opening_waiters += 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._opening_waiters == 1 and not task.done():
                task.cancel()
            raise
        finally:
            self._opening_waiters -= 1

    async def _open_store(self) -> KeyValueStore:
        try:
            store = await self._store_factory()
        except Exception:
            logger.exception("Failed to open cache store")
            raise
        self._store = store
        logger.info("Cache store ready for bucket %s", store.bucket)
        return store

    def _clear_opening(self, task: asyncio.Task[KeyValueStore]) -> None:
        if self._opening is task:
            self._opening = None

    async def _run(
        self,
        operation: str,
        key: str,
        action: Callable[[KeyValueStore], Awaitable[T]],
        timeout: float | None,
    ) -> T:
        """Run an action against the store with logging, metrics and a timeout."""

        async def call() -> T:
            store = await self._get_store()
            return await action(store)

        start = time.perf_counter()
        with LogContext(operation=operation, cache_key=key):
            try:
                return await asyncio.wait_for(call(), timeout=timeout)
            except Exception:
                logger.exception("Exception in distributed cache %s", operation)
                raise
            finally:
                record_cache_operation(operation, time.perf_counter() - start)

    # -------------------------------------------------------------------------
    # Async API
    # -------------------------------------------------------------------------

    async def get(self, key: str, *, timeout: float | None = None) -> bytes | None:
        """Get a payload, renewing its sliding expiration.

        Args:
            key: Application key
            timeout: Upper bound in seconds for all store calls of this operation

        Returns:
            The payload, or None on a miss.

        Raises:
            InvalidKeyError: If the key is empty.
            CorruptEntryError: If the stored value cannot be decoded.
        """
        store_key = self.store_key(key)
        return await self._run(
            "get",
            store_key,
            lambda store: RenewalProtocol(store, self._clock).get_and_refresh(store_key),
            timeout,
        )

    async def set(
        self,
        key: str,
        value: BytesLike,
        options: CacheEntryOptions | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Store a payload, replacing any existing entry.

        Key and options are validated before the store is contacted.

        Raises:
            InvalidKeyError: If the key is empty.
            InvalidArgumentError: If the expiration options are invalid.
        """
        store_key = self.store_key(key)
        plan = plan_expiration(options or CacheEntryOptions(), self._clock())
        data = encode_entry(
            CacheEntry(
                payload=bytes(value),
                absolute_expiration=plan.absolute_expiration,
                sliding_expiration=plan.sliding_expiration,
            )
        )

        async def write(store: KeyValueStore) -> None:
            if plan.ttl is not None and plan.ttl <= timedelta(0):
                # Expired on arrival
                await store.delete(store_key)
                return
            await store.put(store_key, data, plan.ttl)

        await self._run("set", store_key, write, timeout)

    async def remove(self, key: str, *, timeout: float | None = None) -> None:
        """Remove an entry. Removing a missing key is not an error."""
        store_key = self.store_key(key)
        await self._run("remove", store_key, lambda store: store.delete(store_key), timeout)

    async def refresh(self, key: str, *, timeout: float | None = None) -> None:
        """Renew an entry's sliding expiration without returning its payload."""
        store_key = self.store_key(key)
        await self._run(
            "refresh",
            store_key,
            lambda store: RenewalProtocol(store, self._clock).get_and_refresh(
                store_key, get_data=False
            ),
            timeout,
        )

    async def try_get(
        self,
        key: str,
        destination: bytearray,
        *,
        timeout: float | None = None,
    ) -> bool:
        """Append the payload to ``destination`` if present.

        Never raises on cache or store errors; they count as a miss.

        Returns:
            True if the payload was written to ``destination``.
        """
        try:
            payload = await self.get(key, timeout=timeout)
        except Exception:
            return False

        if payload is None:
            return False
        destination.extend(payload)
        return True

    async def aclose(self) -> None:
        """Close the store handle. The next operation opens a new one."""
        opening, self._opening = self._opening, None
        if opening is not None and not opening.done():
            opening.cancel()

        store, self._store = self._store, None
        if store is not None:
            await store.close()

    # -------------------------------------------------------------------------
    # Blocking API
    # -------------------------------------------------------------------------

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._loop_lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever,
                    name="revcache-blocking",
                    daemon=True,
                )
                thread.start()
                self._loop = loop
                self._loop_thread = thread
            return self._loop

    def _run_sync(self, coro: Coroutine[Any, Any, T]) -> T:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            coro.close()
            raise RuntimeError(
                "Blocking cache calls cannot run inside an event loop; await the async method"
            )

        loop = self._ensure_loop()
        return asyncio.run_coroutine_threadsafe(coro, loop).result()

    def get_sync(self, key: str, *, timeout: float | None = None) -> bytes | None:
        """Blocking form of :meth:`get`."""
        return self._run_sync(self.get(key, timeout=timeout))

    def set_sync(
        self,
        key: str,
        value: BytesLike,
        options: CacheEntryOptions | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Blocking form of :meth:`set`."""
        self._run_sync(self.set(key, value, options, timeout=timeout))

    def remove_sync(self, key: str, *, timeout: float | None = None) -> None:
        """Blocking form of :meth:`remove`."""
        self._run_sync(self.remove(key, timeout=timeout))

    def refresh_sync(self, key: str, *, timeout: float | None = None) -> None:
        """Blocking form of :meth:`refresh`."""
        self._run_sync(self.refresh(key, timeout=timeout))

    def try_get_sync(
        self,
        key: str,
        destination: bytearray,
        *,
        timeout: float | None = None,
    ) -> bool:
        """Blocking form of :meth:`try_get`."""
        return self._run_sync(self.try_get(key, destination, timeout=timeout))

    def close_sync(self) -> None:
        """Close the store handle and stop the background loop."""
        with self._loop_lock:
            loop, thread = self._loop, self._loop_thread
            self._loop = None
            self._loop_thread = None

        if loop is None:
            return

        try:
            asyncio.run_coroutine_threadsafe(self.aclose(), loop).result()
        finally:
            loop.call_soon_threadsafe(loop.stop)
            if thread is not None:
                thread.join()
            loop.close()
