"""TTL cache with single-flight request coalescing.

At most one upstream fetch is pending per key. Concurrent callers for the
same key share the pending fetch; results are cached for a per-entry TTL.

Entries live in a bounded ``cachetools.TLRUCache`` whose time-to-use is
``stored_at + ttl``, so the least recently used entries are evicted when
``maxsize`` is reached and expired entries read as absent.
"""

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from cachetools import TLRUCache

from mintsentry.core.exceptions import DataShapeError, FetchTimeoutError
from mintsentry.services.access.models import CacheEntry

log = structlog.get_logger(__name__)

T = TypeVar("T")

Validator = Callable[[Any], bool]


def _entry_expiry(_key: str, entry: CacheEntry, _now: float) -> float:
    # TLRUCache expires once now >= ttu; keep the entry live at exactly stored_at + ttl
    return math.nextafter(entry.expires_at(), math.inf)


def _discard_result(task: "asyncio.Future[Any]") -> None:
    """Retrieve the outcome of an abandoned fetch so it is never reported as lost."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log.debug("abandoned_fetch_failed", error=str(error))


class SingleFlightCache:
    """Keyed TTL cache where concurrent misses share one fetch.

    Attributes:
        maxsize: Maximum number of live entries.
        fetch_timeout: Seconds a fetch may run before every waiter gets FetchTimeoutError.
    """

    def __init__(
        self,
        maxsize: int = 5000,
        fetch_timeout: float = 30.0,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.maxsize = maxsize
        self.fetch_timeout = fetch_timeout
        self._timer = timer
        self._entries: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_entry_expiry, timer=timer)
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._timeouts = 0

    async def get_or_fetch(
        self,
        key: str,
        ttl_seconds: float,
        fetch_fn: Callable[[], Awaitable[T]],
        validate: Validator | None = None,
    ) -> T:
        """Return the cached value for ``key`` or fetch it once.

        Args:
            key: Cache key.
            ttl_seconds: Lifetime of the stored value.
            fetch_fn: Zero-argument coroutine factory producing the value.
            validate: Optional shape check; a falsy return (or DataShapeError)
                marks the value malformed.

        Returns:
            The cached or freshly fetched value.

        Raises:
            FetchTimeoutError: The fetch did not settle within ``fetch_timeout``.
            DataShapeError: The fetched value failed ``validate``.
            Exception: Whatever ``fetch_fn`` raised, delivered to every waiter.
        """
        entry: CacheEntry | None = self._entries.get(key)
        if entry is not None:
            if self._is_well_formed(entry.value, validate):
                self._hits += 1
                log.debug("cache_hit", key=key)
                return entry.value
            log.warning("cache_entry_malformed", key=key)
            self._entries.pop(key, None)

        # Lookup and registration happen with no await in between
        task = self._in_flight.get(key)
        if task is None:
            self._misses += 1
            task = asyncio.ensure_future(self._run_fetch(key, ttl_seconds, fetch_fn, validate))
            self._in_flight[key] = task
            log.debug("cache_miss", key=key)
        else:
            self._coalesced += 1
            log.debug("cache_fetch_coalesced", key=key)

        return await asyncio.shield(task)

    def invalidate(self, key: str) -> bool:
        """Drop the entry for ``key``.

        Returns:
            True if an entry was removed.
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop all entries. Pending fetches are left to settle."""
        self._entries.clear()
        log.info("cache_cleared")

    def in_flight_count(self) -> int:
        """Number of keys with a pending fetch."""
        return len(self._in_flight)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            dict with size, max_size, hits, misses, coalesced, timeouts, hit_rate
        """
        self._entries.expire()
        lookups = self._hits + self._misses + self._coalesced
        return {
            "size": len(self._entries),
            "max_size": self.maxsize,
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "misses": self._misses,
            "coalesced": self._coalesced,
            "timeouts": self._timeouts,
            "hit_rate": self._hits / lookups if lookups > 0 else 0.0,
        }

    async def _run_fetch(
        self,
        key: str,
        ttl_seconds: float,
        fetch_fn: Callable[[], Awaitable[T]],
        validate: Validator | None,
    ) -> T:
        try:
            fetch = asyncio.ensure_future(fetch_fn())
        except BaseException:
            self._in_flight.pop(key, None)
            raise

        try:
            done, _ = await asyncio.wait({fetch}, timeout=self.fetch_timeout)
            if not done:
                self._timeouts += 1
                log.warning("cache_fetch_timeout", key=key, timeout=self.fetch_timeout)
                raise FetchTimeoutError(key, self.fetch_timeout)

            value = fetch.result()
            if not self._is_well_formed(value, validate):
                log.warning("cache_fetched_value_malformed", key=key)
                raise DataShapeError(f"Malformed value fetched for {key!r}")

            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                stored_at=self._timer(),
                ttl=ttl_seconds,
            )
            return value
        finally:
            if not fetch.done():
                # Abandoned, not cancelled: the upstream request runs to completion
                fetch.add_done_callback(_discard_result)
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    @staticmethod
    def _is_well_formed(value: Any, validate: Validator | None) -> bool:
        if validate is None:
            return True
        try:
            return bool(validate(value))
        except DataShapeError:
            return False
