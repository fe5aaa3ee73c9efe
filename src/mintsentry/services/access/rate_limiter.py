"""Rate-limited, retrying access to an external provider.

Every upstream read goes through ``RateLimitedAccess.schedule()``, which:

- bounds concurrency (``max_concurrent`` outstanding operations),
- spends a refilling token budget (``capacity`` per ``refill_interval``),
- spaces dispatches at least ``min_spacing`` apart,
- retries transient failures with exponential backoff plus jitter.

One instance is shared by every client of the same provider, so the
limits hold globally across callers, not per key.

Example:
    ```python
    limiter = RateLimitedAccess(name="solana_rpc", capacity=200, refill_interval=60)
    supply = await limiter.schedule(lambda: client.fetch_supply(mint), "getTokenSupply")
    ```
"""

import asyncio
import random
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from mintsentry.constants.provider import RETRY_JITTER_SECONDS, RETRYABLE_STATUS_CODES
from mintsentry.core.exceptions import (
    ExternalServiceError,
    FatalProviderError,
    MintSentryError,
    RetryExhaustedError,
    TransientProviderError,
)
from mintsentry.services.access.models import RateLimiterState

log = structlog.get_logger(__name__)

T = TypeVar("T")

_RETRYABLE_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
    ConnectionResetError,
    TimeoutError,
)


def is_retryable(error: BaseException) -> bool:
    """Classify an error as retryable (True) or fatal (False).

    Retryable: HTTP 429/500/502/503, connection resets, connect/read timeouts,
    and TransientProviderError raised by provider clients. Exhaustion errors
    are never retried again.
    """
    if isinstance(error, RetryExhaustedError):
        return False
    if isinstance(error, TransientProviderError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, _RETRYABLE_TRANSPORT_ERRORS)


def _status_code_of(error: BaseException) -> int | None:
    if isinstance(error, ExternalServiceError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


class RateLimitedAccess:
    """Concurrency, budget, spacing and retry policy for one provider.

    Attributes:
        name: Provider name used in errors and logs.
        max_retries: Retries allowed for retryable errors (attempts = max_retries + 1).
        backoff_base: Base delay in seconds.
        backoff_cap: Maximum delay in seconds.
    """

    def __init__(
        self,
        name: str,
        capacity: int = 200,
        refill_interval: float = 60.0,
        max_concurrent: int = 10,
        min_spacing: float = 0.1,
        max_retries: int = 5,
        backoff_base: float = 0.5,
        backoff_cap: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if capacity < 1 or max_concurrent < 1:
            raise ValueError("capacity and max_concurrent must be >= 1")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.name = name
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._state = RateLimiterState(
            capacity=capacity,
            refill_interval=refill_interval,
            max_concurrent=max_concurrent,
            min_spacing=min_spacing,
            last_refill_at=clock(),
        )
        self._semaphore = asyncio.Semaphore(max_concurrent)
        # Serializes budget/spacing checks so grants happen one at a time
        self._grant_lock = asyncio.Lock()
        self._dispatched = 0
        self._retries = 0

        log.debug(
            "rate_limited_access_initialized",
            provider=name,
            capacity=capacity,
            refill_interval=refill_interval,
            max_concurrent=max_concurrent,
            min_spacing=min_spacing,
            max_retries=max_retries,
        )

    @property
    def state(self) -> RateLimiterState:
        """Current limiter state (read-only view for stats and tests)."""
        return self._state

    def compute_backoff(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based).

        ``min(cap, base * 2**retry_index + jitter)`` with jitter in [0, 100ms).
        """
        jitter = self._rng.random() * RETRY_JITTER_SECONDS
        return min(self.backoff_cap, self.backoff_base * (2**retry_index) + jitter)

    async def schedule(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> T:
        """Run ``operation`` under the limiter with retries.

        Args:
            operation: Zero-argument coroutine factory performing one idempotent read.
                Called once per attempt.
            description: Human-readable label for logs.

        Returns:
            The operation's result.

        Raises:
            RetryExhaustedError: A retryable error persisted past ``max_retries``.
            FatalProviderError: A non-retryable upstream failure.
            MintSentryError: Typed errors raised by the operation propagate unchanged.
        """
        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=self._before_sleep(description),
            reraise=True,
        )

        result: T
        try:
            async for attempt in retrying:
                with attempt:
                    async with self._slot():
                        result = await operation()
        except Exception as e:
            attempts = retrying.statistics.get("attempt_number", 1)
            failure = self._to_typed_failure(e, description, attempts)
            if failure is e:
                raise
            raise failure from e

        return result

    def get_stats(self) -> dict[str, Any]:
        """Get limiter statistics.

        Returns:
            dict with budget, concurrency and retry counters
        """
        return {
            "provider": self.name,
            "capacity": self._state.capacity,
            "remaining_tokens": self._state.remaining_tokens,
            "in_flight": self._state.in_flight,
            "max_concurrent": self._state.max_concurrent,
            "dispatched": self._dispatched,
            "retries": self._retries,
        }

    # -- slot management -------------------------------------------------

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        await self._acquire()
        try:
            yield
        finally:
            self._state.in_flight -= 1
            self._semaphore.release()

    async def _acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            async with self._grant_lock:
                await self._wait_for_budget()
                await self._wait_for_spacing()

                self._state.remaining_tokens -= 1
                self._state.last_dispatch_at = self._clock()
                self._state.in_flight += 1
                self._dispatched += 1
        except BaseException:
            self._semaphore.release()
            raise

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._state.last_refill_at
        if elapsed >= self._state.refill_interval:
            periods = int(elapsed // self._state.refill_interval)
            self._state.last_refill_at += periods * self._state.refill_interval
            self._state.remaining_tokens = self._state.capacity

    async def _wait_for_budget(self) -> None:
        self._refill()
        while self._state.remaining_tokens <= 0:
            wait = self._state.last_refill_at + self._state.refill_interval - self._clock()
            log.debug(
                "rate_limit_budget_exhausted",
                provider=self.name,
                sleep_ms=int(max(wait, 0.0) * 1000),
            )
            await self._sleep(max(wait, 0.0))
            self._refill()

    async def _wait_for_spacing(self) -> None:
        last = self._state.last_dispatch_at
        if last is None:
            return
        wait = last + self._state.min_spacing - self._clock()
        if wait > 0:
            log.debug("rate_limit_throttling", provider=self.name, sleep_ms=int(wait * 1000))
            await self._sleep(wait)

    # -- retry helpers ---------------------------------------------------

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.compute_backoff(retry_state.attempt_number - 1)

    def _before_sleep(self, description: str) -> Callable[[RetryCallState], None]:
        def _log(retry_state: RetryCallState) -> None:
            self._retries += 1
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            log.warning(
                "provider_retry_scheduled",
                provider=self.name,
                operation=description,
                attempt=retry_state.attempt_number,
                max_retries=self.max_retries,
                delay_ms=int(delay * 1000),
                status_code=_status_code_of(error) if error else None,
                error=str(error),
            )

        return _log

    def _to_typed_failure(
        self,
        error: Exception,
        description: str,
        attempts: int,
    ) -> Exception:
        if is_retryable(error):
            log.error(
                "provider_retries_exhausted",
                provider=self.name,
                operation=description,
                attempts=attempts,
                error=str(error),
            )
            return RetryExhaustedError(
                service=self.name,
                message=f"{description} failed after {attempts} attempt(s): {error}",
                attempts=attempts,
                status_code=_status_code_of(error),
            )

        if isinstance(error, MintSentryError):
            return error

        log.error(
            "provider_fatal_error",
            provider=self.name,
            operation=description,
            error=str(error),
        )
        return FatalProviderError(
            service=self.name,
            message=f"{description} failed: {error}",
            status_code=_status_code_of(error),
        )
