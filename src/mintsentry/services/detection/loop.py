"""Continuous token detection with exactly-once purchase triggering.

Users are armed with ``start_detection`` and evaluated against every new
candidate until one matches. A match removes the user from the watcher
set before anything else can run, hands the token to the purchase
executor exactly once, and retires the user whatever the outcome.

Lifecycle per user::

    ARMED -> MATCHED -> RETIRED     (token matched, purchase attempted)
    ARMED -> RETIRED                (stop_detection)

The candidate source runs only while at least one user is armed.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from typing import Any

import structlog
from cachetools import TTLCache

from mintsentry.constants.detection import (
    MSG_MATCHED,
    MSG_PURCHASE_FAILED,
    MSG_PURCHASE_OK,
    SOURCE_RESTART_BASE_DELAY_SECONDS,
    SOURCE_RESTART_MAX_DELAY_SECONDS,
)
from mintsentry.models.detection import (
    DetectionCycleResult,
    DetectionStatus,
    MatchRecord,
    WatcherRecord,
    WatcherState,
)
from mintsentry.models.token import TokenCandidate
from mintsentry.services.access.rate_limiter import RateLimitedAccess
from mintsentry.services.access.single_flight import SingleFlightCache
from mintsentry.services.detection.interfaces import (
    CriteriaStore,
    NotificationSink,
    PurchaseExecutor,
)
from mintsentry.services.detection.sources import CandidateSource
from mintsentry.services.filter.evaluator import FilterEvaluator
from mintsentry.services.token.data_service import TokenDataService
from mintsentry.services.token.snapshot import TokenSnapshot

log = structlog.get_logger(__name__)


class DetectionLoop:
    """Drives watcher lifecycle and purchase triggering.

    Attributes:
        source_kind: Name of the candidate source in use (for status).
        recent_matches: Most recent matches, newest last.
    """

    def __init__(
        self,
        data_service: TokenDataService,
        evaluator: FilterEvaluator,
        criteria_store: CriteriaStore,
        purchase_executor: PurchaseExecutor,
        notifier: NotificationSink,
        source_factory: Callable[[], CandidateSource],
        source_kind: str = "boosted_feed",
        processed_ttl: float = 3600,
        processed_max_size: int = 50_000,
        cache: SingleFlightCache | None = None,
        limiters: list[RateLimitedAccess] | None = None,
        timer: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        restart_base_delay: float = SOURCE_RESTART_BASE_DELAY_SECONDS,
        restart_max_delay: float = SOURCE_RESTART_MAX_DELAY_SECONDS,
    ) -> None:
        self.data_service = data_service
        self.evaluator = evaluator
        self.criteria_store = criteria_store
        self.purchase_executor = purchase_executor
        self.notifier = notifier
        self.source_kind = source_kind
        self._source_factory = source_factory
        self._cache = cache
        self._limiters = limiters or []
        self._sleep = sleep
        self.restart_base_delay = restart_base_delay
        self.restart_max_delay = restart_max_delay

        self._watchers: dict[str, WatcherRecord] = {}
        self._processed: TTLCache = TTLCache(
            maxsize=processed_max_size, ttl=processed_ttl, timer=timer
        )
        self._processing = False
        self._source: CandidateSource | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[DetectionCycleResult]] = set()
        self._purchases: set[asyncio.Task[None]] = set()
        self.recent_matches: deque[MatchRecord] = deque(maxlen=100)
        self.skipped_cycles = 0
        self.source_restarts = 0

    # -- watcher management ----------------------------------------------

    @property
    def armed_users(self) -> list[str]:
        """Armed user IDs in arming order."""
        return list(self._watchers)

    def is_armed(self, user_id: str) -> bool:
        record = self._watchers.get(user_id)
        return record is not None and record.state == WatcherState.ARMED

    async def start_detection(self, user_id: str) -> bool:
        """Arm ``user_id``.

        Returns:
            False (with a warning) when the user is already armed.
        """
        if user_id in self._watchers:
            log.warning("detection_already_active", user_id=user_id)
            self._ensure_source()
            return False

        self._watchers[user_id] = WatcherRecord(user_id=user_id)
        log.info("detection_started", user_id=user_id, armed_count=len(self._watchers))
        self._ensure_source()
        return True

    async def stop_detection(self, user_id: str) -> bool:
        """Retire ``user_id`` without a match.

        Returns:
            False (with a warning) when the user is not armed.
        """
        record = self._watchers.pop(user_id, None)
        if record is None:
            log.warning("detection_not_active", user_id=user_id)
            return False

        record.state = WatcherState.RETIRED
        log.info("detection_stopped", user_id=user_id, armed_count=len(self._watchers))
        if not self._watchers:
            await self._teardown_source()
        return True

    # -- candidate source --------------------------------------------------

    @property
    def source_active(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def _ensure_source(self) -> None:
        if self.source_active:
            return
        self._source = self._source_factory()
        self._consumer = asyncio.create_task(self._consume(self._source))
        log.info("candidate_source_established", source=self.source_kind)

    def _restart_delay(self, failures: int) -> float:
        return min(self.restart_max_delay, self.restart_base_delay * 2 ** max(failures - 1, 0))

    async def _consume(self, source: CandidateSource | None) -> None:
        """Feed batches into cycles, rebuilding the source while users stay armed."""
        failures = 0
        while True:
            try:
                if source is None:
                    source = self._source = self._source_factory()
                async with aclosing(source.batches()) as batches:
                    async for batch in batches:
                        failures = 0
                        task = asyncio.create_task(self.run_cycle(batch))
                        self._cycles.add(task)
                        task.add_done_callback(self._cycles.discard)
            except Exception as e:
                failures += 1
                log.error(
                    "candidate_source_failed",
                    source=self.source_kind,
                    error_type=type(e).__name__,
                    error=str(e),
                    failures=failures,
                )

            if (source is not None and source.closed) or not self._watchers:
                return
            delay = self._restart_delay(failures)
            log.warning(
                "candidate_source_restarting",
                source=self.source_kind,
                delay_seconds=delay,
                armed_count=len(self._watchers),
            )
            await self._sleep(delay)
            if not self._watchers:
                return
            self.source_restarts += 1
            source = None

    async def _teardown_source(self) -> None:
        source, consumer = self._source, self._consumer
        self._source, self._consumer = None, None
        if source is not None:
            source.close()
        if consumer is not None and not consumer.done():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        if source is not None:
            log.info("candidate_source_torn_down", source=self.source_kind)

    # -- detection cycle -------------------------------------------------

    def _fresh_candidates(self, batch: list[TokenCandidate]) -> list[TokenCandidate]:
        """Drop candidates seen earlier in the batch or in a previous cycle."""
        fresh = []
        for candidate in batch:
            if candidate.mint_address in self._processed:
                continue
            self._processed[candidate.mint_address] = True
            fresh.append(candidate)
        return fresh

    async def run_cycle(self, batch: list[TokenCandidate]) -> DetectionCycleResult:
        """Evaluate a batch of candidates against the armed users.

        A batch arriving while another cycle runs is skipped entirely.

        Args:
            batch: Candidates from the source, in discovery order.

        Returns:
            DetectionCycleResult with the matches made.
        """
        if self._processing:
            self.skipped_cycles += 1
            log.debug("detection_cycle_skipped", batch_size=len(batch))
            return DetectionCycleResult(skipped=True, candidates_received=len(batch))

        self._processing = True
        try:
            candidates = self._fresh_candidates(batch)
            watchers = list(self._watchers)
            result = DetectionCycleResult(
                candidates_received=len(batch),
                candidates_evaluated=len(candidates),
                watchers_evaluated=len(watchers),
            )

            for candidate in candidates:
                armed = [user_id for user_id in watchers if self.is_armed(user_id)]
                if not armed:
                    break

                snapshot = self.data_service.snapshot(candidate)
                outcomes = await asyncio.gather(
                    *(self._evaluate(user_id, snapshot) for user_id in armed)
                )
                for user_id, passed in zip(armed, outcomes, strict=True):
                    if passed:
                        match = self._claim(user_id, candidate)
                        if match is not None:
                            result.matches.append(match)

            if result.matches:
                log.info(
                    "detection_cycle_matched",
                    candidates=len(candidates),
                    matches=len(result.matches),
                )
            if not self._watchers:
                await self._teardown_source()
            return result
        finally:
            self._processing = False

    async def _evaluate(self, user_id: str, snapshot: TokenSnapshot) -> bool:
        try:
            criteria = await self.criteria_store.get_user_criteria(user_id)
        except Exception as e:
            log.warning("criteria_unavailable", user_id=user_id, error=str(e))
            return False
        return await self.evaluator.passes(snapshot, criteria)

    def _claim(self, user_id: str, candidate: TokenCandidate) -> MatchRecord | None:
        """Atomically move an armed user to MATCHED and dispatch the purchase."""
        record = self._watchers.get(user_id)
        if record is None or record.state != WatcherState.ARMED:
            return None

        del self._watchers[user_id]
        record.state = WatcherState.MATCHED
        match = MatchRecord(user_id=user_id, mint_address=candidate.mint_address)
        self.recent_matches.append(match)
        log.info("token_matched", user_id=user_id, token=candidate.short_mint)

        task = asyncio.create_task(self._purchase(record, candidate, match))
        self._purchases.add(task)
        task.add_done_callback(self._purchases.discard)
        return match

    # -- purchase dispatch -----------------------------------------------

    async def _notify(self, user_id: str, message: str) -> None:
        try:
            await self.notifier.notify(user_id, message)
        except Exception as e:
            log.warning("notification_failed", user_id=user_id, error=str(e))

    async def _purchase(
        self,
        record: WatcherRecord,
        candidate: TokenCandidate,
        match: MatchRecord,
    ) -> None:
        user_id = record.user_id
        mint = candidate.mint_address
        await self._notify(user_id, MSG_MATCHED.format(mint=mint))

        try:
            succeeded = bool(await self.purchase_executor.attempt_purchase(user_id, candidate))
        except Exception as e:
            log.error(
                "purchase_failed",
                user_id=user_id,
                token=candidate.short_mint,
                error_type=type(e).__name__,
                error=str(e),
            )
            succeeded = False

        match.purchase_succeeded = succeeded
        record.state = WatcherState.RETIRED
        log.info(
            "watcher_retired",
            user_id=user_id,
            token=candidate.short_mint,
            purchase_succeeded=succeeded,
        )
        await self._notify(
            user_id,
            (MSG_PURCHASE_OK if succeeded else MSG_PURCHASE_FAILED).format(mint=mint),
        )

    async def wait_for_purchases(self) -> None:
        """Wait until every dispatched purchase has settled."""
        while self._purchases:
            await asyncio.gather(*list(self._purchases))

    # -- status and shutdown ---------------------------------------------

    def status(self) -> DetectionStatus:
        """Point-in-time view of the loop."""
        limiter_stats: dict[str, Any] = {
            limiter.name: limiter.get_stats() for limiter in self._limiters
        }
        return DetectionStatus(
            armed_users=self.armed_users,
            processing=self._processing,
            source_active=self.source_active,
            source_kind=self.source_kind,
            processed_count=len(self._processed),
            pending_purchases=len(self._purchases),
            cache=self._cache.get_stats() if self._cache is not None else {},
            rate_limiter=limiter_stats,
        )

    async def shutdown(self) -> None:
        """Retire every watcher, stop the source and settle outstanding work."""
        for record in self._watchers.values():
            record.state = WatcherState.RETIRED
        retired = len(self._watchers)
        self._watchers.clear()

        await self._teardown_source()
        if self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)
        await self.wait_for_purchases()
        log.info("detection_loop_shutdown", retired=retired)
