"""Tests for DetectionLoop (watcher lifecycle, exactly-once purchase, source lifecycle)."""

import asyncio
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from structlog.testing import capture_logs

from mintsentry.models.criteria import UserCriteria
from mintsentry.models.detection import WatcherState
from mintsentry.models.token import TokenCandidate
from mintsentry.services.detection.interfaces import InMemoryCriteriaStore, LogNotificationSink
from mintsentry.services.detection.loop import DetectionLoop
from mintsentry.services.token.snapshot import TokenSnapshot
from tests.factories.token import TokenCandidateFactory
from tests.support.helpers.fakes import FakeClock, QueueSource, wait_until


class ScriptedEvaluator:
    """Evaluator double: passes the (user, mint) pairs it was given."""

    def __init__(self, matches: set[tuple[str, str]] | None = None) -> None:
        self.matches = matches or set()
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None
        self.criteria_by_user: dict[int, str] = {}

    async def passes(self, snapshot: TokenSnapshot, criteria: UserCriteria) -> bool:
        user_id = self.criteria_by_user[id(criteria)]
        self.calls.append((user_id, snapshot.mint_address))
        if self.gate is not None:
            await self.gate.wait()
        return (user_id, snapshot.mint_address) in self.matches


class PerUserCriteriaStore(InMemoryCriteriaStore):
    """Criteria store handing each user a distinct criteria object."""

    def __init__(self, evaluator: ScriptedEvaluator) -> None:
        super().__init__()
        self.evaluator = evaluator

    async def get_user_criteria(self, user_id: str) -> UserCriteria:
        criteria = UserCriteria()
        self.evaluator.criteria_by_user[id(criteria)] = user_id
        self._criteria[user_id] = criteria
        return criteria


class ExplodingSource(QueueSource):
    """Source whose first read fails like a malformed upstream frame."""

    async def _iterate(self) -> AsyncGenerator[list[TokenCandidate], None]:
        raise ValueError("malformed frame")
        yield []


class Harness:
    """A DetectionLoop wired to doubles, with the pieces exposed for assertions."""

    def __init__(self, failing_sources: int = 0, clock: FakeClock | None = None) -> None:
        self.failing_sources = failing_sources
        self.clock = clock or FakeClock()
        self.evaluator = ScriptedEvaluator()
        self.criteria_store = PerUserCriteriaStore(self.evaluator)
        self.executor = MagicMock()
        self.executor.attempt_purchase = AsyncMock(return_value=True)
        self.notifier = LogNotificationSink()
        self.data_service = MagicMock()
        self.data_service.snapshot = lambda candidate: TokenSnapshot(candidate, MagicMock())
        self.sources: list[QueueSource] = []
        self.loop = DetectionLoop(
            data_service=self.data_service,
            evaluator=self.evaluator,  # type: ignore[arg-type]
            criteria_store=self.criteria_store,
            purchase_executor=self.executor,
            notifier=self.notifier,
            source_factory=self.new_source,
            source_kind="manual",
            sleep=self.clock.sleep,
        )

    def new_source(self) -> QueueSource:
        source = ExplodingSource() if len(self.sources) < self.failing_sources else QueueSource()
        self.sources.append(source)
        return source

    def purchased(self) -> list[tuple[str, str]]:
        return [
            (call.args[0], call.args[1].mint_address)
            for call in self.executor.attempt_purchase.await_args_list
        ]


@pytest_asyncio.fixture
async def harness() -> AsyncGenerator[Harness, None]:
    harness = Harness()
    yield harness
    await harness.loop.shutdown()


def candidates(count: int) -> list[TokenCandidate]:
    return TokenCandidateFactory.build_batch(count)


class TestStartStop:
    """Idempotent arming and retiring."""

    @pytest.mark.asyncio
    async def test_start_arms_user_and_establishes_source(self, harness: Harness) -> None:
        assert await harness.loop.start_detection("alice") is True

        assert harness.loop.armed_users == ["alice"]
        assert harness.loop.is_armed("alice")
        assert harness.loop.source_active
        assert len(harness.sources) == 1

    @pytest.mark.asyncio
    async def test_second_start_is_a_warned_noop(self, harness: Harness) -> None:
        await harness.loop.start_detection("alice")

        with capture_logs() as logs:
            assert await harness.loop.start_detection("alice") is False

        assert harness.loop.armed_users == ["alice"]
        assert len(harness.sources) == 1
        assert {"event": "detection_already_active", "log_level": "warning", "user_id": "alice"} in logs

    @pytest.mark.asyncio
    async def test_stop_unknown_user_is_a_warned_noop(self, harness: Harness) -> None:
        with capture_logs() as logs:
            assert await harness.loop.stop_detection("nobody") is False

        assert [entry["event"] for entry in logs] == ["detection_not_active"]
        assert logs[0]["log_level"] == "warning"

    @pytest.mark.asyncio
    async def test_source_torn_down_when_last_user_stops(self, harness: Harness) -> None:
        await harness.loop.start_detection("alice")
        await harness.loop.start_detection("bob")

        await harness.loop.stop_detection("alice")
        assert harness.loop.source_active

        await harness.loop.stop_detection("bob")
        assert not harness.loop.source_active
        assert harness.sources[0].closed

    @pytest.mark.asyncio
    async def test_restart_builds_a_new_source(self, harness: Harness) -> None:
        await harness.loop.start_detection("alice")
        await harness.loop.stop_detection("alice")
        await harness.loop.start_detection("alice")

        assert len(harness.sources) == 2
        assert harness.loop.source_active


class TestSourceRecovery:
    """A failing source is rebuilt while users remain armed."""

    @pytest.mark.asyncio
    async def test_failed_source_is_rebuilt_with_backoff(self) -> None:
        """
        Given an armed user and sources that fail twice on their first read
        When the consumer hits the failures
        Then fresh sources are built after growing delays and detection resumes
        """
        harness = Harness(failing_sources=2)
        (t1,) = candidates(1)
        harness.evaluator.matches = {("alice", t1.mint_address)}
        try:
            with capture_logs() as logs:
                await harness.loop.start_detection("alice")
                await wait_until(lambda: len(harness.sources) == 3)

            assert harness.loop.source_active
            assert harness.loop.armed_users == ["alice"]
            assert harness.clock.sleeps == [1.0, 2.0]
            assert harness.loop.source_restarts == 2
            events = [entry["event"] for entry in logs]
            assert events.count("candidate_source_failed") == 2
            assert events.count("candidate_source_restarting") == 2

            harness.sources[2].push([t1])
            await wait_until(lambda: harness.purchased() == [("alice", t1.mint_address)])
        finally:
            await harness.loop.shutdown()

    @pytest.mark.asyncio
    async def test_failed_source_not_rebuilt_without_watchers(self) -> None:
        harness = Harness(failing_sources=1)
        try:
            await harness.loop.start_detection("alice")
            harness.loop._watchers.clear()

            await wait_until(lambda: not harness.loop.source_active)

            assert len(harness.sources) == 1
            assert harness.clock.sleeps == []
        finally:
            await harness.loop.shutdown()

    @pytest.mark.asyncio
    async def test_second_start_revives_a_dead_consumer(self, harness: Harness) -> None:
        await harness.loop.start_detection("alice")
        harness.loop._consumer.cancel()
        await wait_until(lambda: not harness.loop.source_active)

        assert await harness.loop.start_detection("alice") is False

        assert harness.loop.source_active
        assert len(harness.sources) == 2


class TestExactlyOnce:
    """Each armed user triggers at most one purchase."""

    @pytest.mark.asyncio
    async def test_user_matching_two_tokens_buys_only_the_first(self, harness: Harness) -> None:
        """
        Given users A and B armed, A's criteria matching T1 and T2, B's matching neither
        When one cycle delivers [T1, T2]
        Then exactly one purchase (A, T1) happens, A is retired and B stays armed
        """
        t1, t2 = candidates(2)
        harness.evaluator.matches = {("A", t1.mint_address), ("A", t2.mint_address)}
        await harness.loop.start_detection("A")
        await harness.loop.start_detection("B")

        result = await harness.loop.run_cycle([t1, t2])
        await harness.loop.wait_for_purchases()

        assert [(m.user_id, m.mint_address) for m in result.matches] == [("A", t1.mint_address)]
        assert harness.purchased() == [("A", t1.mint_address)]
        assert ("A", t2.mint_address) not in harness.evaluator.calls
        assert ("B", t2.mint_address) in harness.evaluator.calls
        assert harness.loop.armed_users == ["B"]
        assert not harness.loop.is_armed("A")

    @pytest.mark.asyncio
    async def test_all_users_evaluated_against_shared_snapshot(self, harness: Harness) -> None:
        """Several users matching the same token each buy it once."""
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address), ("B", t1.mint_address)}
        await harness.loop.start_detection("A")
        await harness.loop.start_detection("B")

        result = await harness.loop.run_cycle([t1])
        await harness.loop.wait_for_purchases()

        assert sorted(m.user_id for m in result.matches) == ["A", "B"]
        assert sorted(harness.purchased()) == [("A", t1.mint_address), ("B", t1.mint_address)]
        assert harness.loop.armed_users == []

    @pytest.mark.asyncio
    async def test_matched_user_not_matched_in_later_cycles(self, harness: Harness) -> None:
        t1, t2 = candidates(2)
        harness.evaluator.matches = {("A", t1.mint_address), ("A", t2.mint_address)}
        await harness.loop.start_detection("A")
        await harness.loop.start_detection("B")

        await harness.loop.run_cycle([t1])
        await harness.loop.run_cycle([t2])
        await harness.loop.wait_for_purchases()

        assert harness.purchased() == [("A", t1.mint_address)]

    @pytest.mark.asyncio
    async def test_user_stopped_during_evaluation_is_not_matched(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address)}
        harness.evaluator.gate = asyncio.Event()
        await harness.loop.start_detection("A")
        await harness.loop.start_detection("B")

        cycle = asyncio.create_task(harness.loop.run_cycle([t1]))
        await wait_until(lambda: len(harness.evaluator.calls) == 2)
        await harness.loop.stop_detection("A")
        harness.evaluator.gate.set()
        result = await cycle

        assert result.matches == []
        harness.executor.attempt_purchase.assert_not_called()

    @pytest.mark.asyncio
    async def test_restarted_user_can_match_again(self, harness: Harness) -> None:
        t1, t2 = candidates(2)
        harness.evaluator.matches = {("A", t1.mint_address), ("A", t2.mint_address)}
        await harness.loop.start_detection("A")
        await harness.loop.run_cycle([t1])
        await harness.loop.wait_for_purchases()

        await harness.loop.start_detection("A")
        await harness.loop.run_cycle([t2])
        await harness.loop.wait_for_purchases()

        assert harness.purchased() == [("A", t1.mint_address), ("A", t2.mint_address)]


class TestCycles:
    """Cycle bookkeeping: dedup, skip-while-busy, teardown."""

    @pytest.mark.asyncio
    async def test_overlapping_cycle_is_skipped(self, harness: Harness) -> None:
        first_batch, second_batch = candidates(1), candidates(1)
        harness.evaluator.gate = asyncio.Event()
        await harness.loop.start_detection("A")

        first = asyncio.create_task(harness.loop.run_cycle(first_batch))
        await wait_until(lambda: len(harness.evaluator.calls) == 1)
        skipped = await harness.loop.run_cycle(second_batch)
        harness.evaluator.gate.set()
        await first

        assert skipped.skipped is True
        assert skipped.candidates_received == 1
        assert harness.loop.skipped_cycles == 1
        assert [mint for _, mint in harness.evaluator.calls] == [first_batch[0].mint_address]
        assert harness.loop.status().processing is False

    @pytest.mark.asyncio
    async def test_candidates_processed_once(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        await harness.loop.start_detection("A")

        first = await harness.loop.run_cycle([t1, t1])
        second = await harness.loop.run_cycle([t1])

        assert first.candidates_evaluated == 1
        assert second.candidates_evaluated == 0
        assert harness.evaluator.calls == [("A", t1.mint_address)]

    @pytest.mark.asyncio
    async def test_no_watchers_no_evaluation(self, harness: Harness) -> None:
        result = await harness.loop.run_cycle(candidates(3))

        assert result.watchers_evaluated == 0
        assert harness.evaluator.calls == []

    @pytest.mark.asyncio
    async def test_last_match_tears_down_source(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address)}
        await harness.loop.start_detection("A")
        assert harness.loop.source_active

        await harness.loop.run_cycle([t1])

        assert not harness.loop.source_active

    @pytest.mark.asyncio
    async def test_criteria_failure_skips_user(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.criteria_store.get_user_criteria = AsyncMock(side_effect=RuntimeError("db down"))
        await harness.loop.start_detection("A")

        result = await harness.loop.run_cycle([t1])

        assert result.matches == []
        assert harness.loop.is_armed("A")

    @pytest.mark.asyncio
    async def test_source_batches_drive_cycles(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address)}
        await harness.loop.start_detection("A")

        harness.sources[0].push([t1])
        await wait_until(lambda: harness.executor.attempt_purchase.await_count == 1)
        await wait_until(lambda: not harness.loop.source_active)

        assert harness.purchased() == [("A", t1.mint_address)]


class TestPurchaseDispatch:
    """Purchase outcome handling and notifications."""

    @pytest.mark.asyncio
    async def test_success_notifies_and_retires(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address)}
        await harness.loop.start_detection("A")

        result = await harness.loop.run_cycle([t1])
        await harness.loop.wait_for_purchases()

        match = result.matches[0]
        assert match.purchase_succeeded is True
        messages = [message for user, message in harness.notifier.messages if user == "A"]
        assert messages[0].startswith(f"Token matched: {t1.mint_address}")
        assert messages[1] == (
            f"Successfully purchased token {t1.mint_address}. Token detection has been stopped."
        )
        assert list(harness.loop.recent_matches) == [match]

    @pytest.mark.asyncio
    async def test_failed_purchase_still_retires(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address)}
        harness.executor.attempt_purchase.return_value = False
        await harness.loop.start_detection("A")

        result = await harness.loop.run_cycle([t1])
        await harness.loop.wait_for_purchases()

        assert result.matches[0].purchase_succeeded is False
        assert not harness.loop.is_armed("A")
        assert harness.notifier.messages[-1][1].startswith("Failed to purchase token")
        harness.executor.attempt_purchase.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_executor_exception_counts_as_failure(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address)}
        harness.executor.attempt_purchase.side_effect = RuntimeError("swap reverted")
        await harness.loop.start_detection("A")

        with capture_logs() as logs:
            result = await harness.loop.run_cycle([t1])
            await harness.loop.wait_for_purchases()

        assert result.matches[0].purchase_succeeded is False
        assert any(entry["event"] == "purchase_failed" for entry in logs)
        harness.executor.attempt_purchase.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_block_purchase(self, harness: Harness) -> None:
        (t1,) = candidates(1)
        harness.evaluator.matches = {("A", t1.mint_address)}
        harness.loop.notifier = MagicMock()
        harness.loop.notifier.notify = AsyncMock(side_effect=RuntimeError("chat offline"))
        await harness.loop.start_detection("A")

        with capture_logs() as logs:
            await harness.loop.run_cycle([t1])
            await harness.loop.wait_for_purchases()

        harness.executor.attempt_purchase.assert_awaited_once()
        assert sum(entry["event"] == "notification_failed" for entry in logs) == 2


class TestStatusAndShutdown:
    @pytest.mark.asyncio
    async def test_status(self, harness: Harness) -> None:
        await harness.loop.start_detection("A")
        await harness.loop.run_cycle(candidates(2))

        status = harness.loop.status()

        assert status.armed_users == ["A"]
        assert status.source_active is True
        assert status.source_kind == "manual"
        assert status.processed_count == 2
        assert status.pending_purchases == 0

    @pytest.mark.asyncio
    async def test_shutdown_retires_everyone(self, harness: Harness) -> None:
        await harness.loop.start_detection("A")
        await harness.loop.start_detection("B")
        record = harness.loop._watchers["A"]

        await harness.loop.shutdown()

        assert harness.loop.armed_users == []
        assert record.state == WatcherState.RETIRED
        assert not harness.loop.source_active
