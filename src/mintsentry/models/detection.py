"""Detection domain models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class WatcherState(str, Enum):
    """Lifecycle of a watched user."""

    ARMED = "armed"
    MATCHED = "matched"
    RETIRED = "retired"


class FilterStatus(str, Enum):
    """Outcome of evaluating one candidate for one user."""

    PASSED = "passed"
    REJECTED = "rejected"
    ERROR = "error"


class FilterResult(BaseModel):
    """Result of FilterEvaluator.evaluate().

    Attributes:
        status: PASSED, REJECTED (a predicate failed) or ERROR (a predicate raised).
        failed_predicate: Name of the first failing predicate, None when passed.
        detail: Observed value or error text for logging.
    """

    status: FilterStatus
    failed_predicate: str | None = None
    detail: str | None = None

    @property
    def passed(self) -> bool:
        """True when every configured predicate passed."""
        return self.status == FilterStatus.PASSED


class WatcherRecord(BaseModel):
    """Entry of the WatcherSet."""

    user_id: str
    state: WatcherState = WatcherState.ARMED
    armed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MatchRecord(BaseModel):
    """A (user, token) match handed to the purchase collaborator."""

    user_id: str
    mint_address: str
    matched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    purchase_succeeded: bool | None = None


class DetectionCycleResult(BaseModel):
    """Summary of one detection cycle.

    Attributes:
        skipped: True when the cycle was dropped because another was running.
        candidates_received: Candidates in the incoming batch.
        candidates_evaluated: Candidates left after deduplication.
        watchers_evaluated: Size of the WatcherSet snapshot.
        matches: Matches made in this cycle, in order.
    """

    skipped: bool = False
    candidates_received: int = 0
    candidates_evaluated: int = 0
    watchers_evaluated: int = 0
    matches: list[MatchRecord] = Field(default_factory=list)


class DetectionStatus(BaseModel):
    """Point-in-time view of the detection loop."""

    armed_users: list[str]
    processing: bool
    source_active: bool
    source_kind: str
    processed_count: int
    pending_purchases: int
    cache: dict[str, Any] = Field(default_factory=dict)
    rate_limiter: dict[str, Any] = Field(default_factory=dict)
