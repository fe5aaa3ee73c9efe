"""Collaborators the detection loop depends on, plus runtime stand-ins.

The loop only sees the three Protocols below. Wallet custody, swap
construction and chat UX live behind them, outside this package.
"""

from collections import deque
from typing import Protocol, runtime_checkable

import structlog

from mintsentry.models.criteria import UserCriteria
from mintsentry.models.token import TokenCandidate

log = structlog.get_logger(__name__)


@runtime_checkable
class PurchaseExecutor(Protocol):
    """Buys a matched token for a user. Called at most once per match."""

    async def attempt_purchase(self, user_id: str, candidate: TokenCandidate) -> bool:
        """Return True when the purchase succeeded."""
        ...


@runtime_checkable
class CriteriaStore(Protocol):
    """Read access to per-user criteria."""

    async def get_user_criteria(self, user_id: str) -> UserCriteria:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Delivers short status messages to a user."""

    async def notify(self, user_id: str, message: str) -> None:
        ...


class InMemoryCriteriaStore:
    """Criteria kept in memory; unknown users get the defaults."""

    def __init__(self, defaults: UserCriteria | None = None) -> None:
        self.defaults = defaults or UserCriteria()
        self._criteria: dict[str, UserCriteria] = {}

    async def get_user_criteria(self, user_id: str) -> UserCriteria:
        return self._criteria.get(user_id, self.defaults)

    async def set_user_criteria(self, user_id: str, criteria: UserCriteria) -> None:
        self._criteria[user_id] = criteria
        log.info("user_criteria_updated", user_id=user_id, **criteria.model_dump())


class SimulatedPurchaseExecutor:
    """Records purchases without touching the chain. Always succeeds."""

    def __init__(self, criteria_store: CriteriaStore | None = None) -> None:
        self.criteria_store = criteria_store
        self.purchases: list[tuple[str, str]] = []

    async def attempt_purchase(self, user_id: str, candidate: TokenCandidate) -> bool:
        amount = None
        if self.criteria_store is not None:
            criteria = await self.criteria_store.get_user_criteria(user_id)
            amount = criteria.buy_amount_sol

        self.purchases.append((user_id, candidate.mint_address))
        log.info(
            "simulated_purchase",
            user_id=user_id,
            token=candidate.short_mint,
            amount_sol=amount,
        )
        return True


class LogNotificationSink:
    """Writes notifications to the log and keeps the most recent ones."""

    def __init__(self, max_messages: int = 100) -> None:
        self.messages: deque[tuple[str, str]] = deque(maxlen=max_messages)

    async def notify(self, user_id: str, message: str) -> None:
        self.messages.append((user_id, message))
        log.info("user_notification", user_id=user_id, message=message)
