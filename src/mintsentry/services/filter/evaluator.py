"""Per-user filter evaluation of token candidates.

Predicates run in a fixed order and stop at the first failure:

1. boost amount >= min_boost_amount
2. liquidity >= liquidity_threshold
3. mint authority presence == require_mint_authority
4. top holder concentration <= top_holders_threshold
5. token age <= max_token_age_minutes

A criterion set to None skips its predicate. A predicate whose value is
unknown, or whose resolution raises, rejects the token.
"""

from collections.abc import Awaitable, Callable

import structlog

from mintsentry.models.criteria import UserCriteria
from mintsentry.models.detection import FilterResult, FilterStatus
from mintsentry.services.token.snapshot import TokenSnapshot

logger = structlog.get_logger(__name__)

# (passed, observed value for logs)
PredicateOutcome = tuple[bool, str]
Predicate = Callable[[TokenSnapshot, UserCriteria], Awaitable[PredicateOutcome | None]]


async def _check_boost(snapshot: TokenSnapshot, criteria: UserCriteria) -> PredicateOutcome | None:
    if criteria.min_boost_amount is None:
        return None
    boost = snapshot.boost_amount
    if boost is None:
        return False, "boost unknown"
    return boost >= criteria.min_boost_amount, f"boost={boost}"


async def _check_liquidity(
    snapshot: TokenSnapshot, criteria: UserCriteria
) -> PredicateOutcome | None:
    if criteria.liquidity_threshold is None:
        return None
    liquidity = await snapshot.liquidity()
    return liquidity >= criteria.liquidity_threshold, f"liquidity={liquidity:.2f}"


async def _check_mint_authority(
    snapshot: TokenSnapshot, criteria: UserCriteria
) -> PredicateOutcome | None:
    if criteria.require_mint_authority is None:
        return None
    has_authority = await snapshot.has_mint_authority()
    return has_authority == criteria.require_mint_authority, f"mint_authority={has_authority}"


async def _check_concentration(
    snapshot: TokenSnapshot, criteria: UserCriteria
) -> PredicateOutcome | None:
    if criteria.top_holders_threshold is None:
        return None
    concentration = await snapshot.top_holders_concentration()
    return (
        concentration <= criteria.top_holders_threshold,
        f"concentration={concentration:.2f}%",
    )


async def _check_age(snapshot: TokenSnapshot, criteria: UserCriteria) -> PredicateOutcome | None:
    if criteria.max_token_age_minutes is None:
        return None
    age = await snapshot.age_minutes()
    if age is None:
        return False, "age unknown"
    return age <= criteria.max_token_age_minutes, f"age_minutes={age:.1f}"


PREDICATES: tuple[tuple[str, Predicate], ...] = (
    ("boost_amount", _check_boost),
    ("liquidity", _check_liquidity),
    ("mint_authority", _check_mint_authority),
    ("top_holders_concentration", _check_concentration),
    ("token_age", _check_age),
)


class FilterEvaluator:
    """Evaluates one candidate against one user's criteria."""

    def __init__(self, predicates: tuple[tuple[str, Predicate], ...] = PREDICATES) -> None:
        self.predicates = predicates

    async def evaluate(self, snapshot: TokenSnapshot, criteria: UserCriteria) -> FilterResult:
        """
        Run predicates in order, stopping at the first failure.

        Args:
            snapshot: Memoizing view of the candidate
            criteria: The user's criteria

        Returns:
            FilterResult naming the failed predicate, if any
        """
        for name, predicate in self.predicates:
            try:
                outcome = await predicate(snapshot, criteria)
            except Exception as e:
                logger.warning(
                    "filter_predicate_error",
                    token=snapshot.mint_address[:8] + "...",
                    predicate=name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return FilterResult(
                    status=FilterStatus.ERROR,
                    failed_predicate=name,
                    detail=str(e),
                )

            if outcome is None:
                continue

            passed, detail = outcome
            if not passed:
                logger.debug(
                    "filter_rejected",
                    token=snapshot.mint_address[:8] + "...",
                    predicate=name,
                    detail=detail,
                )
                return FilterResult(
                    status=FilterStatus.REJECTED,
                    failed_predicate=name,
                    detail=detail,
                )

        return FilterResult(status=FilterStatus.PASSED)

    async def passes(self, snapshot: TokenSnapshot, criteria: UserCriteria) -> bool:
        """True when every configured predicate passes."""
        result = await self.evaluate(snapshot, criteria)
        return result.passed
