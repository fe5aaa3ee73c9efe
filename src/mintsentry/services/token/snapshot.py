"""Per-cycle view of a candidate's lazily resolved attributes."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from mintsentry.models.token import TokenCandidate

if TYPE_CHECKING:
    from mintsentry.services.token.data_service import TokenDataService


class TokenSnapshot:
    """Memoizes each derived attribute of one candidate.

    Every attribute is resolved at most once per snapshot, however many
    users are evaluated against it concurrently. Failures are memoized as
    well, so all users see the same outcome for the cycle.
    """

    def __init__(self, candidate: TokenCandidate, data_service: "TokenDataService") -> None:
        self.candidate = candidate
        self._data = data_service
        self._resolved: dict[str, asyncio.Future[Any]] = {}

    @property
    def mint_address(self) -> str:
        return self.candidate.mint_address

    @property
    def boost_amount(self) -> float | None:
        """Feed boost weight; None for candidates not from the boosted feed."""
        return self.candidate.boost_amount

    async def _resolve(self, attribute: str, resolver: Callable[[], Awaitable[Any]]) -> Any:
        future = self._resolved.get(attribute)
        if future is None:
            future = asyncio.ensure_future(resolver())
            self._resolved[attribute] = future
        return await asyncio.shield(future)

    async def liquidity(self) -> float:
        return await self._resolve(
            "liquidity", lambda: self._data.fetch_liquidity(self.mint_address)
        )

    async def has_mint_authority(self) -> bool:
        return await self._resolve(
            "mint_authority", lambda: self._data.fetch_mint_authority(self.mint_address)
        )

    async def top_holders_concentration(self) -> float:
        return await self._resolve(
            "top_holders_concentration",
            lambda: self._data.fetch_top_holders_concentration(self.mint_address),
        )

    async def age_minutes(self) -> float | None:
        return await self._resolve(
            "age_minutes", lambda: self._data.fetch_token_age_minutes(self.mint_address)
        )

    def resolved_attributes(self) -> list[str]:
        """Names of attributes resolved (or being resolved) so far."""
        return list(self._resolved)
