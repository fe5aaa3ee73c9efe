"""Token data facade over the provider clients.

Two access styles:

- strict ``fetch_*`` resolvers raise on any failure or unknown value, so
  the filter evaluator can fail closed;
- safe ``get_*`` accessors log the failure and return a conservative
  default (0.0 liquidity, no mint authority, 0% concentration, unknown age).
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Literal, TypeVar

import structlog

from mintsentry.constants.detection import DEFAULT_TOP_HOLDERS_COUNT
from mintsentry.core.exceptions import ConfigurationError, DataShapeError, MintSentryError
from mintsentry.models.token import (
    TokenAccountBalance,
    TokenCandidate,
    TokenMetadata,
    TokenOverview,
    TokenSupply,
)
from mintsentry.services.dexscreener.client import DexScreenerClient
from mintsentry.services.raydium.client import RaydiumClient
from mintsentry.services.solana.rpc_client import SolanaRPCClient
from mintsentry.services.token.snapshot import TokenSnapshot

logger = structlog.get_logger(__name__)

T = TypeVar("T")

LiquiditySource = Literal["dexscreener", "raydium"]


def compute_concentration(
    balances: list[TokenAccountBalance],
    supply: TokenSupply,
    top_n: int = DEFAULT_TOP_HOLDERS_COUNT,
) -> float:
    """Percentage of supply held by the ``top_n`` largest accounts.

    Sums the accounts actually returned (all of them when fewer than
    ``top_n``). Returns 0.0 when supply is zero.

    Example:
        supply 1,000,000 with top-10 holding 250,000 -> 25.0
    """
    if supply.amount <= 0:
        return 0.0
    top = sorted(balances, key=lambda b: b.amount, reverse=True)[:top_n]
    held = sum(balance.amount for balance in top)
    return held / supply.amount * 100


class TokenDataService:
    """Resolves liquidity, authority, concentration and age for a mint."""

    def __init__(
        self,
        rpc_client: SolanaRPCClient,
        dexscreener_client: DexScreenerClient,
        raydium_client: RaydiumClient | None = None,
        liquidity_source: LiquiditySource = "dexscreener",
        top_holders_count: int = DEFAULT_TOP_HOLDERS_COUNT,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        """Initialize the data service.

        Args:
            rpc_client: Solana RPC client.
            dexscreener_client: DexScreener client (pairs, liquidity, age).
            raydium_client: Raydium client, required when liquidity_source is "raydium".
            liquidity_source: Provider used for liquidity.
            top_holders_count: Accounts counted for concentration.
            now: Clock for age computation.
        """
        if liquidity_source == "raydium" and raydium_client is None:
            raise ConfigurationError("liquidity_source 'raydium' requires a RaydiumClient")

        self.rpc = rpc_client
        self.dexscreener = dexscreener_client
        self.raydium = raydium_client
        self.liquidity_source = liquidity_source
        self.top_holders_count = top_holders_count
        self._now = now

    def snapshot(self, candidate: TokenCandidate) -> TokenSnapshot:
        """Per-cycle memoizing view of a candidate's derived attributes."""
        return TokenSnapshot(candidate, self)

    # -- strict resolvers ------------------------------------------------

    async def fetch_liquidity(self, mint_address: str) -> float:
        """Liquidity from the configured source.

        dexscreener: sum of USD liquidity over the token's Solana pairs.
        raydium: sum of decimals-adjusted reserves across Raydium pools.
        """
        if self.liquidity_source == "raydium":
            if self.raydium is None:
                raise ConfigurationError("liquidity_source 'raydium' requires a RaydiumClient")
            return await self.raydium.get_liquidity(mint_address)

        pairs = await self.dexscreener.fetch_token_pairs(mint_address)
        return sum(
            pair.liquidity.usd
            for pair in pairs
            if pair.liquidity is not None and pair.liquidity.usd is not None
        )

    async def fetch_mint_authority(self, mint_address: str) -> bool:
        """Whether the mint still has a mint authority.

        Raises:
            DataShapeError: The mint account does not exist.
        """
        info = await self.rpc.get_mint_info(mint_address)
        if info is None:
            raise DataShapeError(f"Mint account {mint_address[:8]}... not found")
        return info.has_mint_authority

    async def fetch_top_holders_concentration(
        self,
        mint_address: str,
        top_n: int | None = None,
    ) -> float:
        """Percentage of supply held by the largest accounts."""
        balances, supply = await asyncio.gather(
            self.rpc.get_token_largest_accounts(mint_address),
            self.rpc.get_token_supply(mint_address),
        )
        return compute_concentration(balances, supply, top_n or self.top_holders_count)

    async def fetch_token_age_minutes(self, mint_address: str) -> float | None:
        """Minutes since the token's first trading pair was created.

        Returns:
            Age in minutes, or None when no pair reports a creation time.
        """
        pairs = await self.dexscreener.fetch_token_pairs(mint_address)
        created = [pair.created_at for pair in pairs if pair.created_at is not None]
        if not created:
            return None
        age = self._now() - min(created)
        return max(age.total_seconds() / 60, 0.0)

    async def fetch_token_metadata(self, mint_address: str) -> TokenMetadata | None:
        """Metaplex metadata, None when the mint has none."""
        return await self.rpc.get_token_metadata(mint_address)

    # -- safe accessors --------------------------------------------------

    async def _safe(
        self,
        attribute: str,
        mint_address: str,
        resolver: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        try:
            return await resolver()
        except MintSentryError as e:
            logger.warning(
                "token_data_unavailable",
                attribute=attribute,
                token=mint_address[:8] + "...",
                error_type=type(e).__name__,
                error=str(e),
                default=default,
            )
            return default

    async def get_liquidity(self, mint_address: str) -> float:
        """Liquidity, 0.0 when unavailable."""
        return await self._safe(
            "liquidity", mint_address, lambda: self.fetch_liquidity(mint_address), 0.0
        )

    async def has_mint_authority(self, mint_address: str) -> bool:
        """Mint authority presence, False when unavailable."""
        return await self._safe(
            "mint_authority", mint_address, lambda: self.fetch_mint_authority(mint_address), False
        )

    async def get_top_holders_concentration(
        self,
        mint_address: str,
        top_n: int | None = None,
    ) -> float:
        """Top holder concentration in percent, 0.0 when unavailable."""
        return await self._safe(
            "top_holders_concentration",
            mint_address,
            lambda: self.fetch_top_holders_concentration(mint_address, top_n),
            0.0,
        )

    async def get_token_age_minutes(self, mint_address: str) -> float | None:
        """Token age in minutes, None when unavailable."""
        return await self._safe(
            "token_age", mint_address, lambda: self.fetch_token_age_minutes(mint_address), None
        )

    async def get_token_metadata(self, mint_address: str) -> TokenMetadata | None:
        """Token metadata, None when unavailable."""
        return await self._safe(
            "metadata", mint_address, lambda: self.fetch_token_metadata(mint_address), None
        )

    async def overview(self, mint_address: str) -> TokenOverview:
        """All safe accessors for one mint, resolved concurrently."""
        liquidity, authority, concentration, age, metadata = await asyncio.gather(
            self.get_liquidity(mint_address),
            self.has_mint_authority(mint_address),
            self.get_top_holders_concentration(mint_address),
            self.get_token_age_minutes(mint_address),
            self.get_token_metadata(mint_address),
        )
        return TokenOverview(
            mint_address=mint_address,
            liquidity=liquidity,
            has_mint_authority=authority,
            top_holders_concentration=concentration,
            age_minutes=age,
            name=metadata.name if metadata else None,
            symbol=metadata.symbol if metadata else None,
        )

    async def close(self) -> None:
        """Close every provider client."""
        await self.rpc.close()
        await self.dexscreener.close()
        if self.raydium is not None:
            await self.raydium.close()
