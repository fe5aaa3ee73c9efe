"""Pydantic models for DexScreener API responses.

API Documentation: https://docs.dexscreener.com/api/reference
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class BoostedToken(BaseModel):
    """Entry of the latest boosted-tokens feed.

    A token that paid for promotion on DexScreener; ``amount`` is the
    weight of this boost and ``total_amount`` the accumulated weight.

    Attributes:
        chain_id: Blockchain identifier (e.g., "solana").
        token_address: Token mint address.
        amount: Boost weight of this entry.
        total_amount: Accumulated boost weight for the token.
        url: DexScreener page for the token.
        icon: Token icon id.
        description: Token description text.
    """

    model_config = ConfigDict(populate_by_name=True)

    chain_id: str = Field(alias="chainId")
    token_address: str = Field(alias="tokenAddress")
    amount: float | None = None
    total_amount: float | None = Field(default=None, alias="totalAmount")
    url: str | None = None
    icon: str | None = None
    description: str | None = None


class BaseTokenInfo(BaseModel):
    """Token information within a trading pair."""

    address: str
    name: str | None = None
    symbol: str | None = None


class LiquidityInfo(BaseModel):
    """Liquidity information.

    Attributes:
        usd: Total liquidity in USD.
        base: Liquidity in base token.
        quote: Liquidity in quote token.
    """

    usd: float | None = None
    base: float | None = None
    quote: float | None = None


class TokenPair(BaseModel):
    """Trading pair information from token lookup.

    Attributes:
        chain_id: Blockchain identifier.
        dex_id: DEX identifier (e.g., "raydium", "orca").
        pair_address: Trading pair address.
        base_token: Base token information.
        quote_token: Quote token information.
        price_usd: Current price in USD.
        liquidity: Liquidity information.
        pair_created_at: Pair creation timestamp (Unix milliseconds).
    """

    model_config = ConfigDict(populate_by_name=True)

    chain_id: str = Field(alias="chainId")
    dex_id: str = Field(alias="dexId")
    pair_address: str = Field(alias="pairAddress")
    base_token: BaseTokenInfo = Field(alias="baseToken")
    quote_token: BaseTokenInfo | None = Field(default=None, alias="quoteToken")
    price_usd: str | None = Field(default=None, alias="priceUsd")
    liquidity: LiquidityInfo | None = None
    pair_created_at: int | None = Field(default=None, alias="pairCreatedAt")

    @property
    def created_at(self) -> datetime | None:
        """Pair creation time as an aware datetime."""
        if self.pair_created_at is None:
            return None
        return datetime.fromtimestamp(self.pair_created_at / 1000, tz=UTC)


class TokenPairsResponse(BaseModel):
    """Response from the token pairs endpoint."""

    pairs: list[TokenPair] | None = None
