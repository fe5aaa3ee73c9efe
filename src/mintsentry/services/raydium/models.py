"""Pydantic models for the Raydium liquidity pool listing."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RaydiumPool(BaseModel):
    """One liquidity pool of the Raydium listing.

    Reserves are raw integer amounts; decimals convert them to token units.

    Attributes:
        id: Pool address.
        base_mint: Base token mint.
        quote_mint: Quote token mint.
        base_reserve: Raw base reserve.
        quote_reserve: Raw quote reserve.
        base_decimals: Base token decimals.
        quote_decimals: Quote token decimals.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    base_mint: str = Field(alias="baseMint")
    quote_mint: str = Field(alias="quoteMint")
    base_reserve: float = Field(default=0.0, ge=0, alias="baseReserve")
    quote_reserve: float = Field(default=0.0, ge=0, alias="quoteReserve")
    base_decimals: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("baseDecimal", "baseDecimals")
    )
    quote_decimals: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("quoteDecimal", "quoteDecimals")
    )

    def involves(self, mint_address: str) -> bool:
        """True when the mint is either side of the pool."""
        return mint_address in (self.base_mint, self.quote_mint)

    def reserve_of(self, mint_address: str) -> float:
        """Decimals-adjusted reserve held by the pool for ``mint_address``."""
        total = 0.0
        if self.base_mint == mint_address:
            total += self.base_reserve / (10**self.base_decimals)
        if self.quote_mint == mint_address:
            total += self.quote_reserve / (10**self.quote_decimals)
        return total
