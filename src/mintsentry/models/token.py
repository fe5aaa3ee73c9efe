"""Token-related Pydantic models.

Candidates discovered by the detection sources and the typed views the
provider clients return for a mint.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CandidateSourceKind(str, Enum):
    """Where a token candidate was discovered."""

    MINT_SUBSCRIPTION = "mint_subscription"
    BOOSTED_FEED = "boosted_feed"
    MANUAL = "manual"


class TokenCandidate(BaseModel):
    """A newly discovered token, identified by its mint address.

    Identity is immutable; derived attributes (liquidity, authority,
    concentration, age) are resolved lazily through a TokenSnapshot.

    Attributes:
        mint_address: SPL token mint address.
        source: Discovery mechanism.
        discovered_at: When the candidate was first seen.
        boost_amount: Boost weight of the latest feed entry (boosted feed only).
        total_boost_amount: Accumulated boost weight (boosted feed only).
        url: Provider page for the token, if any.
        description: Provider description, if any.
    """

    model_config = ConfigDict(frozen=True)

    mint_address: str
    source: CandidateSourceKind = CandidateSourceKind.MANUAL
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    boost_amount: float | None = None
    total_boost_amount: float | None = None
    url: str | None = None
    description: str | None = None

    @property
    def short_mint(self) -> str:
        """Truncated mint for log lines."""
        return self.mint_address[:8] + "..."


class MintInfo(BaseModel):
    """Parsed SPL mint account.

    Attributes:
        mint_address: Mint address.
        mint_authority: Current mint authority, None if revoked.
        freeze_authority: Current freeze authority, None if revoked.
        decimals: Token decimals.
        supply: Raw supply (not decimals-adjusted).
        is_initialized: Mint initialization flag.
    """

    mint_address: str
    mint_authority: str | None = None
    freeze_authority: str | None = None
    decimals: int = Field(ge=0)
    supply: int = Field(ge=0)
    is_initialized: bool = True

    @property
    def has_mint_authority(self) -> bool:
        """True when new supply can still be minted."""
        return self.mint_authority is not None


class TokenSupply(BaseModel):
    """Token supply as returned by getTokenSupply."""

    amount: int = Field(ge=0)
    decimals: int = Field(ge=0)
    ui_amount: float | None = None

    @property
    def ui_value(self) -> float:
        """Decimals-adjusted supply."""
        if self.ui_amount is not None:
            return self.ui_amount
        return self.amount / (10**self.decimals)


class TokenAccountBalance(BaseModel):
    """One entry of getTokenLargestAccounts."""

    address: str
    amount: int = Field(ge=0)
    decimals: int = Field(ge=0)
    ui_amount: float | None = None

    @property
    def ui_value(self) -> float:
        """Decimals-adjusted balance."""
        if self.ui_amount is not None:
            return self.ui_amount
        return self.amount / (10**self.decimals)


class TokenMetadata(BaseModel):
    """Metaplex token metadata (name, symbol, uri)."""

    mint_address: str
    update_authority: str | None = None
    name: str = ""
    symbol: str = ""
    uri: str = ""


class TokenOverview(BaseModel):
    """Snapshot of the conservative, safe-accessor view of a token.

    Used by the HTTP surface and notifications; every field falls back to
    its conservative default when the provider fails.
    """

    mint_address: str
    liquidity: float = 0.0
    has_mint_authority: bool = False
    top_holders_concentration: float = 0.0
    age_minutes: float | None = None
    name: str | None = None
    symbol: str | None = None
