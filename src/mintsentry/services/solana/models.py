"""Pydantic models for Solana JSON-RPC responses.

Only the fields the detection core reads are modelled; unknown fields
are ignored.

Models:
    RpcError: JSON-RPC error object
    ParsedMintAccount: ``parsed.info`` of a jsonParsed SPL mint account
    TokenAmountValue: ``value`` of getTokenSupply
    LargestAccountValue: one entry of getTokenLargestAccounts ``value``
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mintsentry.core.address import is_valid_solana_address


class RpcError(BaseModel):
    """JSON-RPC error object."""

    code: int
    message: str = ""


class ParsedMintAccount(BaseModel):
    """SPL mint account as returned with jsonParsed encoding.

    Example:
        {
            "decimals": 6,
            "freezeAuthority": null,
            "isInitialized": true,
            "mintAuthority": "7xKX...",
            "supply": "1000000000000"
        }
    """

    model_config = ConfigDict(populate_by_name=True)

    decimals: int = Field(..., ge=0)
    supply: int = Field(..., ge=0)
    mint_authority: str | None = Field(None, alias="mintAuthority")
    freeze_authority: str | None = Field(None, alias="freezeAuthority")
    is_initialized: bool = Field(True, alias="isInitialized")

    @field_validator("mint_authority", "freeze_authority")
    @classmethod
    def validate_authority(cls, v: str | None) -> str | None:
        """Reject authorities that are not base58 public keys."""
        if v is not None and not is_valid_solana_address(v):
            raise ValueError(f"Invalid authority address: {v!r}")
        return v


class TokenAmountValue(BaseModel):
    """Token amount object (getTokenSupply ``value``).

    ``amount`` is the raw integer as a string; ``uiAmount`` may be null
    for very large supplies.
    """

    model_config = ConfigDict(populate_by_name=True)

    amount: int = Field(..., ge=0)
    decimals: int = Field(..., ge=0)
    ui_amount: float | None = Field(None, alias="uiAmount")


class LargestAccountValue(TokenAmountValue):
    """One holder entry of getTokenLargestAccounts."""

    address: str
