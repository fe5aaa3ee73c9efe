"""Per-user acceptance criteria."""

from pydantic import BaseModel, Field


class UserCriteria(BaseModel):
    """Per-user filter configuration snapshot.

    Every threshold is independently nullable; None means "no constraint".
    Read-only to the detection core, owned by the criteria store.

    Attributes:
        liquidity_threshold: Minimum liquidity (USD for the DexScreener source).
        require_mint_authority: True = required, False = forbidden, None = don't care.
        top_holders_threshold: Maximum top-N holder concentration in percent.
        min_boost_amount: Minimum feed boost weight.
        max_token_age_minutes: Maximum age since the first trading pair was created.
        buy_amount_sol: Amount the purchase collaborator should spend (not filtered on).

    Example:
        criteria = UserCriteria(
            liquidity_threshold=5000.0,
            require_mint_authority=False,
            top_holders_threshold=30.0,
        )
    """

    liquidity_threshold: float | None = Field(default=None, ge=0)
    require_mint_authority: bool | None = None
    top_holders_threshold: float | None = Field(default=None, ge=0, le=100)
    min_boost_amount: float | None = Field(default=None, ge=0)
    max_token_age_minutes: int | None = Field(default=None, ge=0)
    buy_amount_sol: float | None = Field(default=None, gt=0)

    def is_unconstrained(self) -> bool:
        """True when no filter threshold is set (every token matches)."""
        return all(
            value is None
            for value in (
                self.liquidity_threshold,
                self.require_mint_authority,
                self.top_holders_threshold,
                self.min_boost_amount,
                self.max_token_age_minutes,
            )
        )
