"""Token data API routes."""

from fastapi import APIRouter

from mintsentry.api.dependencies import DetectionContextDep
from mintsentry.core.address import require_solana_address
from mintsentry.models.token import TokenOverview

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.get("/{mint}", response_model=TokenOverview)
async def get_token(mint: str, context: DetectionContextDep) -> TokenOverview:
    """
    Conservative view of a token.

    Unavailable attributes fall back to their defaults (0 liquidity,
    no mint authority, 0% concentration, unknown age).
    """
    require_solana_address(mint, field="mint")
    return await context.data_service.overview(mint)
