"""Raydium liquidity listing client.

The listing is one large document covering every pool, so it is fetched
once per TTL and shared by every mint lookup.
"""

from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from mintsentry.constants.cache import RAYDIUM_POOLS_TTL_SECONDS
from mintsentry.core.address import require_solana_address
from mintsentry.core.exceptions import DataShapeError
from mintsentry.services.base import BaseAPIClient
from mintsentry.services.raydium.models import RaydiumPool

log = structlog.get_logger(__name__)


def _pool_items(data: Any) -> list[Any]:
    """Flatten the listing into a list of raw pool objects.

    The document is either a list of pools or an object grouping pools
    (``official``/``unOfficial``) or keying them by id.
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        raise DataShapeError(f"Raydium listing is a {type(data).__name__}")

    items: list[Any] = []
    for value in data.values():
        if isinstance(value, list):
            items.extend(value)
        elif isinstance(value, dict):
            items.append(value)
    return items


class RaydiumClient(BaseAPIClient):
    """Client for the Raydium liquidity pool listing.

    Attributes:
        pools_path: Path of the listing document under the endpoint base URL.
    """

    service_name = "raydium"
    DEFAULT_POOLS_PATH = "/v2/sdk/liquidity/mainnet.json"

    def __init__(self, *args: Any, pools_path: str = DEFAULT_POOLS_PATH, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.pools_path = pools_path

    async def fetch_liquidity_pools(self) -> list[RaydiumPool]:
        """Fetch every pool of the listing.

        Entries that do not parse are skipped.

        Raises:
            DataShapeError: The listing has an unexpected structure.
            ExternalServiceError: API failure after retries.
        """

        async def fetch() -> list[RaydiumPool]:
            response = await self.get(self.pools_path, description="raydium pools")
            try:
                data = response.json()
            except ValueError as e:
                raise DataShapeError(f"Raydium listing is not JSON: {e}") from e

            raw_items = _pool_items(data)
            pools = []
            skipped = 0
            for item in raw_items:
                try:
                    pools.append(RaydiumPool.model_validate(item))
                except PydanticValidationError:
                    skipped += 1

            log.debug("raydium_pools_fetched", total=len(raw_items), parsed=len(pools), skipped=skipped)
            return pools

        return await self._cached("pools", RAYDIUM_POOLS_TTL_SECONDS, fetch)

    async def pools_for_mint(self, mint_address: str) -> list[RaydiumPool]:
        """Pools where ``mint_address`` is the base or quote token.

        Raises:
            ValidationError: Malformed address (no network call is made).
        """
        require_solana_address(mint_address, field="mint_address")
        pools = await self.fetch_liquidity_pools()
        return [pool for pool in pools if pool.involves(mint_address)]

    async def get_liquidity(self, mint_address: str) -> float:
        """Sum of decimals-adjusted reserves of ``mint_address`` across its pools."""
        pools = await self.pools_for_mint(mint_address)
        return sum(pool.reserve_of(mint_address) for pool in pools)
