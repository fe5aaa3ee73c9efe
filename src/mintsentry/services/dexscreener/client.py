"""DexScreener API client for boosted-token discovery and pair data.

API Documentation: https://docs.dexscreener.com/api/reference
Rate Limits: ~300 requests/minute (no auth required)
"""

from collections.abc import Callable

import structlog
from pydantic import ValidationError as PydanticValidationError

from mintsentry.constants.cache import BOOSTED_FEED_TTL_SECONDS, TOKEN_PAIRS_TTL_SECONDS
from mintsentry.constants.provider import SOLANA_CHAIN_ID
from mintsentry.core.address import require_solana_address
from mintsentry.core.exceptions import DataShapeError
from mintsentry.services.base import BaseAPIClient
from mintsentry.services.dexscreener.models import BoostedToken, TokenPair, TokenPairsResponse

log = structlog.get_logger(__name__)


def _list_of(model: type) -> Callable[[object], bool]:
    """Cache shape check: a list holding only ``model`` instances."""

    def check(value: object) -> bool:
        return isinstance(value, list) and all(isinstance(item, model) for item in value)

    return check


class DexScreenerClient(BaseAPIClient):
    """DexScreener API client.

    Endpoints used:
        - GET /token-boosts/latest/v1 - Latest boosted tokens
        - GET /latest/dex/tokens/{address} - Token pair data

    Example:
        client = DexScreenerClient(endpoints=[ProviderEndpoint(base_url=url)], limiter=limiter)
        try:
            for token in await client.fetch_latest_boosts():
                print(token.token_address, token.amount)
        finally:
            await client.close()
    """

    service_name = "dexscreener"

    async def fetch_latest_boosts(self) -> list[BoostedToken]:
        """Fetch the latest boosted tokens, filtered to Solana.

        Unparseable entries are skipped with a warning.

        Returns:
            BoostedToken models in feed order.

        Raises:
            DataShapeError: The feed is not a JSON list.
            ExternalServiceError: API failure after retries.
        """

        async def fetch() -> list[BoostedToken]:
            response = await self.get("/token-boosts/latest/v1", description="dexscreener boosts")
            try:
                data = response.json()
            except ValueError as e:
                raise DataShapeError(f"Boosted feed is not JSON: {e}") from e

            if not isinstance(data, list):
                raise DataShapeError(f"Boosted feed is a {type(data).__name__}, expected list")

            tokens = []
            for item in data:
                if not isinstance(item, dict) or item.get("chainId") != SOLANA_CHAIN_ID:
                    continue
                try:
                    tokens.append(BoostedToken.model_validate(item))
                except PydanticValidationError as e:
                    log.warning("boosted_token_parse_error", error=str(e))

            log.debug("boosted_tokens_fetched", total=len(data), solana_count=len(tokens))
            return tokens

        return await self._cached(
            "latest_boosts", BOOSTED_FEED_TTL_SECONDS, fetch, validate=_list_of(BoostedToken)
        )

    async def fetch_token_pairs(self, address: str) -> list[TokenPair]:
        """Fetch Solana trading pairs for a token.

        Args:
            address: Solana token mint address.

        Returns:
            Solana TokenPair models (empty when the token has no pairs yet).

        Raises:
            ValidationError: Malformed address (no network call is made).
            DataShapeError: Unparseable response.
            ExternalServiceError: API failure after retries.
        """
        require_solana_address(address, field="address")

        async def fetch() -> list[TokenPair]:
            response = await self.get(
                f"/latest/dex/tokens/{address}", description="dexscreener pairs"
            )
            try:
                pairs_response = TokenPairsResponse.model_validate(response.json())
            except (PydanticValidationError, ValueError) as e:
                raise DataShapeError(f"Malformed pairs response: {e}") from e

            if not pairs_response.pairs:
                log.debug("token_no_pairs", address=address[:8] + "...")
                return []

            solana_pairs = [
                pair for pair in pairs_response.pairs if pair.chain_id == SOLANA_CHAIN_ID
            ]
            log.debug(
                "token_pairs_fetched",
                address=address[:8] + "...",
                total=len(pairs_response.pairs),
                solana_count=len(solana_pairs),
            )
            return solana_pairs

        return await self._cached(
            f"pairs:{address}", TOKEN_PAIRS_TTL_SECONDS, fetch, validate=_list_of(TokenPair)
        )
