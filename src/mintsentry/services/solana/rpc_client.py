"""Solana JSON-RPC client for mint-level token data.

The client extends BaseAPIClient to inherit:
- random endpoint selection per attempt
- dispatch through the shared rate limiter (budget, spacing, retry)
- single-flight caching of parsed results
"""

import base64
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from mintsentry.constants.cache import (
    LARGEST_ACCOUNTS_TTL_SECONDS,
    MINT_INFO_TTL_SECONDS,
    TOKEN_METADATA_TTL_SECONDS,
    TOKEN_SUPPLY_TTL_SECONDS,
)
from mintsentry.constants.provider import RETRYABLE_RPC_ERROR_CODES, RPC_COMMITMENT
from mintsentry.core.address import require_solana_address
from mintsentry.core.exceptions import (
    DataShapeError,
    FatalProviderError,
    TransientProviderError,
)
from mintsentry.models.token import (
    MintInfo,
    TokenAccountBalance,
    TokenMetadata,
    TokenSupply,
)
from mintsentry.services.base import BaseAPIClient
from mintsentry.services.solana.metadata import derive_metadata_address, parse_metadata_account
from mintsentry.services.solana.models import (
    LargestAccountValue,
    ParsedMintAccount,
    RpcError,
    TokenAmountValue,
)

log = structlog.get_logger(__name__)


class SolanaRPCClient(BaseAPIClient):
    """Client for Solana JSON-RPC token queries.

    Example:
        client = SolanaRPCClient(endpoints=[ProviderEndpoint(base_url=url)], limiter=limiter)
        info = await client.get_mint_info("So11111111111111111111111111111111111111112")
        await client.close()
    """

    service_name = "solana_rpc"
    api_key_param = "api-key"

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Issue one JSON-RPC call and return its ``result``.

        JSON-RPC errors are classified inside the scheduled operation so
        throttling codes are retried like HTTP 429.
        """
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        async def attempt() -> Any:
            response = await self._send("POST", "", json=payload)
            try:
                body = response.json()
            except ValueError as e:
                raise DataShapeError(f"{method}: response is not JSON") from e
            if not isinstance(body, dict):
                raise DataShapeError(f"{method}: unexpected response type {type(body).__name__}")

            if body.get("error") is not None:
                error = RpcError.model_validate(body["error"])
                message = f"{method} failed: [{error.code}] {error.message}"
                if error.code in RETRYABLE_RPC_ERROR_CODES:
                    raise TransientProviderError(self.service_name, message, status_code=error.code)
                raise FatalProviderError(self.service_name, message, status_code=error.code)

            if "result" not in body:
                raise DataShapeError(f"{method}: response has neither result nor error")
            return body["result"]

        return await self._limiter.schedule(attempt, method)

    @staticmethod
    def _value_of(method: str, result: Any) -> Any:
        if not isinstance(result, dict) or "value" not in result:
            raise DataShapeError(f"{method}: result has no value")
        return result["value"]

    @classmethod
    def _account_of(cls, result: Any) -> dict[str, Any] | None:
        """getAccountInfo value: None for a missing account, a dict otherwise."""
        value = cls._value_of("getAccountInfo", result)
        if value is not None and not isinstance(value, dict):
            raise DataShapeError(f"getAccountInfo: value is a {type(value).__name__}")
        return value

    async def get_mint_info(self, mint_address: str) -> MintInfo | None:
        """Get parsed mint account data (authorities, decimals, supply).

        Args:
            mint_address: SPL mint address (base58).

        Returns:
            MintInfo, or None if the account does not exist.

        Raises:
            ValidationError: Malformed address (no network call is made).
            DataShapeError: The account is not an SPL mint.
            ExternalServiceError: RPC failure after retries.
        """
        require_solana_address(mint_address, field="mint_address")

        async def fetch() -> MintInfo | None:
            result = await self._call(
                "getAccountInfo",
                [mint_address, {"encoding": "jsonParsed", "commitment": RPC_COMMITMENT}],
            )
            value = self._account_of(result)
            if value is None:
                log.debug("solana_mint_not_found", mint=mint_address[:8] + "...")
                return None

            data = value.get("data")
            parsed = data.get("parsed") if isinstance(data, dict) else None
            if not isinstance(parsed, dict) or parsed.get("type") != "mint":
                raise DataShapeError(f"Account {mint_address[:8]}... is not an SPL mint")

            try:
                account = ParsedMintAccount.model_validate(parsed.get("info", {}))
            except PydanticValidationError as e:
                raise DataShapeError(f"Malformed mint account: {e}") from e

            return MintInfo(
                mint_address=mint_address,
                mint_authority=account.mint_authority,
                freeze_authority=account.freeze_authority,
                decimals=account.decimals,
                supply=account.supply,
                is_initialized=account.is_initialized,
            )

        return await self._cached(f"mint_info:{mint_address}", MINT_INFO_TTL_SECONDS, fetch)

    async def get_token_supply(self, mint_address: str) -> TokenSupply:
        """Get total supply of a mint.

        Raises:
            ValidationError: Malformed address.
            DataShapeError: Unexpected response structure.
            ExternalServiceError: RPC failure after retries.
        """
        require_solana_address(mint_address, field="mint_address")

        async def fetch() -> TokenSupply:
            result = await self._call(
                "getTokenSupply", [mint_address, {"commitment": RPC_COMMITMENT}]
            )
            try:
                value = TokenAmountValue.model_validate(self._value_of("getTokenSupply", result))
            except PydanticValidationError as e:
                raise DataShapeError(f"Malformed token supply: {e}") from e
            return TokenSupply(amount=value.amount, decimals=value.decimals, ui_amount=value.ui_amount)

        return await self._cached(f"supply:{mint_address}", TOKEN_SUPPLY_TTL_SECONDS, fetch)

    async def get_token_largest_accounts(self, mint_address: str) -> list[TokenAccountBalance]:
        """Get the largest token accounts of a mint, ordered by balance.

        The RPC returns at most 20 accounts.

        Raises:
            ValidationError: Malformed address.
            DataShapeError: Unexpected response structure.
            ExternalServiceError: RPC failure after retries.
        """
        require_solana_address(mint_address, field="mint_address")

        async def fetch() -> list[TokenAccountBalance]:
            result = await self._call(
                "getTokenLargestAccounts", [mint_address, {"commitment": RPC_COMMITMENT}]
            )
            value = self._value_of("getTokenLargestAccounts", result)
            if not isinstance(value, list):
                raise DataShapeError("getTokenLargestAccounts: value is not a list")
            try:
                entries = [LargestAccountValue.model_validate(item) for item in value]
            except PydanticValidationError as e:
                raise DataShapeError(f"Malformed largest accounts: {e}") from e

            balances = [
                TokenAccountBalance(
                    address=entry.address,
                    amount=entry.amount,
                    decimals=entry.decimals,
                    ui_amount=entry.ui_amount,
                )
                for entry in entries
            ]
            balances.sort(key=lambda b: b.amount, reverse=True)
            return balances

        return await self._cached(
            f"largest_accounts:{mint_address}", LARGEST_ACCOUNTS_TTL_SECONDS, fetch
        )

    async def get_token_metadata(self, mint_address: str) -> TokenMetadata | None:
        """Get Metaplex metadata (name, symbol, uri) for a mint.

        Returns:
            TokenMetadata, or None if the mint has no metadata account.

        Raises:
            ValidationError: Malformed address.
            DataShapeError: Undecodable metadata account.
            ExternalServiceError: RPC failure after retries.
        """
        require_solana_address(mint_address, field="mint_address")
        metadata_address = derive_metadata_address(mint_address)

        async def fetch() -> TokenMetadata | None:
            result = await self._call(
                "getAccountInfo",
                [metadata_address, {"encoding": "base64", "commitment": RPC_COMMITMENT}],
            )
            value = self._account_of(result)
            if value is None:
                log.debug("solana_metadata_not_found", mint=mint_address[:8] + "...")
                return None

            data = value.get("data")
            if not isinstance(data, list) or not data or not isinstance(data[0], str):
                raise DataShapeError("Metadata account data is not base64-encoded")
            try:
                raw = base64.b64decode(data[0])
            except ValueError as e:
                raise DataShapeError(f"Metadata account data is not valid base64: {e}") from e
            return parse_metadata_account(mint_address, raw)

        return await self._cached(f"metadata:{mint_address}", TOKEN_METADATA_TTL_SECONDS, fetch)
