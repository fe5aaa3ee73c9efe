"""Mock responses for the Solana RPC, DexScreener and Raydium APIs.

Uses respx to intercept httpx at the transport level, so the real
clients (endpoint selection, limiter, cache) run unchanged.
"""

import base64
import json
import struct
from collections.abc import Callable
from typing import Any

import httpx
from solders.pubkey import Pubkey

RPC_URL = "https://rpc.test"
RPC_ROUTE = f"{RPC_URL}/"
RPC_URL_ALT = "https://rpc-alt.test"
DEXSCREENER_URL = "https://dex.test"
RAYDIUM_URL = "https://raydium.test"

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
WSOL_MINT = "So11111111111111111111111111111111111111112"
AUTHORITY = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
HOLDER_A = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
HOLDER_B = "58oQChx4yWmvKdwLLZzBi4ChoCc2fqCUWBkwMihLYQo2"

RpcResult = Any | Callable[[dict[str, Any]], Any]


# =============================================================================
# Solana JSON-RPC
# =============================================================================


def rpc_handler(results: dict[str, RpcResult]) -> Callable[[httpx.Request], httpx.Response]:
    """Build a respx side effect dispatching on the JSON-RPC method.

    Each value is either the ``result`` to return, an httpx.Response to
    send as is, or a callable receiving the request body.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        result = results[body["method"]]
        if callable(result):
            result = result(body)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return handler


def rpc_error(code: int, message: str = "error") -> httpx.Response:
    return httpx.Response(
        200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message}}
    )


def mint_account(
    mint_authority: str | None = AUTHORITY,
    supply: str = "1000000000000",
    decimals: int = 6,
) -> dict[str, Any]:
    """getAccountInfo result for a jsonParsed SPL mint."""
    return {
        "context": {"slot": 1},
        "value": {
            "data": {
                "parsed": {
                    "info": {
                        "decimals": decimals,
                        "freezeAuthority": None,
                        "isInitialized": True,
                        "mintAuthority": mint_authority,
                        "supply": supply,
                    },
                    "type": "mint",
                },
                "program": "spl-token",
                "space": 82,
            },
            "executable": False,
            "lamports": 1461600,
            "owner": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
        },
    }


def token_supply(amount: int, decimals: int = 6) -> dict[str, Any]:
    return {
        "context": {"slot": 1},
        "value": {
            "amount": str(amount),
            "decimals": decimals,
            "uiAmount": amount / 10**decimals,
            "uiAmountString": str(amount / 10**decimals),
        },
    }


def largest_accounts(amounts: dict[str, int], decimals: int = 6) -> dict[str, Any]:
    return {
        "context": {"slot": 1},
        "value": [
            {
                "address": address,
                "amount": str(amount),
                "decimals": decimals,
                "uiAmount": amount / 10**decimals,
            }
            for address, amount in amounts.items()
        ],
    }


def _borsh_string(value: str, padded_length: int) -> bytes:
    raw = value.encode().ljust(padded_length, b"\x00")
    return struct.pack("<I", len(raw)) + raw


def metadata_account(
    mint: str,
    name: str,
    symbol: str,
    uri: str,
    update_authority: str = AUTHORITY,
) -> dict[str, Any]:
    """base64 getAccountInfo result for a Metaplex metadata account."""
    data = (
        bytes([4])
        + bytes(Pubkey.from_string(update_authority))
        + bytes(Pubkey.from_string(mint))
        + _borsh_string(name, 32)
        + _borsh_string(symbol, 10)
        + _borsh_string(uri, 200)
    )
    return {
        "context": {"slot": 1},
        "value": {
            "data": [base64.b64encode(data).decode(), "base64"],
            "executable": False,
            "lamports": 5616720,
            "owner": "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s",
        },
    }


MISSING_ACCOUNT: dict[str, Any] = {"context": {"slot": 1}, "value": None}


# =============================================================================
# DexScreener
# =============================================================================


MOCK_BOOSTED_TOKENS: list[dict[str, Any]] = [
    {
        "url": f"https://dexscreener.com/solana/{USDC_MINT}",
        "chainId": "solana",
        "tokenAddress": USDC_MINT,
        "icon": "usdc",
        "description": "USD Coin",
        "amount": 500,
        "totalAmount": 1500,
    },
    {
        "url": "https://dexscreener.com/ethereum/0xdeadbeef",
        "chainId": "ethereum",
        "tokenAddress": "0x6982508145454ce325ddbe47a25d4ec3d2311933",
        "amount": 100,
        "totalAmount": 100,
    },
    {
        "url": f"https://dexscreener.com/solana/{BONK_MINT}",
        "chainId": "solana",
        "tokenAddress": BONK_MINT,
        "description": "BONK",
        "amount": 30,
        "totalAmount": 30,
    },
]


def token_pairs(
    address: str,
    liquidities: list[float | None],
    created_at_ms: list[int | None] | None = None,
    chain_id: str = "solana",
) -> dict[str, Any]:
    """Body of /latest/dex/tokens/{address} with one pair per liquidity value."""
    created = created_at_ms or [None] * len(liquidities)
    return {
        "schemaVersion": "1.0.0",
        "pairs": [
            {
                "chainId": chain_id,
                "dexId": "raydium",
                "url": f"https://dexscreener.com/solana/pair{index}",
                "pairAddress": HOLDER_B,
                "baseToken": {"address": address, "name": "Test", "symbol": "TEST"},
                "quoteToken": {"address": WSOL_MINT, "name": "Wrapped SOL", "symbol": "SOL"},
                "priceUsd": "0.0001",
                "liquidity": None if liquidity is None else {"usd": liquidity, "base": 1, "quote": 1},
                "pairCreatedAt": created_ms,
            }
            for index, (liquidity, created_ms) in enumerate(zip(liquidities, created, strict=True))
        ],
    }


# =============================================================================
# Raydium
# =============================================================================


def raydium_listing(mint: str) -> dict[str, Any]:
    """Listing with two pools holding ``mint`` and one unrelated pool."""
    return {
        "name": "Raydium Mainnet Liquidity Pools",
        "official": [
            {
                "id": HOLDER_A,
                "baseMint": mint,
                "quoteMint": WSOL_MINT,
                "baseDecimals": 6,
                "quoteDecimals": 9,
                "baseReserve": 2_000_000_000,
                "quoteReserve": 5_000_000_000,
            },
        ],
        "unOfficial": [
            {
                "id": HOLDER_B,
                "baseMint": WSOL_MINT,
                "quoteMint": mint,
                "baseDecimal": 9,
                "quoteDecimal": 6,
                "baseReserve": 1_000_000_000,
                "quoteReserve": 500_000_000,
            },
            {
                "id": AUTHORITY,
                "baseMint": USDC_MINT,
                "quoteMint": WSOL_MINT,
                "baseDecimals": 6,
                "quoteDecimals": 9,
                "baseReserve": 9_000_000,
                "quoteReserve": 9_000_000,
            },
            {"id": "broken-entry"},
        ],
    }
