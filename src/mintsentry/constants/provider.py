"""External provider constants."""

from typing import Final

# Retry classification
RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503})
# JSON-RPC error codes providers use for throttling / node overload
RETRYABLE_RPC_ERROR_CODES: Final[frozenset[int]] = frozenset({429, -32005, -32429})

# Backoff
RETRY_JITTER_SECONDS: Final[float] = 0.1  # jitter drawn from [0, 100ms)

# Solana programs
SPL_TOKEN_PROGRAM_ID: Final[str] = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_METADATA_PROGRAM_ID: Final[str] = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
SPL_MINT_ACCOUNT_SIZE: Final[int] = 82
RPC_COMMITMENT: Final[str] = "confirmed"

# DexScreener
SOLANA_CHAIN_ID: Final[str] = "solana"

# Well-known mints
WSOL_MINT: Final[str] = "So11111111111111111111111111111111111111112"
