"""Cache TTLs per provider resource (seconds)."""

from typing import Final

MINT_INFO_TTL_SECONDS: Final[int] = 30
TOKEN_SUPPLY_TTL_SECONDS: Final[int] = 30
LARGEST_ACCOUNTS_TTL_SECONDS: Final[int] = 30
TOKEN_METADATA_TTL_SECONDS: Final[int] = 600
TOKEN_PAIRS_TTL_SECONDS: Final[int] = 15
BOOSTED_FEED_TTL_SECONDS: Final[int] = 1
RAYDIUM_POOLS_TTL_SECONDS: Final[int] = 60
