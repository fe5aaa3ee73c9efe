"""Detection loop constants."""

from typing import Final

DEFAULT_TOP_HOLDERS_COUNT: Final[int] = 10

# Subscription reconnect backoff
RECONNECT_BASE_DELAY_SECONDS: Final[float] = 1.0
RECONNECT_MAX_DELAY_SECONDS: Final[float] = 30.0
WS_PING_INTERVAL_SECONDS: Final[float] = 55.0

# User-facing messages
MSG_MATCHED: Final[str] = "Token matched: {mint}\nPreparing to buy token..."
MSG_PURCHASE_OK: Final[str] = "Successfully purchased token {mint}. Token detection has been stopped."
MSG_PURCHASE_FAILED: Final[str] = "Failed to purchase token {mint}. Token detection has been stopped."

# Candidate source restart backoff while users are armed
SOURCE_RESTART_BASE_DELAY_SECONDS: Final[float] = 1.0
SOURCE_RESTART_MAX_DELAY_SECONDS: Final[float] = 30.0
