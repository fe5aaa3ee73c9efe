"""mintsentry exception hierarchy.

This module defines the base exception class and specialized exceptions
for the different failure categories of the data-access and detection core.
"""


class MintSentryError(Exception):
    """Base exception for all mintsentry errors.

    All custom exceptions in mintsentry should inherit from this class
    to enable consistent error handling and logging.
    """

    pass


class ConfigurationError(MintSentryError):
    """Raised when configuration is invalid or missing.

    Example:
        raise ConfigurationError("At least one Solana RPC URL is required")
    """

    pass


class ValidationError(MintSentryError):
    """Raised when input validation fails.

    Use this for malformed addresses or arguments. Raised before any
    network call is issued, so it never reaches the rate limiter.

    Example:
        raise ValidationError("Mint address must be base58, 32-44 characters")
    """

    pass


class ExternalServiceError(MintSentryError):
    """Raised when an external provider call fails.

    Use this for API errors from Solana RPC, DexScreener, Raydium, etc.

    Attributes:
        service: Name of the external service that failed.
        status_code: HTTP status code if available, None otherwise.

    Example:
        raise ExternalServiceError(service="dexscreener", message="Bad gateway", status_code=502)
    """

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class TransientProviderError(ExternalServiceError):
    """Raised for retryable upstream failures.

    HTTP 429/500/502/503, connection resets and connect/read timeouts.
    RateLimitedAccess retries these; they only surface after exhaustion.
    """

    pass


class RetryExhaustedError(TransientProviderError):
    """Raised when a retryable operation failed on every allowed attempt.

    Attributes:
        attempts: Number of attempts made (first try plus retries).
    """

    def __init__(
        self,
        service: str,
        message: str,
        attempts: int,
        status_code: int | None = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(service=service, message=message, status_code=status_code)


class FatalProviderError(ExternalServiceError):
    """Raised for non-retryable upstream failures (4xx other than 429, bad payloads)."""

    pass


class FetchTimeoutError(MintSentryError):
    """Raised when the global fetch deadline for a cache key is exceeded.

    Attributes:
        key: Cache key whose fetch was abandoned.
        timeout: Deadline in seconds.
    """

    def __init__(self, key: str, timeout: float) -> None:
        self.key = key
        self.timeout = timeout
        super().__init__(f"Fetch for {key!r} exceeded {timeout:.1f}s")


class DataShapeError(MintSentryError):
    """Raised when a response parses but does not have the expected structure.

    Treated like a cache miss by SingleFlightCache and converted to
    conservative defaults at the TokenDataService boundary.
    """

    pass
