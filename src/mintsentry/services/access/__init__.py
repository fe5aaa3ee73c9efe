"""Rate-limited, retrying, single-flight access to external providers."""

from mintsentry.services.access.models import (
    CacheEntry,
    EndpointPool,
    ProviderEndpoint,
    RateLimiterState,
)
from mintsentry.services.access.rate_limiter import RateLimitedAccess, is_retryable
from mintsentry.services.access.single_flight import SingleFlightCache

__all__ = [
    "CacheEntry",
    "EndpointPool",
    "ProviderEndpoint",
    "RateLimitedAccess",
    "RateLimiterState",
    "SingleFlightCache",
    "is_retryable",
]
