"""Data structures owned by the access layer."""

import random
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class ProviderEndpoint(BaseModel):
    """An upstream base address plus credentials.

    Immutable. Several endpoints may serve the same capability; callers
    must not assume affinity between calls.

    Attributes:
        base_url: Base URL for requests.
        api_key: Optional credential, sent as query param or header by the client.
        headers: Extra headers for every request.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str
    api_key: SecretStr | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(self.base_url)


class EndpointPool:
    """Uniform random selection among endpoints serving one capability."""

    def __init__(
        self,
        endpoints: list[ProviderEndpoint],
        rng: random.Random | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError("EndpointPool requires at least one endpoint")
        self._endpoints = list(endpoints)
        self._rng = rng or random.Random()

    def pick(self) -> ProviderEndpoint:
        """Select one endpoint uniformly at random."""
        if len(self._endpoints) == 1:
            return self._endpoints[0]
        return self._rng.choice(self._endpoints)

    @property
    def endpoints(self) -> list[ProviderEndpoint]:
        """All endpoints in the pool."""
        return list(self._endpoints)

    def __len__(self) -> int:
        return len(self._endpoints)


@dataclass
class RateLimiterState:
    """Token-bucket budget for one provider.

    Mutated only by RateLimitedAccess while granting a dispatch slot.

    Attributes:
        capacity: Tokens restored on every refill.
        remaining_tokens: Tokens left until the next refill.
        refill_interval: Seconds between refills.
        max_concurrent: Ceiling on outstanding operations.
        min_spacing: Minimum seconds between two dispatches.
        in_flight: Operations currently executing.
        last_refill_at: Clock value of the last refill.
        last_dispatch_at: Clock value of the last dispatch, None before the first.
    """

    capacity: int
    refill_interval: float
    max_concurrent: int
    min_spacing: float
    remaining_tokens: int = field(default=-1)
    in_flight: int = field(default=0, init=False)
    last_refill_at: float = field(default=0.0)
    last_dispatch_at: float | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.remaining_tokens < 0:
            self.remaining_tokens = self.capacity


@dataclass
class CacheEntry:
    """A cached value with its storage time and TTL (seconds)."""

    key: str
    value: Any
    stored_at: float
    ttl: float

    def expires_at(self) -> float:
        """Clock value after which the entry is absent."""
        return self.stored_at + self.ttl
