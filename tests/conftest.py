"""Shared pytest fixtures for mintsentry tests.

This module provides fixtures for:
- Environment defaults and settings cache isolation
- Deterministic clocks and limiter/cache instances
- Provider clients wired to respx-mocked endpoints
- Test data factories

Usage:
    @pytest.mark.asyncio
    async def test_something(rpc_client, respx_mock):
        respx_mock.post(RPC_ROUTE).mock(side_effect=rpc_handler({...}))
        info = await rpc_client.get_mint_info(USDC_MINT)
"""

import os
import random
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio

from mintsentry.config.settings import get_settings
from mintsentry.services.access.models import ProviderEndpoint
from mintsentry.services.access.rate_limiter import RateLimitedAccess
from mintsentry.services.access.single_flight import SingleFlightCache
from mintsentry.services.dexscreener.client import DexScreenerClient
from mintsentry.services.raydium.client import RaydiumClient
from mintsentry.services.solana.rpc_client import SolanaRPCClient
from tests.factories.token import TokenCandidateFactory, UserCriteriaFactory
from tests.fixtures.provider_mocks import DEXSCREENER_URL, RAYDIUM_URL, RPC_URL
from tests.support.helpers.fakes import FakeClock

# =============================================================================
# Environment Configuration
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """Set up test environment variables.

    Loads .env file first, then sets defaults for any missing variables.
    """
    from dotenv import load_dotenv

    original_env = os.environ.copy()

    # Load .env file if it exists (won't override existing env vars)
    load_dotenv()

    os.environ.setdefault("TRADING_MODE", "simulation")
    os.environ.setdefault("CANDIDATE_SOURCE", "boosted_feed")
    os.environ.setdefault("SOLANA_RPC_URLS", RPC_URL)

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings so each test sees its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture
def candidate_factory() -> type[TokenCandidateFactory]:
    """Provide candidate factory for creating boosted-feed candidates."""
    return TokenCandidateFactory


@pytest.fixture
def criteria_factory() -> type[UserCriteriaFactory]:
    """Provide criteria factory (unconstrained unless overridden)."""
    return UserCriteriaFactory


# =============================================================================
# Access Layer
# =============================================================================


@pytest.fixture
def fake_clock() -> FakeClock:
    """Manually advanced clock whose sleep returns immediately."""
    return FakeClock()


@pytest.fixture
def limiter(fake_clock: FakeClock) -> RateLimitedAccess:
    """Limiter with no spacing and instant sleeps."""
    return RateLimitedAccess(
        name="test_provider",
        capacity=100,
        refill_interval=60.0,
        max_concurrent=10,
        min_spacing=0.0,
        max_retries=3,
        backoff_base=0.5,
        backoff_cap=60.0,
        clock=fake_clock,
        sleep=fake_clock.sleep,
        rng=random.Random(7),
    )


@pytest.fixture
def cache() -> SingleFlightCache:
    """Fresh single-flight cache."""
    return SingleFlightCache(maxsize=100, fetch_timeout=5.0)


# =============================================================================
# Provider Clients (pair with the respx_mock fixture)
# =============================================================================


@pytest_asyncio.fixture
async def rpc_client(
    limiter: RateLimitedAccess, cache: SingleFlightCache
) -> AsyncGenerator[SolanaRPCClient, None]:
    """Solana RPC client on the mocked RPC endpoint."""
    client = SolanaRPCClient([ProviderEndpoint(base_url=RPC_URL)], limiter, cache=cache)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def dexscreener_client(
    limiter: RateLimitedAccess, cache: SingleFlightCache
) -> AsyncGenerator[DexScreenerClient, None]:
    """DexScreener client on the mocked endpoint."""
    client = DexScreenerClient([ProviderEndpoint(base_url=DEXSCREENER_URL)], limiter, cache=cache)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def raydium_client(
    limiter: RateLimitedAccess, cache: SingleFlightCache
) -> AsyncGenerator[RaydiumClient, None]:
    """Raydium client on the mocked endpoint."""
    client = RaydiumClient([ProviderEndpoint(base_url=RAYDIUM_URL)], limiter, cache=cache)
    yield client
    await client.close()
