"""Wiring of the detection pipeline.

All process-wide state (limiters, cache, clients, watcher set) lives in
one DetectionContext. The module keeps a single current context for the
application; tests build isolated ones with ``build_detection_context``.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
import structlog

from mintsentry.config.settings import Settings, get_settings
from mintsentry.core.exceptions import ConfigurationError
from mintsentry.models.criteria import UserCriteria
from mintsentry.services.access.models import ProviderEndpoint
from mintsentry.services.access.rate_limiter import RateLimitedAccess
from mintsentry.services.access.single_flight import SingleFlightCache
from mintsentry.services.detection.interfaces import (
    CriteriaStore,
    InMemoryCriteriaStore,
    LogNotificationSink,
    NotificationSink,
    PurchaseExecutor,
    SimulatedPurchaseExecutor,
)
from mintsentry.services.detection.loop import DetectionLoop
from mintsentry.services.detection.sources import (
    BoostedFeedSource,
    CandidateSource,
    MintSubscriptionSource,
)
from mintsentry.services.dexscreener.client import DexScreenerClient
from mintsentry.services.filter.evaluator import FilterEvaluator
from mintsentry.services.raydium.client import RaydiumClient
from mintsentry.services.solana.rpc_client import SolanaRPCClient
from mintsentry.services.token.data_service import TokenDataService

log = structlog.get_logger(__name__)


@dataclass
class DetectionContext:
    """Every collaborator of the detection pipeline, built once."""

    settings: Settings
    cache: SingleFlightCache
    limiters: dict[str, RateLimitedAccess]
    rpc_client: SolanaRPCClient
    dexscreener_client: DexScreenerClient
    raydium_client: RaydiumClient
    data_service: TokenDataService
    evaluator: FilterEvaluator
    criteria_store: CriteriaStore
    purchase_executor: PurchaseExecutor
    notifier: NotificationSink
    source_factory: Callable[[], CandidateSource] | None = None
    loop: DetectionLoop = field(init=False)

    def __post_init__(self) -> None:
        self.loop = DetectionLoop(
            data_service=self.data_service,
            evaluator=self.evaluator,
            criteria_store=self.criteria_store,
            purchase_executor=self.purchase_executor,
            notifier=self.notifier,
            source_factory=self.source_factory or self.new_source,
            source_kind=self.settings.candidate_source,
            processed_ttl=self.settings.processed_ttl_seconds,
            processed_max_size=self.settings.processed_max_size,
            cache=self.cache,
            limiters=list(self.limiters.values()),
        )

    def new_source(self) -> CandidateSource:
        """Build a fresh candidate source of the configured kind."""
        if self.settings.candidate_source == "mint_subscription":
            return MintSubscriptionSource(self.settings.solana_ws_url)
        return BoostedFeedSource(
            self.dexscreener_client, poll_interval=self.settings.poll_interval_seconds
        )

    async def close(self) -> None:
        """Stop detection and release every provider connection."""
        await self.loop.shutdown()
        await self.data_service.close()


def default_criteria(settings: Settings) -> UserCriteria:
    """Criteria for users who never stored their own."""
    return UserCriteria(
        liquidity_threshold=settings.default_liquidity_threshold,
        require_mint_authority=settings.default_require_mint_authority,
        top_holders_threshold=settings.default_top_holders_threshold,
        min_boost_amount=settings.default_min_boost_amount,
        max_token_age_minutes=settings.default_max_token_age_minutes,
        buy_amount_sol=settings.default_buy_amount_sol,
    )


def _new_limiter(name: str, settings: Settings) -> RateLimitedAccess:
    return RateLimitedAccess(
        name=name,
        capacity=settings.rate_limit_capacity,
        refill_interval=settings.rate_limit_refill_seconds,
        max_concurrent=settings.rate_limit_max_concurrent,
        min_spacing=settings.rate_limit_min_spacing_ms / 1000,
        max_retries=settings.retry_max_retries,
        backoff_base=settings.retry_base_delay_ms / 1000,
        backoff_cap=settings.retry_max_delay_ms / 1000,
    )


def build_detection_context(
    settings: Settings,
    criteria_store: CriteriaStore | None = None,
    purchase_executor: PurchaseExecutor | None = None,
    notifier: NotificationSink | None = None,
    source_factory: Callable[[], CandidateSource] | None = None,
) -> DetectionContext:
    """Build an isolated context from settings.

    Raises:
        ConfigurationError: Live trading requested without a purchase executor.
    """
    if purchase_executor is None and settings.trading_mode == "live":
        raise ConfigurationError("Live trading requires a PurchaseExecutor")

    criteria_store = criteria_store or InMemoryCriteriaStore(default_criteria(settings))
    purchase_executor = purchase_executor or SimulatedPurchaseExecutor(criteria_store)
    notifier = notifier or LogNotificationSink()

    cache = SingleFlightCache(
        maxsize=settings.cache_max_size,
        fetch_timeout=settings.cache_fetch_timeout_seconds,
    )
    limiters = {
        name: _new_limiter(name, settings) for name in ("solana_rpc", "dexscreener", "raydium")
    }

    api_key = settings.solana_rpc_api_key
    rpc_endpoints = [
        ProviderEndpoint(
            base_url=url,
            api_key=api_key if api_key.get_secret_value() else None,
            headers={"Content-Type": "application/json"},
        )
        for url in settings.rpc_url_list
    ]
    rpc_client = SolanaRPCClient(
        rpc_endpoints,
        limiters["solana_rpc"],
        cache=cache,
        timeout=settings.provider_timeout_seconds,
    )
    dexscreener_client = DexScreenerClient(
        [ProviderEndpoint(base_url=settings.dexscreener_base_url)],
        limiters["dexscreener"],
        cache=cache,
        timeout=settings.provider_timeout_seconds,
    )

    raydium_url = httpx.URL(settings.raydium_pools_url)
    raydium_client = RaydiumClient(
        [ProviderEndpoint(base_url=f"{raydium_url.scheme}://{raydium_url.netloc.decode()}")],
        limiters["raydium"],
        cache=cache,
        timeout=settings.provider_timeout_seconds,
        pools_path=raydium_url.path,
    )

    data_service = TokenDataService(
        rpc_client,
        dexscreener_client,
        raydium_client=raydium_client,
        liquidity_source=settings.liquidity_source,
        top_holders_count=settings.top_holders_count,
    )

    log.info(
        "detection_context_built",
        rpc_endpoints=len(rpc_endpoints),
        candidate_source=settings.candidate_source,
        liquidity_source=settings.liquidity_source,
        trading_mode=settings.trading_mode,
    )
    return DetectionContext(
        settings=settings,
        cache=cache,
        limiters=limiters,
        rpc_client=rpc_client,
        dexscreener_client=dexscreener_client,
        raydium_client=raydium_client,
        data_service=data_service,
        evaluator=FilterEvaluator(),
        criteria_store=criteria_store,
        purchase_executor=purchase_executor,
        notifier=notifier,
        source_factory=source_factory,
    )


# Singleton instance
_detection_context: DetectionContext | None = None


def init_detection_context(
    settings: Settings | None = None,
    criteria_store: CriteriaStore | None = None,
    purchase_executor: PurchaseExecutor | None = None,
    notifier: NotificationSink | None = None,
) -> DetectionContext:
    """Build and install the application context."""
    global _detection_context
    _detection_context = build_detection_context(
        settings or get_settings(),
        criteria_store=criteria_store,
        purchase_executor=purchase_executor,
        notifier=notifier,
    )
    return _detection_context


def get_detection_context() -> DetectionContext:
    """Get or create the application context."""
    if _detection_context is None:
        return init_detection_context()
    return _detection_context


async def reset_detection_context() -> None:
    """Close and drop the application context (shutdown and tests)."""
    global _detection_context
    if _detection_context is not None:
        await _detection_context.close()
    _detection_context = None
