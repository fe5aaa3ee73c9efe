"""Candidate sources feeding the detection loop.

Push subscription and polling share one interface: ``batches()`` returns
an async iterator of candidate lists. A source can be iterated once;
build a new one to restart.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import structlog
import websockets

from mintsentry.constants.detection import (
    RECONNECT_BASE_DELAY_SECONDS,
    RECONNECT_MAX_DELAY_SECONDS,
    WS_PING_INTERVAL_SECONDS,
)
from mintsentry.constants.provider import (
    RPC_COMMITMENT,
    SPL_MINT_ACCOUNT_SIZE,
    SPL_TOKEN_PROGRAM_ID,
)
from mintsentry.core.address import is_valid_solana_address
from mintsentry.core.exceptions import MintSentryError
from mintsentry.models.token import CandidateSourceKind, TokenCandidate
from mintsentry.services.dexscreener.client import DexScreenerClient
from mintsentry.services.dexscreener.models import BoostedToken

log = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class CandidateSource(ABC):
    """Lazily produces batches of token candidates."""

    kind: CandidateSourceKind

    def __init__(self) -> None:
        self._started = False
        self._closed = False

    def batches(self) -> AsyncGenerator[list[TokenCandidate], None]:
        """Start iterating the source.

        Raises:
            RuntimeError: The source was already iterated.
        """
        if self._started:
            raise RuntimeError(f"{type(self).__name__} cannot be restarted")
        self._started = True
        return self._iterate()

    @abstractmethod
    def _iterate(self) -> AsyncGenerator[list[TokenCandidate], None]:
        ...

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop producing batches after the current one."""
        self._closed = True


class BoostedFeedSource(CandidateSource):
    """Polls the DexScreener boosted-tokens feed."""

    kind = CandidateSourceKind.BOOSTED_FEED

    def __init__(
        self,
        client: DexScreenerClient,
        poll_interval: float = 1.2,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__()
        self.client = client
        self.poll_interval = poll_interval
        self._sleep = sleep

    @staticmethod
    def to_candidate(boost: BoostedToken) -> TokenCandidate:
        return TokenCandidate(
            mint_address=boost.token_address,
            source=CandidateSourceKind.BOOSTED_FEED,
            boost_amount=boost.amount,
            total_boost_amount=boost.total_amount,
            url=boost.url,
            description=boost.description,
        )

    async def _iterate(self) -> AsyncGenerator[list[TokenCandidate], None]:
        log.info("boosted_feed_polling_started", interval=self.poll_interval)
        while not self._closed:
            try:
                boosts = await self.client.fetch_latest_boosts()
            except MintSentryError as e:
                log.warning("boosted_feed_poll_failed", error_type=type(e).__name__, error=str(e))
                boosts = []

            batch = [
                self.to_candidate(boost)
                for boost in boosts
                if is_valid_solana_address(boost.token_address)
            ]
            if batch:
                yield batch

            await self._sleep(self.poll_interval)
        log.info("boosted_feed_polling_stopped")


class MintSubscriptionSource(CandidateSource):
    """Subscribes to SPL Token program account changes over websocket.

    Only accounts of mint size are delivered; every notification becomes
    a single-candidate batch. Connection loss triggers a reconnect with
    capped exponential backoff.
    """

    kind = CandidateSourceKind.MINT_SUBSCRIPTION

    def __init__(
        self,
        ws_url: str,
        connect: Callable[..., Any] = websockets.connect,
        sleep: Sleep = asyncio.sleep,
        base_delay: float = RECONNECT_BASE_DELAY_SECONDS,
        max_delay: float = RECONNECT_MAX_DELAY_SECONDS,
    ) -> None:
        super().__init__()
        self.ws_url = ws_url
        self._connect = connect
        self._sleep = sleep
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.reconnects = 0

    @staticmethod
    def subscribe_request(request_id: int = 1) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "programSubscribe",
            "params": [
                SPL_TOKEN_PROGRAM_ID,
                {
                    "encoding": "base64",
                    "commitment": RPC_COMMITMENT,
                    "filters": [{"dataSize": SPL_MINT_ACCOUNT_SIZE}],
                },
            ],
        }

    @staticmethod
    def parse_notification(raw: str | bytes) -> TokenCandidate | None:
        """Extract the mint from a programNotification, None for anything else."""
        try:
            message = json.loads(raw)
        except ValueError:
            log.warning("mint_subscription_bad_message")
            return None

        if not isinstance(message, dict) or message.get("method") != "programNotification":
            return None

        node: Any = message
        for field in ("params", "result", "value"):
            node = node.get(field) if isinstance(node, dict) else None
        pubkey = node.get("pubkey") if isinstance(node, dict) else None
        if not isinstance(pubkey, str) or not is_valid_solana_address(pubkey):
            return None
        return TokenCandidate(mint_address=pubkey, source=CandidateSourceKind.MINT_SUBSCRIPTION)

    def _backoff(self, failures: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** max(failures - 1, 0)))

    async def _iterate(self) -> AsyncGenerator[list[TokenCandidate], None]:
        failures = 0
        while not self._closed:
            try:
                async with self._connect(self.ws_url, ping_interval=WS_PING_INTERVAL_SECONDS) as ws:
                    await ws.send(json.dumps(self.subscribe_request()))
                    log.info("mint_subscription_connected", reconnects=self.reconnects)
                    failures = 0
                    async for raw in ws:
                        if self._closed:
                            break
                        candidate = self.parse_notification(raw)
                        if candidate is not None:
                            yield [candidate]
            except (websockets.WebSocketException, OSError, asyncio.TimeoutError) as e:
                failures += 1
                log.warning(
                    "mint_subscription_disconnected",
                    error_type=type(e).__name__,
                    error=str(e),
                    failures=failures,
                )

            if self._closed:
                break
            self.reconnects += 1
            delay = self._backoff(failures)
            log.info("mint_subscription_reconnecting", delay_seconds=delay)
            await self._sleep(delay)

        log.info("mint_subscription_stopped")
