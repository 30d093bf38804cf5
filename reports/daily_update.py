"""Assemble and broadcast the once-per-day bitcoin market update."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, TypeVar

from constants import MESSAGE_MAX_BYTES, SEND_COOLDOWN_SECONDS
from formatting import format_borrow_rate, format_hashrate, format_price, truncate_to_bytes
from logging_utils import SUCCESS
from services.aave_client import AaveRateClient, BorrowRates
from services.blockchain_info_client import BlockchainInfoClient
from services.coingecko_client import CoinGeckoClient, PriceQuote
from services.fear_greed_client import FearGreedClient, SentimentReading
from services.meshcore_transport import Channel, MeshTransport, TransportError
from storage import PriceHistory, PriceHistoryRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

TREND_UP = "📈"
TREND_DOWN = "📉"


@dataclass
class MarketSnapshot:
    price: PriceQuote
    sentiment: Optional[SentimentReading] = None
    hashrate: Optional[int] = None
    borrow_rates: Optional[BorrowRates] = None


@dataclass(frozen=True)
class UpdateFeatures:
    show_fear_greed: bool = True
    show_hashrate: bool = True
    show_borrow_rates: bool = True


def trend_marker(price: float, last_price: Optional[float]) -> str:
    if last_price is None:
        return ""
    return TREND_UP if price > last_price else TREND_DOWN


def build_segments(snapshot: MarketSnapshot, last_price: Optional[float]) -> List[str]:
    """Message parts in their fixed order: price, sentiment, hashrate, borrow rates."""
    trend = trend_marker(snapshot.price.price, last_price)
    segments = [f"{trend}BTC: {format_price(snapshot.price.price)}€"]

    if snapshot.sentiment is not None:
        emoji = "🤑" if snapshot.sentiment.is_greedy else "😨"
        segments.append(f"{emoji}{snapshot.sentiment.value}")

    if snapshot.hashrate:
        segments.append(f"⛏{format_hashrate(snapshot.hashrate)}")

    if snapshot.borrow_rates is not None:
        rates = snapshot.borrow_rates
        segments.append(f"💸€{format_borrow_rate(rates.eurc)} ${format_borrow_rate(rates.usdc)}")

    return segments


class DailyUpdateService:
    """Fetches market data, sends one compact channel message, remembers the price."""

    def __init__(
        self,
        *,
        transport: MeshTransport,
        channel: Channel,
        repository: PriceHistoryRepository,
        history: PriceHistory,
        coingecko_client: CoinGeckoClient,
        fear_greed_client: Optional[FearGreedClient] = None,
        hashrate_client: Optional[BlockchainInfoClient] = None,
        aave_client: Optional[AaveRateClient] = None,
        features: UpdateFeatures = UpdateFeatures(),
        max_bytes: int = MESSAGE_MAX_BYTES,
        cooldown: float = SEND_COOLDOWN_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._transport = transport
        self._channel = channel
        self._repository = repository
        self.history = history
        self._coingecko = coingecko_client
        self._fear_greed = fear_greed_client
        self._hashrate = hashrate_client
        self._aave = aave_client
        self._features = features
        self._max_bytes = max_bytes
        self._cooldown = cooldown
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()

    async def run_daily_update(self, *_: object) -> bool:
        """Runs one update; returns True when a message was sent and the price saved."""
        if self._lock.locked():
            logger.warning("Daily update already in progress; skipping this trigger.")
            return False

        async with self._lock:
            try:
                return await self._run()
            except Exception:
                logger.exception("Daily update failed unexpectedly")
                return False

    async def _run(self) -> bool:
        snapshot = await self.collect_snapshot()
        if snapshot is None:
            logger.error("Bitcoin price unavailable; skipping today's update.")
            return False

        message = " ".join(build_segments(snapshot, self.history.last_price))
        payload = truncate_to_bytes(message, self._max_bytes)
        if not payload:
            logger.error("Update message could not be fitted into %d bytes: %s", self._max_bytes, message)
            return False

        try:
            await self._transport.send_channel_text_message(self._channel.index, payload)
        except TransportError as exc:
            logger.error("Failed to send update to [%s]: %s", self._channel.name, exc)
            return False
        logger.log(SUCCESS, "Sent out [%s]: %s", self._channel.name, payload)

        self.history = PriceHistory(last_price=snapshot.price.price, last_update=self._clock())
        try:
            await self._repository.save(self.history)
        except OSError as exc:
            logger.error("Failed to save price history: %s", exc)

        await self._sleep(self._cooldown)
        return True

    async def collect_snapshot(self) -> Optional[MarketSnapshot]:
        """Price first; the optional enrichments are then fetched concurrently."""
        price = await self._coingecko.get_price()
        if price is None:
            return None

        features = self._features
        sentiment, hashrate, borrow_rates = await asyncio.gather(
            self._optional(self._fear_greed.get_index if features.show_fear_greed and self._fear_greed else None, "Fear & Greed Index"),
            self._optional(self._hashrate.get_hashrate if features.show_hashrate and self._hashrate else None, "hashrate"),
            self._optional(self._aave.get_borrow_rates if features.show_borrow_rates and self._aave else None, "borrow rates"),
        )
        return MarketSnapshot(price=price, sentiment=sentiment, hashrate=hashrate, borrow_rates=borrow_rates)

    async def _optional(self, fetch: Optional[Callable[[], Awaitable[T]]], label: str) -> Optional[T]:
        if fetch is None:
            return None
        try:
            result = await fetch()
        except Exception as exc:
            logger.warning("Omitting %s: %s", label, exc)
            return None
        if result is None:
            logger.warning("Omitting %s: source unavailable", label)
        return result
