#!/usr/bin/env python3
import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Optional

import aiohttp

from constants import COINGECKO_API_BASE_URL, PRICE_ASSET_ID, PRICE_CURRENCY
from services.retry import FetchError, PayloadError, RetryPolicy, Sleep, fetch_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    price: float
    change_24h: Optional[float]


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def parse_price_payload(payload, asset_id: str, currency: str) -> PriceQuote:
    """Validates a /simple/price body: {asset: {currency: n, currency_24h_change: n}}."""
    if not isinstance(payload, dict) or not isinstance(payload.get(asset_id), dict):
        raise PayloadError(f"price response has no '{asset_id}' entry")
    entry = payload[asset_id]
    price = _as_number(entry.get(currency))
    if price is None or price < 0:
        raise PayloadError(f"price response has no valid '{currency}' price")
    return PriceQuote(price=price, change_24h=_as_number(entry.get(f"{currency}_24h_change")))


class CoinGeckoClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: Optional[str] = None,
        *,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.session = session
        self.api_key = api_key
        self.headers = {'x-cg-demo-api-key': self.api_key} if self.api_key else {}
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def get_price(self, asset_id: str = PRICE_ASSET_ID, currency: str = PRICE_CURRENCY) -> Optional[PriceQuote]:
        """Spot price plus 24h change, or None when the API stays unavailable."""
        url = f"{COINGECKO_API_BASE_URL}/simple/price"
        params = {'ids': asset_id, 'vs_currencies': currency, 'include_24hr_change': 'true'}

        async def parse(response: aiohttp.ClientResponse) -> PriceQuote:
            return parse_price_payload(await response.json(), asset_id, currency)

        try:
            return await fetch_with_retry(
                self.session, url, self.policy, parse, params=params, headers=self.headers, sleep=self._sleep
            )
        except FetchError as e:
            logger.error("Failed to fetch %s price: %s", asset_id, e)
            return None
