#!/usr/bin/env python3
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from constants import FEAR_GREED_API_URL
from services.retry import FetchError, PayloadError, RetryPolicy, Sleep, fetch_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentimentReading:
    value: int
    classification: str

    @property
    def is_greedy(self) -> bool:
        return self.value >= 50


def parse_fear_greed_payload(payload) -> SentimentReading:
    """Reads the newest entry of {"data": [{"value": "62", "value_classification": "Greed"}]}."""
    entries = payload.get('data') if isinstance(payload, dict) else None
    if not isinstance(entries, list) or not entries or not isinstance(entries[0], dict):
        raise PayloadError("fear & greed response has no data entries")
    latest = entries[0]
    try:
        value = int(str(latest.get('value')).strip())
    except ValueError as exc:
        raise PayloadError(f"fear & greed value is not an integer: {latest.get('value')!r}") from exc
    classification = latest.get('value_classification')
    return SentimentReading(value=value, classification=classification if isinstance(classification, str) else "")


class FearGreedClient:
    """alternative.me Crypto Fear & Greed Index."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.session = session
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def get_index(self) -> Optional[SentimentReading]:
        async def parse(response: aiohttp.ClientResponse) -> SentimentReading:
            return parse_fear_greed_payload(await response.json(content_type=None))

        try:
            return await fetch_with_retry(
                self.session, FEAR_GREED_API_URL, self.policy, parse, params={'limit': '1'}, sleep=self._sleep
            )
        except FetchError as e:
            logger.warning("Failed to fetch Fear & Greed Index: %s", e)
            return None
