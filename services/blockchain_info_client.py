#!/usr/bin/env python3
import asyncio
import logging
from typing import Optional

import aiohttp

from constants import BLOCKCHAIN_INFO_HASHRATE_URL
from services.retry import FetchError, PayloadError, RetryPolicy, Sleep, fetch_with_retry

logger = logging.getLogger(__name__)


def parse_hashrate(body: str) -> int:
    """blockchain.info answers with a bare integer in GH/s."""
    text = body.strip()
    try:
        hashrate = int(text)
    except ValueError as exc:
        raise PayloadError(f"hashrate response is not an integer: {text[:40]!r}") from exc
    if hashrate < 0:
        raise PayloadError(f"negative hashrate: {hashrate}")
    return hashrate


class BlockchainInfoClient:
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

    async def get_hashrate(self) -> Optional[int]:
        """
        Gets the current network hashrate in GH/s.
        Returns None if the endpoint keeps failing.
        """
        async def parse(response: aiohttp.ClientResponse) -> int:
            return parse_hashrate(await response.text())

        try:
            return await fetch_with_retry(self.session, BLOCKCHAIN_INFO_HASHRATE_URL, self.policy, parse, sleep=self._sleep)
        except FetchError as e:
            logger.warning("Failed to fetch hashrate: %s", e)
            return None
