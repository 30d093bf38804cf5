"""Aave v3 variable borrow rates read over JSON-RPC with endpoint failover."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3

from constants import AAVE_POOL_ABI, AAVE_TOKEN_ADDRESSES, VARIABLE_BORROW_RATE_INDEX
from formatting import ray_to_percent
from services.retry import PayloadError, RetryPolicy, Sleep, query_with_failover

logger = logging.getLogger(__name__)

ContractFactory = Callable[[str, str], Awaitable[Any]]


@dataclass(frozen=True)
class BorrowRates:
    """Variable borrow APRs in percent."""
    eurc: float
    usdc: float


def extract_variable_borrow_rate(reserve_data: Sequence[Any]) -> int:
    """Picks currentVariableBorrowRate (RAY) out of a getReserveData result."""
    try:
        rate = reserve_data[VARIABLE_BORROW_RATE_INDEX]
    except (IndexError, KeyError, TypeError) as exc:
        raise PayloadError("getReserveData result is too short") from exc
    if isinstance(rate, bool) or not isinstance(rate, int) or rate < 0:
        raise PayloadError(f"unexpected currentVariableBorrowRate: {rate!r}")
    return rate


class AaveRateClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        rpc_urls: Sequence[str],
        pool_address: Optional[str],
        token_addresses: Optional[Dict[str, str]] = None,
        policy: Optional[RetryPolicy] = None,
        contract_factory: Optional[ContractFactory] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._session = session
        self._rpc_urls = list(rpc_urls)
        self._pool_address = pool_address
        self._token_addresses = token_addresses or AAVE_TOKEN_ADDRESSES
        self._policy = policy or RetryPolicy()
        self._contract_factory = contract_factory or self._build_pool_contract
        self._sleep = sleep or asyncio.sleep

    async def get_borrow_rates(self) -> Optional[BorrowRates]:
        if not self._pool_address or not self._rpc_urls:
            logger.error("Ethereum RPC or Aave pool address not configured")
            return None

        return await query_with_failover(
            self._rpc_urls,
            self._policy,
            self._read_rates,
            "Aave borrow rates",
            sleep=self._sleep,
        )

    async def _read_rates(self, rpc_url: str) -> BorrowRates:
        pool = await self._contract_factory(rpc_url, self._pool_address)
        eurc_data, usdc_data = await asyncio.gather(
            pool.functions.getReserveData(self._token_addresses['eurc']).call(),
            pool.functions.getReserveData(self._token_addresses['usdc']).call(),
        )
        return BorrowRates(
            eurc=ray_to_percent(extract_variable_borrow_rate(eurc_data)),
            usdc=ray_to_percent(extract_variable_borrow_rate(usdc_data)),
        )

    async def _build_pool_contract(self, rpc_url: str, pool_address: str):
        provider = AsyncHTTPProvider(
            rpc_url,
            request_kwargs={'timeout': aiohttp.ClientTimeout(total=self._policy.timeout)},
        )
        await provider.cache_async_session(self._session)
        w3 = AsyncWeb3(provider)
        return w3.eth.contract(address=AsyncWeb3.to_checksum_address(pool_address), abi=AAVE_POOL_ABI)
