"""Bounded retry with exponential backoff, and endpoint failover built on it."""
from __future__ import annotations

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Sequence, TypeVar

import aiohttp

from constants import (
    RETRY_INITIAL_DELAY,
    RETRY_JITTER_RATIO,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
    RETRY_TIMEOUT,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class FetchError(Exception):
    """Raised once every attempt of a retried call has failed."""


class PayloadError(FetchError):
    """A response arrived but did not have the expected shape."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = RETRY_MAX_ATTEMPTS
    initial_delay: float = RETRY_INITIAL_DELAY
    max_delay: float = RETRY_MAX_DELAY
    timeout: float = RETRY_TIMEOUT

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ValueError("max_attempts must be an integer >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


def backoff_delay(attempt: int, policy: RetryPolicy) -> float:
    """Base wait after the given 1-based failed attempt, before jitter."""
    return min(policy.initial_delay * (2 ** (attempt - 1)), policy.max_delay)


def jittered(delay: float, rng: random.Random | None = None) -> float:
    """Adds up to RETRY_JITTER_RATIO of the delay so instances drift apart."""
    source = rng or random
    return delay + source.uniform(0, delay * RETRY_JITTER_RATIO)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str,
    *,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Runs operation until it succeeds or policy.max_attempts is reached.

    Every attempt is bounded by policy.timeout; a timed-out attempt is
    cancelled and counted as a failure. The last failure is raised as
    FetchError with the original exception chained.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = _describe_failure(exc, policy)
            logger.warning("Attempt %d/%d failed for %s: %s", attempt, policy.max_attempts, description, reason)
            if attempt == policy.max_attempts:
                if isinstance(exc, FetchError):
                    raise
                raise FetchError(f"{description} failed after {policy.max_attempts} attempts: {reason}") from exc

            wait = jittered(backoff_delay(attempt, policy))
            logger.info("Retrying %s in %.1fs...", description, wait)
            await sleep(wait)

    raise AssertionError("unreachable")  # pragma: no cover


def _describe_failure(exc: Exception, policy: RetryPolicy) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return f"timed out after {policy.timeout:g}s"
    if isinstance(exc, aiohttp.ClientResponseError):
        return f"HTTP {exc.status}"
    return str(exc) or exc.__class__.__name__


async def fetch_with_retry(
    session: aiohttp.ClientSession,
    url: str,
    policy: RetryPolicy,
    parse: Callable[[aiohttp.ClientResponse], Awaitable[T]],
    *,
    params: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    GETs url with retries and returns parse(response).

    parse runs inside the attempt, so a body that cannot be read or that
    fails its shape check (PayloadError) is retried like a network error.
    """

    async def attempt() -> T:
        async with session.get(url, params=params, headers=headers) as response:
            if not 200 <= response.status < 300:
                response.raise_for_status()
                raise FetchError(f"HTTP {response.status}")
            return await parse(response)

    return await retry_async(attempt, policy, url, sleep=sleep)


async def query_with_failover(
    endpoints: Sequence[str],
    policy: RetryPolicy,
    operation: Callable[[str], Awaitable[T]],
    description: str,
    *,
    sleep: Sleep = asyncio.sleep,
) -> Optional[T]:
    """
    Tries each endpoint in order, each with its own retry budget.

    Returns the first successful result, or None once every endpoint has
    been exhausted. Never raises FetchError.
    """
    for endpoint in endpoints:
        try:
            return await retry_async(
                functools.partial(operation, endpoint),
                policy,
                f"{description} via {endpoint}",
                sleep=sleep,
            )
        except FetchError as exc:
            logger.error("Endpoint %s exhausted for %s: %s", endpoint, description, exc)

    logger.error("All endpoints failed for %s", description)
    return None
