"""
Async helpers shared by the database clients and the aggregator.

Provides:
- Fixed-interval rate limiting per upstream service
- Settled parallel execution (every coroutine runs to completion)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


# =============================================================================
# Fixed-interval rate limiter
# =============================================================================


@dataclass
class IntervalRateLimiter:
    """
    Enforce a minimum delay between sequential calls to one service.

    Example:
        limiter = IntervalRateLimiter(min_interval=0.34)
        async with limiter:
            await make_api_call()
    """

    min_interval: float = 0.1
    _last_request: float = field(init=False, default=0.0)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    async def acquire(self) -> None:
        """Wait until min_interval has passed since the previous call."""
        async with self._lock:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self.min_interval:
                wait_time = self.min_interval - elapsed
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
            self._last_request = time.monotonic()

    async def __aenter__(self) -> IntervalRateLimiter:
        await self.acquire()
        return self

    async def __aexit__(self, *args: object) -> None:
        pass


# =============================================================================
# Parallel execution
# =============================================================================


async def gather_settled[T](*coros: Awaitable[T]) -> list[T | Exception]:
    """
    Run coroutines concurrently and wait for all of them to settle.

    Results keep the order of the input. A coroutine that raises contributes
    its exception instead of a result; it never cancels its siblings.

    Example:
        results = await gather_settled(search("pubmed"), search("arxiv"))
        for result in results:
            if isinstance(result, Exception):
                ...
    """
    outcomes = await asyncio.gather(*coros, return_exceptions=True)
    settled: list[T | Exception] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
            # CancelledError / KeyboardInterrupt must propagate
            raise outcome
        settled.append(outcome)
    return settled
