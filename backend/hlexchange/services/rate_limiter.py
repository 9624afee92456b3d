from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from ..errors import RateLimitTimeoutError

logger = logging.getLogger(__name__)


EXCHANGE_ENDPOINT = "/exchange"
INFO_ENDPOINT = "/info"


@dataclass
class _Bucket:
    tokens: float
    updated_at: float
    lock: asyncio.Lock


class RateLimiter:
    """Token-bucket admission shared by every request to the venue.

    Each endpoint gets its own bucket of ``capacity`` weight that refills
    linearly over ``window_seconds``. ``admit`` never fails on exhaustion; it
    waits for the budget. Waiters on one bucket are served in arrival order.
    """

    def __init__(
        self,
        capacity: int = 1200,
        window_seconds: float = 60.0,
        *,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if capacity <= 0 or window_seconds <= 0:
            raise ValueError("capacity and window_seconds must be positive")
        self._capacity = float(capacity)
        self._refill_per_second = capacity / window_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._buckets: Dict[str, _Bucket] = {}

    @property
    def capacity(self) -> int:
        return int(self._capacity)

    def _bucket(self, endpoint: str) -> _Bucket:
        bucket = self._buckets.get(endpoint)
        if bucket is None:
            bucket = _Bucket(tokens=self._capacity, updated_at=self._clock(), lock=asyncio.Lock())
            self._buckets[endpoint] = bucket
        return bucket

    def _refill(self, bucket: _Bucket) -> None:
        now = self._clock()
        elapsed = max(0.0, now - bucket.updated_at)
        bucket.tokens = min(self._capacity, bucket.tokens + elapsed * self._refill_per_second)
        bucket.updated_at = now

    def available(self, endpoint: str = EXCHANGE_ENDPOINT) -> float:
        bucket = self._bucket(endpoint)
        self._refill(bucket)
        return bucket.tokens

    async def admit(
        self,
        weight: int = 1,
        *,
        endpoint: str = EXCHANGE_ENDPOINT,
        timeout: Optional[float] = None,
    ) -> None:
        if weight <= 0:
            return
        if timeout is None:
            await self._acquire(weight, endpoint)
            return
        try:
            await asyncio.wait_for(self._acquire(weight, endpoint), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RateLimitTimeoutError(endpoint, weight, timeout) from exc

    async def _acquire(self, weight: int, endpoint: str) -> None:
        # A request heavier than the whole bucket would never be admitted.
        needed = min(float(weight), self._capacity)
        bucket = self._bucket(endpoint)
        async with bucket.lock:
            self._refill(bucket)
            while bucket.tokens < needed:
                delay = (needed - bucket.tokens) / self._refill_per_second
                logger.debug(
                    "Rate budget for %s exhausted (%.1f/%s); waiting %.3fs",
                    endpoint,
                    bucket.tokens,
                    needed,
                    delay,
                )
                await self._sleep(delay)
                self._refill(bucket)
            bucket.tokens -= needed
