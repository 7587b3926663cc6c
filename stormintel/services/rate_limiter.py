"""
Rate limiter for upstream weather feeds.
Implements token bucket algorithm for per-second limits and daily request tracking.

One limiter is constructed per feed by the service container and injected
into the adapter, so parallel property pipelines share the feed budget
without module-level state.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict

from stormintel.core.errors import RateLimitedError
from stormintel.core.logging import get_logger

logger = get_logger(__name__)


class FeedRateLimiter:
    """
    Token bucket limiter with a daily request ceiling.

    Lifecycle: created at service start, ``reset()`` clears all counters,
    dropped with the service container.
    """

    def __init__(
        self,
        name: str,
        requests_per_second: int = 5,
        requests_per_day: int = 10000,
        buffer_factor: float = 0.8
    ):
        """
        Initialize the rate limiter.

        Args:
            name: Feed name used in log messages
            requests_per_second: Maximum requests per second (default: 5)
            requests_per_day: Maximum requests per day (default: 10,000)
            buffer_factor: Safety factor to use less than full limits (default: 0.8)
        """
        self.name = name
        self.requests_per_second = max(1, int(requests_per_second * buffer_factor))
        self.requests_per_day = max(1, int(requests_per_day * buffer_factor))
        self.refill_rate = self.requests_per_second  # tokens per second

        self.bucket_lock = asyncio.Lock()
        self.daily_lock = asyncio.Lock()
        self.reset()

        logger.info(
            f"{name} rate limiter initialized: {self.requests_per_second} req/sec, "
            f"{self.requests_per_day} req/day (buffer: {buffer_factor})"
        )

    def reset(self) -> None:
        """Refill the bucket and clear the daily counter."""
        self.tokens = float(self.requests_per_second)
        self.last_refill = time.monotonic()
        self.daily_requests = 0
        self.last_reset_date = self._get_current_utc_date()

    def _get_current_utc_date(self) -> str:
        """Get current UTC date as string (YYYY-MM-DD)."""
        return datetime.now(timezone.utc).strftime("%Y-%m-%d")

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time since last refill."""
        current_time = time.monotonic()
        elapsed = current_time - self.last_refill

        if elapsed > 0:
            self.tokens = min(self.requests_per_second, self.tokens + elapsed * self.refill_rate)
            self.last_refill = current_time

    async def _check_daily_limit(self) -> bool:
        """Check and reset daily counter if needed. Returns True if under daily limit."""
        async with self.daily_lock:
            current_date = self._get_current_utc_date()

            if current_date != self.last_reset_date:
                logger.info(f"{self.name} daily rate limit reset: {self.last_reset_date} -> {current_date}")
                self.daily_requests = 0
                self.last_reset_date = current_date

            if self.daily_requests >= self.requests_per_day:
                logger.warning(
                    f"{self.name} daily rate limit exceeded: "
                    f"{self.daily_requests}/{self.requests_per_day} requests used"
                )
                return False

            return True

    async def acquire(self) -> None:
        """
        Wait if necessary to respect rate limits.

        Raises:
            RateLimitedError: If the daily budget is spent
        """
        if not await self._check_daily_limit():
            raise RateLimitedError(
                f"{self.name} daily request budget exhausted "
                f"({self.daily_requests}/{self.requests_per_day})"
            )

        async with self.bucket_lock:
            self._refill_tokens()

            if self.tokens < 1:
                wait_time = (1 - self.tokens) / self.refill_rate
                logger.debug(f"{self.name} rate limit: waiting {wait_time:.2f} seconds for token refill")
                await asyncio.sleep(wait_time)
                self._refill_tokens()

            self.tokens -= 1

        async with self.daily_lock:
            self.daily_requests += 1

    def get_status(self) -> Dict[str, Any]:
        """Get current rate limiter status."""
        return {
            "name": self.name,
            "tokens_remaining": self.tokens,
            "requests_per_second_limit": self.requests_per_second,
            "daily_requests_used": self.daily_requests,
            "daily_requests_limit": self.requests_per_day,
            "daily_reset_date": self.last_reset_date,
            "daily_requests_remaining": max(0, self.requests_per_day - self.daily_requests)
        }
