"""
Retry-with-backoff policy shared by every feed adapter.
"""

import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from stormintel.core.config import Settings
from stormintel.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def is_retryable(exc: BaseException) -> bool:
    """Transport failures and throttling/5xx responses are worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return False


class RetryPolicy:
    """Bounded exponential backoff around a single feed call."""

    def __init__(self, max_retries: int = 2, base_delay: float = 0.5, max_delay: float = 4.0):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    @classmethod
    def from_settings(cls, source: Settings) -> "RetryPolicy":
        return cls(
            max_retries=source.feed_max_retries,
            base_delay=source.feed_retry_base_delay_seconds,
            max_delay=source.feed_retry_max_delay_seconds,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` retrying retryable errors; the last error is re-raised."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(func, *args, **kwargs)
