"""
Base class for storm feed adapters.

Every feed implements ``fetch(bbox, start, end)`` and may raise on failure.
Callers use ``collect()``, which never raises for feed problems: it returns
an empty record list and a ``SourceStatus`` saying why the feed was
unavailable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import sentry_sdk

from stormintel.core.errors import ErrorCode, RateLimitedError, SourceUnavailableError
from stormintel.core.logging import get_logger
from stormintel.models import BoundingBox, EventSource, SourceRecord, SourceStatus, ensure_utc
from stormintel.services.rate_limiter import FeedRateLimiter
from stormintel.services.retry_policy import RetryPolicy

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedResult:
    """Records from one feed plus whether the feed answered."""

    status: SourceStatus
    records: List[SourceRecord] = field(default_factory=list)

    @property
    def source(self) -> EventSource:
        return self.status.source

    @classmethod
    def unavailable(cls, source: EventSource, code: ErrorCode, message: str) -> "FeedResult":
        return cls(status=SourceStatus(source=source, available=False, error_code=code, message=message))


class SourceAdapter(ABC):
    """A storm feed that maps its native records into ``SourceRecord`` values."""

    source: EventSource
    user_agent: str = "StormIntel-Service/1.0"

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[FeedRateLimiter] = None,
    ):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter

    @property
    def name(self) -> str:
        return self.source.value

    @abstractmethod
    async def fetch(self, bbox: BoundingBox, start: datetime, end: datetime) -> List[SourceRecord]:
        """Fetch records inside ``bbox`` between ``start`` and ``end`` (UTC)."""

    async def collect(self, bbox: BoundingBox, start: datetime, end: datetime) -> FeedResult:
        """Fetch, containing any feed failure in the returned status."""
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValueError(f"{self.name}: start {start.isoformat()} must be before end {end.isoformat()}")

        try:
            records = await self.fetch(bbox, start, end)
        except httpx.HTTPStatusError as e:
            code = ErrorCode.RATE_LIMITED if e.response.status_code == 429 else ErrorCode.SOURCE_UNAVAILABLE
            return self._unavailable(code, f"HTTP {e.response.status_code}", e)
        except RateLimitedError as e:
            return self._unavailable(ErrorCode.RATE_LIMITED, str(e), e)
        except SourceUnavailableError as e:
            return self._unavailable(e.code, str(e), e)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            return self._unavailable(ErrorCode.SOURCE_UNAVAILABLE, f"{type(e).__name__}: {e}", e)
        except Exception as e:
            # Malformed payloads surface as TypeError, AttributeError or IndexError
            return self._unavailable(ErrorCode.SOURCE_UNAVAILABLE, f"Unreadable response: {type(e).__name__}: {e}", e)

        logger.info(f"{self.name}: fetched {len(records)} records")
        return FeedResult(
            status=SourceStatus(source=self.source, available=True, record_count=len(records)),
            records=records,
        )

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None, accept_statuses: tuple = ()) -> httpx.Response:
        """
        GET with rate limiting and the shared retry policy.

        Statuses listed in ``accept_statuses`` are returned instead of raised.
        """

        async def attempt() -> httpx.Response:
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire()
            response = await self.client.get(url, params=params, headers={"User-Agent": self.user_agent})
            if response.status_code not in accept_statuses:
                response.raise_for_status()
            return response

        return await self.retry_policy.call(attempt)

    def _unavailable(self, code: ErrorCode, message: str, exc: Exception) -> FeedResult:
        logger.warning(f"{self.name} unavailable after retries ({code.value}): {message}")
        sentry_sdk.capture_exception(exc)
        return FeedResult.unavailable(self.source, code, message)
