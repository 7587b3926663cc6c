"""
SPC Storm Reports Feed Adapter

Fetches preliminary local storm reports from the NOAA Storm Prediction
Center (SPC). These are ground-truth observations from spotters and
stations, available within hours of the event:
- Tornadoes
- Hail (size in hundredths of an inch)
- Wind (measured or estimated gust in mph, or UNK)

One CSV is published per convective day. A convective day runs from 12Z to
12Z, so report times before 1200 belong to the next calendar date (UTC).
"""

import asyncio
import csv
import io
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

import httpx

from stormintel.core.config import Settings
from stormintel.core.logging import get_logger
from stormintel.core.weather_thresholds import WeatherThresholds
from stormintel.models import BoundingBox, EventSource, EventType, SourceRecord
from stormintel.services.feed_cache import FeedCache
from stormintel.services.rate_limiter import FeedRateLimiter
from stormintel.services.retry_policy import RetryPolicy
from stormintel.services.source_adapter import SourceAdapter

logger = get_logger(__name__)

# Magnitude column in each section header -> (event type, report kind)
SECTION_TYPES: Dict[str, tuple] = {
    "F_Scale": (EventType.STORM, "tornado"),
    "Speed": (EventType.WIND, "wind"),
    "Size": (EventType.HAIL, "hail"),
}

HISTORICAL_CACHE_SECONDS = 7 * 24 * 3600
RECENT_CACHE_SECONDS = 3600


class SPCStormReportsAdapter(SourceAdapter):
    """Ground-truth report feed adapter backed by SPC daily CSV files."""

    source = EventSource.GROUND_TRUTH_REPORTS

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[FeedRateLimiter] = None,
        cache: Optional[FeedCache] = None,
        base_url: str = "https://www.spc.noaa.gov/climo/reports",
        user_agent: str = "StormIntel-Service/1.0",
    ):
        super().__init__(client, retry_policy, rate_limiter)
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent

    @classmethod
    def from_settings(
        cls,
        source: Settings,
        client: httpx.AsyncClient,
        rate_limiter: Optional[FeedRateLimiter] = None,
        cache: Optional[FeedCache] = None,
    ) -> "SPCStormReportsAdapter":
        return cls(
            client,
            retry_policy=RetryPolicy.from_settings(source),
            rate_limiter=rate_limiter,
            cache=cache,
            base_url=source.spc_base_url,
            user_agent=source.spc_user_agent,
        )

    async def fetch(self, bbox: BoundingBox, start: datetime, end: datetime) -> List[SourceRecord]:
        """
        Fetch SPC storm reports for every convective day overlapping the window.

        A failure on any day fails the whole fetch so that a partial month is
        never reported as complete; downloads still in flight are cancelled.
        Days are requested newest first, so a fetch cut short by a deadline
        has already cached the most recent days for the next request.
        """
        report_dates = self._convective_days(start, end)
        tasks = [
            asyncio.create_task(self._fetch_day(report_date, bbox, end.date()))
            for report_date in reversed(report_dates)
        ]
        try:
            daily = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        records = [record for day_records in reversed(daily) for record in day_records]
        logger.info(
            f"Fetched {len(records)} SPC storm reports from {report_dates[0]} to {report_dates[-1]}"
        )
        return records

    @staticmethod
    def _convective_days(start: datetime, end: datetime) -> List[date]:
        # The day before start covers start's early-morning (pre-12Z) hours
        first = start.date() - timedelta(days=1)
        days = []
        current = first
        while current <= end.date():
            days.append(current)
            current += timedelta(days=1)
        return days

    def _daily_url(self, report_date: date) -> str:
        return f"{self.base_url}/{report_date.strftime('%y%m%d')}_rpts_filtered.csv"

    async def _fetch_day(self, report_date: date, bbox: BoundingBox, as_of: date) -> List[SourceRecord]:
        """Download (or reuse) and parse a single day's SPC storm reports."""
        url = self._daily_url(report_date)

        hit, text = self.cache.get(url) if self.cache is not None else (False, None)
        if not hit:
            response = await self._get(url, accept_statuses=(404,))
            # No file means no reports for this day (common)
            text = None if response.status_code == 404 else response.text

            if self.cache is not None:
                recent = (as_of - report_date).days <= 2
                self.cache.put(url, text, RECENT_CACHE_SECONDS if recent else HISTORICAL_CACHE_SECONDS)

        if not text:
            logger.debug(f"No SPC reports available for {report_date}")
            return []

        return self._parse_spc_csv(text, report_date, bbox)

    def _parse_spc_csv(self, text: str, report_date: date, bbox: BoundingBox) -> List[SourceRecord]:
        """Parse a sectioned SPC CSV and keep reports inside the search box."""
        records = []
        section: Optional[tuple] = None

        for row in csv.reader(io.StringIO(text)):
            if not row or not any(cell.strip() for cell in row):
                continue

            if row[0].strip() == "Time":
                section = SECTION_TYPES.get(row[1].strip()) if len(row) > 1 else None
                if section is None:
                    logger.debug(f"Unknown SPC section header: {row}")
                continue

            if section is None or len(row) < 7:
                continue

            try:
                lat = float(row[5])
                lng = float(row[6])
            except ValueError:
                lat = lng = None

            if lat is not None and lng is not None and not bbox.contains(lat, lng):
                continue

            record = self._convert_spc_row_to_record(row, section, report_date, lat, lng)
            if record is not None:
                records.append(record)

        logger.debug(f"Parsed {len(records)} SPC reports for {report_date}")
        return records

    def _convert_spc_row_to_record(
        self,
        row: List[str],
        section: tuple,
        report_date: date,
        lat: Optional[float],
        lng: Optional[float],
    ) -> Optional[SourceRecord]:
        """Convert one SPC CSV row to a source record."""
        event_type, kind = section
        time_str = row[0].strip()
        magnitude = self._parse_magnitude(kind, row[1].strip())
        location = row[2].strip()
        county = row[3].strip()
        state = row[4].strip()
        comments = row[7].strip() if len(row) > 7 else ""

        return SourceRecord(
            source=self.source,
            source_id=f"{report_date.strftime('%Y%m%d')}-{kind}-{time_str}-{row[5].strip()}-{row[6].strip()}",
            type=event_type,
            occurred_at=self._report_time(report_date, time_str),
            lat=lat,
            lng=lng,
            magnitude=magnitude,
            label=self._format_label(kind, magnitude, location, state),
            raw={
                "report_date": report_date.isoformat(),
                "kind": kind,
                "time": time_str,
                "magnitude": row[1].strip(),
                "location": location,
                "county": county,
                "state": state,
                "comments": comments,
            },
        )

    @staticmethod
    def _parse_magnitude(kind: str, value: str) -> Optional[float]:
        if not value or value.upper() == "UNK":
            return None
        try:
            number = float(value)
        except ValueError:
            return None
        if kind == "hail":
            return number / 100.0  # hundredths of an inch
        if kind == "wind":
            return number
        # Tornado F/EF ratings are not a comparable magnitude
        return None

    @staticmethod
    def _report_time(report_date: date, time_str: str) -> Optional[datetime]:
        """UTC instant of an ``HHMM`` report time within the convective day."""
        if len(time_str) != 4 or not time_str.isdigit():
            return None
        hour, minute = int(time_str[:2]), int(time_str[2:])
        if hour > 23 or minute > 59:
            return None

        calendar_date = report_date if hour >= 12 else report_date + timedelta(days=1)
        return datetime.combine(calendar_date, time(hour, minute), tzinfo=timezone.utc)

    @staticmethod
    def _format_label(kind: str, magnitude: Optional[float], location: str, state: str) -> str:
        place = ", ".join(filter(None, [location.title(), state]))
        if kind == "hail" and magnitude is not None:
            descriptor = WeatherThresholds.get_hail_descriptor(magnitude)
            description = f'Hail {magnitude:.2f}" ({descriptor})'
        elif kind == "wind" and magnitude is not None:
            description = f"Wind gust {magnitude:.0f} mph"
        elif kind == "wind":
            description = "Wind damage"
        else:
            description = "Tornado"
        return f"{description} near {place}" if place else description
