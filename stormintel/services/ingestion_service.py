"""
Ingestion service

Two entry points over the same pipeline:

* ``run_batch``: scheduled run over every tracked property with bounded
  parallelism. One property failing never stops the others; properties not
  started before the job deadline are deferred to the next run.
* ``run_on_demand``: interactive request for one location with a hard
  deadline; missing feeds degrade the answer instead of failing it.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, Optional

import sentry_sdk

from stormintel.core.config import Settings
from stormintel.core.errors import ErrorCode, InvalidLocationError, WeatherIntelError
from stormintel.core.logging import get_logger
from stormintel.models import (
    BatchSummary,
    LookbackWindow,
    PropertyOutcome,
    RunResult,
    TrackedProperty,
    WeatherIntel,
)
from stormintel.services.property_store import PropertyStore
from stormintel.services.weather_intel_service import WeatherIntelPipeline

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionService:
    """Runs the weather intel pipeline for tracked properties and stores results."""

    def __init__(
        self,
        pipeline: WeatherIntelPipeline,
        store: PropertyStore,
        lookback_days: int = 120,
        workers: int = 4,
        batch_timeout_seconds: float = 3600.0,
        on_demand_timeout_seconds: float = 8.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.pipeline = pipeline
        self.store = store
        self.lookback_days = lookback_days
        self.workers = workers
        self.batch_timeout_seconds = batch_timeout_seconds
        self.on_demand_timeout_seconds = on_demand_timeout_seconds
        self.clock = clock

    @classmethod
    def from_settings(
        cls, source: Settings, pipeline: WeatherIntelPipeline, store: PropertyStore
    ) -> "IngestionService":
        return cls(
            pipeline,
            store,
            lookback_days=source.lookback_days,
            workers=source.ingestion_workers,
            batch_timeout_seconds=source.batch_timeout_seconds,
            on_demand_timeout_seconds=source.on_demand_timeout_seconds,
        )

    async def run_on_demand(
        self,
        lat: Optional[float],
        lng: Optional[float],
        address: Optional[str] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> WeatherIntel:
        """
        Build weather intel for an ad-hoc location.

        Raises:
            InvalidLocationError: If lat/lng are missing or out of range
        """
        tracked = TrackedProperty(id="on-demand", lat=lat, lng=lng, address=address)
        window = LookbackWindow.ending(now or self.clock(), days or self.lookback_days)

        logger.info(f"On-demand intel for ({lat}, {lng}) over {window.days} days")
        result = await self.pipeline.run(
            tracked,
            window,
            timeout=self.on_demand_timeout_seconds,
            interactive=True,
        )
        return result.intel

    async def run_batch(self, now: Optional[datetime] = None) -> BatchSummary:
        """Ingest every tracked property for the window ending at ``now``."""
        window = LookbackWindow.ending(now or self.clock(), self.lookback_days)
        properties = await self.store.get_tracked_properties()
        logger.info(f"Starting batch ingestion for {len(properties)} properties (run date {window.run_date})")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_timeout_seconds
        semaphore = asyncio.Semaphore(self.workers)

        async def process(tracked: TrackedProperty) -> PropertyOutcome:
            async with semaphore:
                if loop.time() >= deadline:
                    return PropertyOutcome(property_id=tracked.id, status="deferred")
                return await self._ingest_property(tracked, window)

        outcomes: List[PropertyOutcome] = list(await asyncio.gather(*(process(p) for p in properties)))

        summary = BatchSummary(
            run_date=window.run_date,
            count=len(outcomes),
            succeeded=sum(1 for o in outcomes if o.status == "succeeded"),
            failed=sum(1 for o in outcomes if o.status == "failed"),
            deferred=sum(1 for o in outcomes if o.status == "deferred"),
            updated=[o.property_id for o in outcomes if o.status == "succeeded"],
            outcomes=outcomes,
        )
        logger.info(
            f"Batch ingestion completed: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.deferred} deferred"
        )
        return summary

    async def _ingest_property(self, tracked: TrackedProperty, window: LookbackWindow) -> PropertyOutcome:
        try:
            result = await self.pipeline.run(tracked, window)
            failed_sources = result.failed_sources
            await self.store.upsert_run_result(
                tracked.id,
                RunResult(
                    property_id=tracked.id,
                    run_date=window.run_date,
                    intel=result.intel,
                    failed_sources=failed_sources,
                ),
            )
            await self.store.update_last_ingested(tracked.id, window.end)

            if failed_sources:
                logger.warning(f"Property {tracked.id} ingested without: {', '.join(failed_sources)}")
            return PropertyOutcome(property_id=tracked.id, status="succeeded", failed_sources=failed_sources)

        except InvalidLocationError as e:
            logger.error(f"Property {tracked.id} skipped: {e}")
            return PropertyOutcome(
                property_id=tracked.id, status="failed", error=str(e), error_code=ErrorCode.INVALID_LOCATION
            )
        except WeatherIntelError as e:
            logger.error(f"Property {tracked.id} failed: {e}")
            sentry_sdk.capture_exception(e)
            return PropertyOutcome(property_id=tracked.id, status="failed", error=str(e), error_code=e.code)
        except Exception as e:
            logger.error(f"Unexpected error ingesting property {tracked.id}: {e}")
            sentry_sdk.capture_exception(e)
            return PropertyOutcome(property_id=tracked.id, status="failed", error=str(e))
