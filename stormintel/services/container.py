"""
Service wiring.

Everything the HTTP host needs is built once at startup and torn down at
shutdown. Nothing here is a module-level singleton; tests build their own
container with fake adapters and stores.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from stormintel.core.config import ScoringConfig, Settings
from stormintel.core.logging import get_logger
from stormintel.models import EventSource
from stormintel.services.feed_cache import FeedCache
from stormintel.services.ingestion_scheduler import IngestionScheduler
from stormintel.services.ingestion_service import IngestionService
from stormintel.services.nws_alerts_service import NWSAlertsAdapter
from stormintel.services.property_store import InMemoryPropertyStore, JsonFilePropertyStore, PropertyStore
from stormintel.services.rate_limiter import FeedRateLimiter
from stormintel.services.source_adapter import SourceAdapter
from stormintel.services.spc_storm_reports_service import SPCStormReportsAdapter
from stormintel.services.weather_intel_service import WeatherIntelPipeline

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    ingestion: IngestionService
    store: PropertyStore
    client: Optional[httpx.AsyncClient] = None
    cache: Optional[FeedCache] = None
    adapters: List[SourceAdapter] = field(default_factory=list)
    rate_limiters: Dict[EventSource, FeedRateLimiter] = field(default_factory=dict)
    scheduler: Optional[IngestionScheduler] = None

    def get_rate_limit_status(self) -> Dict[str, Dict]:
        return {source.value: limiter.get_status() for source, limiter in self.rate_limiters.items()}

    async def aclose(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
        if self.cache is not None:
            self.cache.clear()
        for limiter in self.rate_limiters.values():
            limiter.reset()
        if self.client is not None:
            await self.client.aclose()


def build_store(source: Settings) -> PropertyStore:
    if source.result_store_dir:
        logger.info(f"Storing run results under {source.result_store_dir}")
        return JsonFilePropertyStore(source.result_store_dir)
    logger.info("No result directory configured; run results are kept in memory")
    return InMemoryPropertyStore()


def build_container(
    source: Settings,
    client: Optional[httpx.AsyncClient] = None,
    store: Optional[PropertyStore] = None,
) -> ServiceContainer:
    """Wire feeds, pipeline, ingestion and scheduler from settings."""
    client = client or httpx.AsyncClient(timeout=source.feed_timeout_seconds, follow_redirects=True)
    cache = FeedCache()
    rate_limiters = {
        feed: FeedRateLimiter(
            feed.display_name,
            requests_per_second=source.feed_requests_per_second,
            requests_per_day=source.feed_requests_per_day,
            buffer_factor=source.feed_rate_limit_buffer,
        )
        for feed in EventSource
    }
    adapters: List[SourceAdapter] = [
        NWSAlertsAdapter.from_settings(source, client, rate_limiters[EventSource.SEVERE_WEATHER_ALERTS]),
        SPCStormReportsAdapter.from_settings(
            source, client, rate_limiters[EventSource.GROUND_TRUTH_REPORTS], cache
        ),
    ]
    pipeline = WeatherIntelPipeline(
        adapters,
        config=ScoringConfig.from_settings(source),
        bbox_radius_degrees=source.bbox_radius_degrees,
    )
    store = store or build_store(source)
    ingestion = IngestionService.from_settings(source, pipeline, store)
    scheduler = None
    if source.scheduler_enabled:
        scheduler = IngestionScheduler(
            ingestion, hour=source.ingestion_cron_hour, minute=source.ingestion_cron_minute
        )

    return ServiceContainer(
        settings=source,
        ingestion=ingestion,
        store=store,
        client=client,
        cache=cache,
        adapters=adapters,
        rate_limiters=rate_limiters,
        scheduler=scheduler,
    )
