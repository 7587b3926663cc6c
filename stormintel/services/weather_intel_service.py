"""
Weather intel pipeline for a single property.

Stages run strictly in order: feed adapters -> normalize -> score ->
aggregate -> select -> assemble. Only the adapter calls suspend; every stage
after them is pure and synchronous.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from stormintel.core.config import ScoringConfig
from stormintel.core.errors import ErrorCode, InvalidLocationError
from stormintel.core.logging import get_logger
from stormintel.models import (
    BoundingBox,
    DailyAggregate,
    DOLRecommendation,
    EventSource,
    GeoPoint,
    LookbackWindow,
    ScoredEvent,
    SourceStatus,
    TrackedProperty,
    WeatherEvent,
    WeatherIntel,
)
from stormintel.services.dol_selector import DOLSelector
from stormintel.services.event_normalizer import normalize
from stormintel.services.proximity_scorer import ProximityScorer
from stormintel.services.report_assembler import assemble
from stormintel.services.source_adapter import FeedResult, SourceAdapter
from stormintel.services.temporal_aggregator import aggregate

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    intel: WeatherIntel
    source_statuses: List[SourceStatus]
    events: List[WeatherEvent] = field(default_factory=list)
    scored_events: List[ScoredEvent] = field(default_factory=list)
    daily_aggregates: List[DailyAggregate] = field(default_factory=list)
    recommendation: Optional[DOLRecommendation] = None

    @property
    def failed_sources(self) -> List[str]:
        return [s.source.value for s in self.source_statuses if not s.available]


class WeatherIntelPipeline:
    """Runs every pipeline stage for one property and lookback window."""

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        config: Optional[ScoringConfig] = None,
        bbox_radius_degrees: float = 0.5,
    ):
        self.adapters = list(adapters)
        self.config = config or ScoringConfig()
        self.bbox_radius_degrees = bbox_radius_degrees
        self.scorer = ProximityScorer(self.config)
        self.selector = DOLSelector(self.config)

    async def run(
        self,
        tracked_property: TrackedProperty,
        window: LookbackWindow,
        timeout: Optional[float] = None,
        interactive: bool = False,
        generated_at: Optional[datetime] = None,
    ) -> PipelineResult:
        """
        Run the pipeline.

        Args:
            tracked_property: Property to analyse (only lat/lng/address are read)
            window: Lookback window
            timeout: Hard deadline in seconds for the feed stage; feeds still
                outstanding are cancelled and reported as timed out
            interactive: Mark the result degraded when any feed is missing
            generated_at: Timestamp for the report (defaults to window end)

        Raises:
            InvalidLocationError: If the property has no usable coordinates
        """
        if not tracked_property.has_valid_location():
            raise InvalidLocationError(
                f"Property {tracked_property.id} has invalid coordinates "
                f"({tracked_property.lat}, {tracked_property.lng})"
            )

        bbox = BoundingBox.around(tracked_property.lat, tracked_property.lng, self.bbox_radius_degrees)
        feed_results = await self._collect_sources(bbox, window, timeout)
        statuses = [result.status for result in feed_results]

        normalization = normalize({result.source: result.records for result in feed_results})
        location = GeoPoint(lat=tracked_property.lat, lng=tracked_property.lng)
        scored = self.scorer.score_all(location, normalization.events)
        daily = aggregate(scored, window)
        recommendation = self.selector.select(daily)

        degraded = interactive and any(not status.available for status in statuses)
        intel = assemble(
            tracked_property,
            daily,
            recommendation,
            statuses,
            window,
            generated_at=generated_at,
            config=self.config,
            rejected_count=normalization.rejected,
            degraded=degraded,
        )

        if recommendation is None:
            logger.info(f"Property {tracked_property.id}: {ErrorCode.NO_EVENTS_FOUND.value} in {window.days}-day window")
        else:
            logger.info(
                f"Property {tracked_property.id}: recommended DOL {recommendation.date} "
                f"({recommendation.confidence_percent}% from {len(recommendation.corroborating_sources)} sources)"
            )

        return PipelineResult(
            intel=intel,
            source_statuses=statuses,
            events=normalization.events,
            scored_events=scored,
            daily_aggregates=daily,
            recommendation=recommendation,
        )

    async def _collect_sources(
        self, bbox: BoundingBox, window: LookbackWindow, timeout: Optional[float]
    ) -> List[FeedResult]:
        tasks: Dict[EventSource, asyncio.Task] = {
            adapter.source: asyncio.create_task(adapter.collect(bbox, window.start, window.end))
            for adapter in self.adapters
        }
        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results = []
        for source, task in tasks.items():
            if task in done:
                results.append(task.result())
            else:
                logger.warning(f"{source.value} did not respond within {timeout}s; continuing without it")
                results.append(
                    FeedResult.unavailable(source, ErrorCode.TIMEOUT, f"No response within {timeout} seconds")
                )
        return results
