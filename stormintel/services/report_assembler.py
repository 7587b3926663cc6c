"""
Report assembler: packages pipeline output into ``WeatherIntel``.

Pure function of its inputs. ``generated_at`` is passed in so that re-running
the same window yields an identical document.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from stormintel.core.config import ScoringConfig
from stormintel.core.weather_thresholds import classify_severity
from stormintel.models import (
    DailyAggregate,
    DOLRecommendation,
    EventSource,
    EventType,
    HailSummary,
    LookbackWindow,
    ScoredEvent,
    SourceStatus,
    TimelineEntry,
    TrackedProperty,
    WeatherIntel,
    WindSummary,
)
from stormintel.services.dol_selector import DOLSelector

NOT_COVERAGE_DISCLAIMER = (
    "This summary describes third-party weather observations near the property. "
    "It is not a determination of insurance coverage or of the cause of any damage."
)
DISTANCE_DISCLAIMER = (
    "Distances are measured from the property coordinates to the reported storm location; "
    "conditions at the property itself may differ."
)
PRELIMINARY_DISCLAIMER = (
    "NWS Storm Prediction Center reports are preliminary and unverified; "
    "final verification typically takes 75-120 days."
)
FRESHNESS_DISCLAIMER = "Feeds are reported as available at ingestion time and may lag real-time conditions."


def _within_radius(event: ScoredEvent, config: ScoringConfig) -> bool:
    return event.distance_miles <= config.radius_miles[event.type.value]


def _is_wind_capable(event: ScoredEvent) -> bool:
    if event.type == EventType.WIND:
        return True
    label = event.label.lower()
    return event.type in (EventType.STORM, EventType.WATCH, EventType.WARNING) and (
        "wind" in label or "thunderstorm" in label
    )


def _summarize_hail(events: List[ScoredEvent], config: ScoringConfig) -> HailSummary:
    hail = [e for e in events if e.type == EventType.HAIL]
    nearby = [e for e in hail if _within_radius(e, config)]
    sizes = [e.magnitude for e in nearby if e.magnitude is not None]

    return HailSummary(
        max_size_inches=max(sizes) if sizes else None,
        nearby_reports=len(nearby),
        nearest_report_distance_miles=round(min(e.distance_miles for e in hail), 2) if hail else None,
        last_report_date=max(e.occurred_on for e in nearby) if nearby else None,
    )


def _summarize_wind(events: List[ScoredEvent], config: ScoringConfig) -> WindSummary:
    gusts = [e for e in events if e.type == EventType.WIND and _within_radius(e, config)]
    speeds = [e.magnitude for e in gusts if e.magnitude is not None]

    durations = [
        int((e.ended_at - e.occurred_at).total_seconds() // 60)
        for e in events
        if _is_wind_capable(e) and _within_radius(e, config) and e.ended_at is not None and e.ended_at > e.occurred_at
    ]

    return WindSummary(
        max_gust_mph=max(speeds) if speeds else None,
        gust_events=len(gusts),
        max_duration_minutes=max(durations) if durations else None,
        last_event_date=max(e.occurred_on for e in gusts) if gusts else None,
    )


def _build_timeline(events: List[ScoredEvent], config: ScoringConfig) -> List[TimelineEntry]:
    notable = [e for e in events if e.score > 0]
    if len(notable) > config.timeline_max_entries:
        notable = sorted(notable, key=lambda e: (-e.score, e.occurred_at, e.id))[: config.timeline_max_entries]
    notable.sort(key=lambda e: (e.occurred_at, e.id))

    return [
        TimelineEntry(
            time=e.occurred_at,
            label=e.label or e.type.value.title(),
            severity=(
                classify_severity(e.magnitude, e.distance_miles, config.hail_severity)
                if e.type == EventType.HAIL
                else None
            ),
            type=e.type,
            magnitude=e.magnitude,
            distance_miles=round(e.distance_miles, 2),
        )
        for e in notable
    ]


def _build_disclaimers(statuses: Sequence[SourceStatus], degraded: bool) -> List[str]:
    disclaimers = [NOT_COVERAGE_DISCLAIMER, DISTANCE_DISCLAIMER, FRESHNESS_DISCLAIMER]

    available = {s.source for s in statuses if s.available}
    if EventSource.GROUND_TRUTH_REPORTS in available:
        disclaimers.append(PRELIMINARY_DISCLAIMER)

    unavailable = [s.source.display_name for s in statuses if not s.available]
    if unavailable:
        disclaimers.append(
            f"The following data sources were unavailable for this run: {', '.join(unavailable)}. "
            f"Absence of events from these sources is not evidence that no storm occurred."
        )
    if degraded:
        disclaimers.append("This result was returned before every data source responded and may be incomplete.")

    return disclaimers


def assemble(
    tracked_property: TrackedProperty,
    daily_aggregates: Sequence[DailyAggregate],
    recommendation: Optional[DOLRecommendation],
    source_statuses: Sequence[SourceStatus],
    window: LookbackWindow,
    generated_at: Optional[datetime] = None,
    config: Optional[ScoringConfig] = None,
    rejected_count: int = 0,
    degraded: bool = False,
) -> WeatherIntel:
    """Build the ``WeatherIntel`` document for one property and window."""
    config = config or ScoringConfig()
    selector = DOLSelector(config)
    events = [e for day in daily_aggregates for e in day.events]

    storm_window_start = storm_window_end = None
    confidence_percent = None
    corroborating: List[str] = []
    if recommendation is not None:
        day_events = next(
            (day.events for day in daily_aggregates if day.date == recommendation.date), []
        )
        relevant = [e for e in day_events if e.score > 0] or [recommendation.primary_event]
        storm_window_start = min(e.occurred_at for e in relevant)
        storm_window_end = max((e.ended_at or e.occurred_at) for e in relevant)
        confidence_percent = recommendation.confidence_percent
        corroborating = [s.display_name for s in recommendation.corroborating_sources]

    statuses = sorted(source_statuses, key=lambda s: s.source.value)

    return WeatherIntel(
        address=tracked_property.address,
        lat=tracked_property.lat,
        lng=tracked_property.lng,
        storm_window_start=storm_window_start,
        storm_window_end=storm_window_end,
        hail=_summarize_hail(events, config),
        wind=_summarize_wind(events, config),
        timeline=_build_timeline(events, config),
        radar_images=[],
        disclaimers=_build_disclaimers(statuses, degraded),
        sources=[s.source.display_name for s in statuses if s.available],
        unavailable_sources=[s.source.display_name for s in statuses if not s.available],
        degraded=degraded,
        generated_at=generated_at or window.end,
        event_count=len(events),
        rejected_event_count=rejected_count,
        days_searched=window.days,
        recommended_dol=recommendation.date if recommendation else None,
        dol_confidence=selector.confidence_label(confidence_percent),
        dol_confidence_percent=confidence_percent,
        corroborating_sources=corroborating,
    )
