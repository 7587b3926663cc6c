"""
Pydantic models for the weather intel pipeline and its output
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, FrozenSet, List, Literal, Optional
from datetime import datetime, date, timedelta, timezone
from enum import Enum
import math

from stormintel.core.errors import ErrorCode


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys for downstream consumers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventType(str, Enum):
    HAIL = "hail"
    WIND = "wind"
    STORM = "storm"
    WATCH = "watch"
    WARNING = "warning"


class EventSource(str, Enum):
    SEVERE_WEATHER_ALERTS = "severe_weather_alerts"
    GROUND_TRUTH_REPORTS = "ground_truth_reports"

    @property
    def display_name(self) -> str:
        return SOURCE_DISPLAY_NAMES[self]


SOURCE_DISPLAY_NAMES: Dict[EventSource, str] = {
    EventSource.SEVERE_WEATHER_ALERTS: "NWS Severe Weather Alerts",
    EventSource.GROUND_TRUTH_REPORTS: "NWS SPC Preliminary Storm Reports",
}


class GeoPoint(CamelModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class BoundingBox(CamelModel):
    """Simple lat/lng rectangle used to scope feed queries."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    @classmethod
    def around(cls, lat: float, lng: float, radius_degrees: float) -> "BoundingBox":
        return cls(
            min_lat=max(-90.0, lat - radius_degrees),
            min_lng=max(-180.0, lng - radius_degrees),
            max_lat=min(90.0, lat + radius_degrees),
            max_lng=min(180.0, lng + radius_degrees),
        )

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(
            lat=(self.min_lat + self.max_lat) / 2,
            lng=(self.min_lng + self.max_lng) / 2,
        )

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


class LookbackWindow(CamelModel):
    """Inclusive search window ``[start, end]`` in UTC."""

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _check_order(self) -> "LookbackWindow":
        if self.start >= self.end:
            raise ValueError("Window start must be before window end")
        return self

    @classmethod
    def ending(cls, end: datetime, days: int) -> "LookbackWindow":
        end = ensure_utc(end)
        return cls(start=end - timedelta(days=days), end=end)

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    @property
    def run_date(self) -> date:
        return self.end.date()

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


class SourceRecord(BaseModel):
    """
    One feed record as mapped by an adapter, before normalization.

    Time and location are optional here; the normalizer rejects records
    missing either.
    """

    source: EventSource
    source_id: str
    type: EventType
    occurred_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    magnitude: Optional[float] = None
    label: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict)


class WeatherEvent(CamelModel):
    """Canonical, immutable storm event."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: EventType
    occurred_at: datetime
    location: GeoPoint
    magnitude: Optional[float] = None
    source: EventSource
    label: str = ""
    ended_at: Optional[datetime] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("occurred_at", "ended_at")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @property
    def occurred_on(self) -> date:
        return self.occurred_at.date()

    @staticmethod
    def make_id(source: EventSource, source_id: str) -> str:
        return f"{source.value}:{source_id}"


class ScoredEvent(WeatherEvent):
    """A weather event with its distance to the property and relevance score."""

    distance_miles: float = Field(..., ge=0)
    proximity_score: float = Field(..., ge=0, le=1)
    magnitude_score: float = Field(..., ge=0, le=1)
    score: float = Field(..., ge=0, le=1)


class DailyAggregate(CamelModel):
    """All scored events for one UTC calendar date."""

    model_config = ConfigDict(frozen=True)

    date: date
    top_score: float
    event_count: int
    events: List[ScoredEvent]
    sources_represented: FrozenSet[EventSource]


class DOLRecommendation(CamelModel):
    model_config = ConfigDict(frozen=True)

    date: date
    confidence_percent: int
    primary_event: ScoredEvent
    corroborating_sources: List[EventSource]


class TrackedProperty(CamelModel):
    """A property under portfolio ingestion. Identity is owned by the store."""

    id: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None
    last_ingested_at: Optional[datetime] = None

    def has_valid_location(self) -> bool:
        if self.lat is None or self.lng is None:
            return False
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            return False
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lng <= 180.0


class SourceStatus(CamelModel):
    """Availability of one feed for one pipeline run."""

    source: EventSource
    available: bool
    record_count: int = 0
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None


class HailSummary(CamelModel):
    max_size_inches: Optional[float] = None
    nearby_reports: int = 0
    nearest_report_distance_miles: Optional[float] = None
    last_report_date: Optional[date] = None


class WindSummary(CamelModel):
    max_gust_mph: Optional[float] = None
    gust_events: int = 0
    max_duration_minutes: Optional[int] = None
    last_event_date: Optional[date] = None


class TimelineEntry(CamelModel):
    time: datetime
    label: str
    severity: Optional[str] = None
    type: EventType
    magnitude: Optional[float] = None
    distance_miles: Optional[float] = None


class WeatherIntel(CamelModel):
    """Per-property weather intelligence consumed by narrative and report renderers."""

    address: Optional[str] = None
    lat: float
    lng: float
    storm_window_start: Optional[datetime] = None
    storm_window_end: Optional[datetime] = None
    hail: HailSummary = Field(default_factory=HailSummary)
    wind: WindSummary = Field(default_factory=WindSummary)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    radar_images: List[str] = Field(default_factory=list)
    disclaimers: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    unavailable_sources: List[str] = Field(default_factory=list)
    degraded: bool = False
    generated_at: datetime
    event_count: int = 0
    rejected_event_count: int = 0
    days_searched: int
    recommended_dol: Optional[date] = Field(None, alias="recommendedDOL")
    dol_confidence: Optional[Literal["HIGH", "MEDIUM", "LOW"]] = None
    dol_confidence_percent: Optional[int] = None
    corroborating_sources: List[str] = Field(default_factory=list)


class RunResult(CamelModel):
    """What the store persists for one property and run date."""

    property_id: str
    run_date: date
    intel: WeatherIntel
    failed_sources: List[str] = Field(default_factory=list)


class PropertyOutcome(CamelModel):
    property_id: str
    status: Literal["succeeded", "failed", "deferred"]
    failed_sources: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None


class BatchSummary(CamelModel):
    run_date: date
    count: int = 0
    succeeded: int = 0
    failed: int = 0
    deferred: int = 0
    updated: List[str] = Field(default_factory=list)
    outcomes: List[PropertyOutcome] = Field(default_factory=list)
