"""
NWS Alerts Feed Adapter

Fetches severe-convective watches, warnings and statements issued by the
National Weather Service for the point at the center of the search box and
maps them into source records.

The alert's location is the centroid of its polygon. Zone-only alerts carry
no polygon and therefore no location.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from stormintel.core.config import Settings
from stormintel.core.logging import get_logger
from stormintel.core.weather_thresholds import WeatherThresholds
from stormintel.models import BoundingBox, EventSource, EventType, SourceRecord
from stormintel.services.rate_limiter import FeedRateLimiter
from stormintel.services.retry_policy import RetryPolicy
from stormintel.services.source_adapter import SourceAdapter

logger = get_logger(__name__)

SEVERE_ALERT_EVENTS = [
    "Severe Thunderstorm Watch",
    "Severe Thunderstorm Warning",
    "Severe Weather Statement",
    "Tornado Watch",
    "Tornado Warning",
    "High Wind Watch",
    "High Wind Warning",
    "Extreme Wind Warning",
    "Special Weather Statement",
]

AUDIT_PROPERTY_KEYS = (
    "id", "event", "sent", "onset", "ends", "expires",
    "severity", "urgency", "certainty", "senderName", "areaDesc",
)


class NWSAlertsAdapter(SourceAdapter):
    """Alert feed adapter backed by ``api.weather.gov/alerts``."""

    source = EventSource.SEVERE_WEATHER_ALERTS

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[FeedRateLimiter] = None,
        base_url: str = "https://api.weather.gov",
        user_agent: str = "(Storm Intel Service, contact@stormintel.dev)",
        max_pages: int = 10,
    ):
        super().__init__(client, retry_policy, rate_limiter)
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.max_pages = max_pages

    @classmethod
    def from_settings(
        cls,
        source: Settings,
        client: httpx.AsyncClient,
        rate_limiter: Optional[FeedRateLimiter] = None,
    ) -> "NWSAlertsAdapter":
        return cls(
            client,
            retry_policy=RetryPolicy.from_settings(source),
            rate_limiter=rate_limiter,
            base_url=source.nws_base_url,
            user_agent=source.nws_user_agent,
        )

    async def fetch(self, bbox: BoundingBox, start: datetime, end: datetime) -> List[SourceRecord]:
        center = bbox.center
        url: Optional[str] = f"{self.base_url}/alerts"
        params: Optional[Dict[str, Any]] = {
            "point": f"{center.lat:.4f},{center.lng:.4f}",
            "start": start.isoformat(),
            "end": end.isoformat(),
            "status": "actual",
            "event": ",".join(SEVERE_ALERT_EVENTS),
        }

        records: List[SourceRecord] = []
        pages = 0
        while url and pages < self.max_pages:
            response = await self._get(url, params=params)
            payload = response.json()
            pages += 1

            if not isinstance(payload, dict):
                raise ValueError(f"Unexpected NWS alerts payload: {type(payload).__name__}")

            for feature in payload.get("features") or []:
                record = self._convert_alert_to_record(feature)
                if record is None:
                    continue
                if record.lat is not None and record.lng is not None and not bbox.contains(record.lat, record.lng):
                    logger.debug(f"Skipping alert {record.source_id} outside search box")
                    continue
                records.append(record)

            # Continuation URLs already carry the query
            url = (payload.get("pagination") or {}).get("next")
            params = None

        if url:
            logger.warning(f"Stopped NWS alert pagination after {pages} pages")

        return records

    def _convert_alert_to_record(self, feature: Dict[str, Any]) -> Optional[SourceRecord]:
        """Convert an NWS alert feature into a source record."""
        properties = feature.get("properties") or {}
        native_id = properties.get("id") or feature.get("id")
        event_name = (properties.get("event") or "").strip()
        if not native_id or not event_name:
            logger.debug("Skipping NWS alert without id or event name")
            return None

        lat, lng = self._polygon_centroid(feature.get("geometry"))
        hail_inches, wind_mph = self._extract_hazard_hints(properties)

        return SourceRecord(
            source=self.source,
            source_id=str(native_id),
            type=self._classify_event(event_name),
            occurred_at=_parse_timestamp(properties.get("onset") or properties.get("effective") or properties.get("sent")),
            ended_at=_parse_timestamp(properties.get("ends") or properties.get("expires")),
            lat=lat,
            lng=lng,
            magnitude=None,
            label=_format_label(event_name, hail_inches, wind_mph),
            raw={
                **{key: properties.get(key) for key in AUDIT_PROPERTY_KEYS if key in properties},
                "max_hail_size_inches": hail_inches,
                "max_wind_gust_mph": wind_mph,
            },
        )

    @staticmethod
    def _classify_event(event_name: str) -> EventType:
        if event_name.endswith("Watch"):
            return EventType.WATCH
        if event_name.endswith("Warning"):
            return EventType.WARNING
        return EventType.STORM

    @staticmethod
    def _polygon_centroid(geometry: Optional[Dict[str, Any]]) -> Tuple[Optional[float], Optional[float]]:
        """Vertex average of the outer ring(s); ``(None, None)`` without geometry."""
        if not geometry:
            return None, None

        coordinates = geometry.get("coordinates") or []
        if geometry.get("type") == "Polygon":
            rings = coordinates[:1]
        elif geometry.get("type") == "MultiPolygon":
            rings = [polygon[0] for polygon in coordinates if polygon]
        else:
            return None, None

        points = []
        for ring in rings:
            # GeoJSON rings repeat the first vertex at the end
            if len(ring) > 1 and ring[0] == ring[-1]:
                ring = ring[:-1]
            points.extend(ring)

        if not points:
            return None, None

        lng = sum(float(p[0]) for p in points) / len(points)
        lat = sum(float(p[1]) for p in points) / len(points)
        return lat, lng

    @staticmethod
    def _extract_hazard_hints(properties: Dict[str, Any]) -> Tuple[Optional[float], Optional[float]]:
        """Hail size and wind gust from alert parameters, falling back to the text."""
        parameters = properties.get("parameters") or {}
        hail_inches = _first_number(parameters.get("maxHailSize"))
        wind_mph = _first_number(parameters.get("maxWindGust"))

        text = " ".join(filter(None, [properties.get("headline"), properties.get("description")]))
        if hail_inches is None:
            hail_inches = WeatherThresholds.parse_hail_size_from_text(text)
        if wind_mph is None:
            wind_mph = WeatherThresholds.parse_wind_speed_from_text(text)

        return hail_inches, wind_mph


def _first_number(values: Any) -> Optional[float]:
    """First numeric token of an NWS parameter list such as ``["60 MPH"]``."""
    if not values:
        return None
    value = values[0] if isinstance(values, list) else values
    try:
        return float(str(value).split()[0])
    except (ValueError, IndexError):
        return None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable NWS timestamp: {value}")
        return None


def _format_label(event_name: str, hail_inches: Optional[float], wind_mph: Optional[float]) -> str:
    hazards = []
    if hail_inches:
        hazards.append(f'{hail_inches:.2f}" hail')
    if wind_mph:
        hazards.append(f"{wind_mph:.0f} mph gusts")
    if hazards:
        return f"{event_name} ({', '.join(hazards)})"
    return event_name
