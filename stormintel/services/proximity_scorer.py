"""
Proximity scorer: distance from the property and bounded relevance score.
"""

import math
from typing import Iterable, List, Optional

from stormintel.core.config import ScoringConfig
from stormintel.models import EventType, GeoPoint, ScoredEvent, WeatherEvent

EARTH_RADIUS_MILES = 3958.8


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in miles."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return EARTH_RADIUS_MILES * c


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ProximityScorer:
    """
    Scores events against a property location.

    ``score = proximity * magnitude`` where proximity falls linearly from 1 at
    the property to 0 at the type's relevance radius, and magnitude is the
    event magnitude over the type's cap (or a fixed nominal value for types
    without a magnitude).
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def radius_for(self, event_type: EventType) -> float:
        return self.config.radius_miles[event_type.value]

    def proximity_score(self, event_type: EventType, distance_miles: float) -> float:
        radius = self.radius_for(event_type)
        if radius <= 0:
            return 0.0
        return _clamp(1.0 - distance_miles / radius)

    def magnitude_score(self, event_type: EventType, magnitude: Optional[float]) -> float:
        cap = self.config.magnitude_caps.get(event_type.value)
        if cap is not None and magnitude is not None:
            return _clamp(magnitude / cap) if cap > 0 else 0.0

        # Watches, warnings and reports that came without a magnitude
        return _clamp(self.config.nominal_magnitude_scores.get(event_type.value, 0.0))

    def score(self, property_location: GeoPoint, event: WeatherEvent) -> ScoredEvent:
        distance = haversine_miles(
            property_location.lat, property_location.lng,
            event.location.lat, event.location.lng,
        )
        proximity = self.proximity_score(event.type, distance)
        magnitude = self.magnitude_score(event.type, event.magnitude)

        return ScoredEvent(
            **dict(event),
            distance_miles=max(0.0, distance),
            proximity_score=proximity,
            magnitude_score=magnitude,
            score=_clamp(proximity * magnitude),
        )

    def score_all(self, property_location: GeoPoint, events: Iterable[WeatherEvent]) -> List[ScoredEvent]:
        return [self.score(property_location, event) for event in events]
