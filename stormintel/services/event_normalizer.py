"""
Event normalizer: merges adapter output into canonical weather events.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from stormintel.core.logging import get_logger
from stormintel.models import EventSource, GeoPoint, SourceRecord, WeatherEvent

logger = get_logger(__name__)


@dataclass
class NormalizationResult:
    events: List[WeatherEvent] = field(default_factory=list)
    rejected: int = 0
    duplicates: int = 0


def _has_valid_location(record: SourceRecord) -> bool:
    if record.lat is None or record.lng is None:
        return False
    if not (math.isfinite(record.lat) and math.isfinite(record.lng)):
        return False
    return -90.0 <= record.lat <= 90.0 and -180.0 <= record.lng <= 180.0


def normalize(records_by_source: Mapping[EventSource, Iterable[SourceRecord]]) -> NormalizationResult:
    """
    Merge records from all feeds into one ordered list of canonical events.

    Exact duplicates (same source and source-native id) collapse to the first
    occurrence. Reports of the same storm from different feeds are kept as
    separate events. Records missing a valid time or location are rejected.
    Output is ordered by time, then id.
    """
    result = NormalizationResult()
    seen: Dict[str, WeatherEvent] = {}

    for source in sorted(records_by_source, key=lambda s: s.value):
        for record in records_by_source[source]:
            if record.occurred_at is None or not _has_valid_location(record):
                result.rejected += 1
                logger.debug(f"Rejected {record.source.value} record {record.source_id}: missing time or location")
                continue

            event_id = WeatherEvent.make_id(record.source, record.source_id)
            if event_id in seen:
                result.duplicates += 1
                continue

            seen[event_id] = WeatherEvent(
                id=event_id,
                type=record.type,
                occurred_at=record.occurred_at,
                location=GeoPoint(lat=record.lat, lng=record.lng),
                magnitude=record.magnitude,
                source=record.source,
                label=record.label,
                ended_at=record.ended_at,
                raw=record.raw,
            )

    result.events = sorted(seen.values(), key=lambda e: (e.occurred_at, e.id))

    logger.info(
        f"Normalized {len(result.events)} events "
        f"({result.rejected} rejected, {result.duplicates} duplicates dropped)"
    )
    return result
