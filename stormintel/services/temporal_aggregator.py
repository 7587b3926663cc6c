"""
Temporal aggregator: reduces scored events to one entry per UTC date.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from stormintel.models import DailyAggregate, LookbackWindow, ScoredEvent


def aggregate(scored_events: Iterable[ScoredEvent], window: Optional[LookbackWindow] = None) -> List[DailyAggregate]:
    """
    Group scored events by the UTC calendar date they occurred on.

    A day's ``top_score`` is the maximum event score that day, never a sum:
    several reports of one storm must not look worse than the strongest
    single report. Events outside ``window`` are dropped. Output is ordered
    by date; events within a day by time, then id.
    """
    by_day: Dict[date, List[ScoredEvent]] = defaultdict(list)
    for event in scored_events:
        if window is not None and not window.contains(event.occurred_at):
            continue
        by_day[event.occurred_on].append(event)

    aggregates = []
    for day in sorted(by_day):
        events = sorted(by_day[day], key=lambda e: (e.occurred_at, e.id))
        aggregates.append(
            DailyAggregate(
                date=day,
                top_score=max(e.score for e in events),
                event_count=len(events),
                events=events,
                sources_represented=frozenset(e.source for e in events),
            )
        )

    return aggregates
