"""
Date-of-loss selector.

Picks the most probable date of loss from daily aggregates:

1. Candidates are the days sharing the highest ``top_score``.
2. Ties go to the day with more distinct sources, then to the most recent day.
3. The primary event is the highest-scoring event on the chosen day.
4. Confidence is ``round(100 * top_score * corroboration_factor)`` where the
   factor grows with the number of distinct sources that day, capped at 1.
"""

from typing import List, Optional, Sequence

from stormintel.core.config import ScoringConfig
from stormintel.core.logging import get_logger
from stormintel.models import DailyAggregate, DOLRecommendation, ScoredEvent

logger = get_logger(__name__)


class DOLSelector:
    """Deterministic DOL selection over daily aggregates."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def corroboration_factor(self, source_count: int) -> float:
        if source_count <= 0:
            return 0.0
        factor = self.config.single_source_factor + (source_count - 1) * self.config.per_extra_source_factor
        return max(0.0, min(1.0, factor))

    def confidence_percent(self, top_score: float, source_count: int) -> int:
        return int(round(100 * top_score * self.corroboration_factor(source_count)))

    def confidence_label(self, confidence_percent: Optional[int]) -> Optional[str]:
        if confidence_percent is None:
            return None
        if confidence_percent >= self.config.confidence_high_percent:
            return "HIGH"
        if confidence_percent >= self.config.confidence_medium_percent:
            return "MEDIUM"
        return "LOW"

    def select(self, daily_aggregates: Sequence[DailyAggregate]) -> Optional[DOLRecommendation]:
        """
        Return the recommended date of loss, or None when the window has no events.

        A window whose events all lie outside their relevance radius still gets
        a recommendation, with zero confidence.
        """
        if not daily_aggregates:
            return None

        best_score = max(day.top_score for day in daily_aggregates)
        if best_score <= 0:
            logger.info("No event within relevance radius; recommending with zero confidence")

        candidates = [day for day in daily_aggregates if day.top_score == best_score]
        chosen = max(candidates, key=lambda day: (len(day.sources_represented), day.date))

        return DOLRecommendation(
            date=chosen.date,
            confidence_percent=self.confidence_percent(chosen.top_score, len(chosen.sources_represented)),
            primary_event=self._primary_event(chosen.events),
            corroborating_sources=sorted(chosen.sources_represented, key=lambda s: s.value),
        )

    @staticmethod
    def _primary_event(events: List[ScoredEvent]) -> ScoredEvent:
        # Highest score; earliest report, then id, settle exact ties
        return min(events, key=lambda e: (-e.score, e.occurred_at, e.id))
