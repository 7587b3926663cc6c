"""
Payload cache for feed downloads.

SPC daily report files for past days change rarely, and every property in a
portfolio run needs the same files, so adapters share one cache owned by
the service container.
"""

import time
from typing import Dict, Optional, Tuple

from stormintel.core.logging import get_logger

logger = get_logger(__name__)


class FeedCache:
    """In-memory TTL cache keyed by URL. ``clear()`` ends its contents' life."""

    def __init__(self, max_entries: int = 2048):
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[float, Optional[str]]] = {}

    def get(self, key: str) -> Tuple[bool, Optional[str]]:
        """Return ``(hit, payload)``. A cached ``None`` records a known-empty day."""
        entry = self._entries.get(key)
        if entry is None:
            return False, None

        expires_at, payload = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return False, None
        return True, payload

    def put(self, key: str, payload: Optional[str], ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            return
        if len(self._entries) >= self.max_entries:
            self._evict_oldest()
        self._entries[key] = (time.monotonic() + ttl_seconds, payload)

    def clear(self) -> None:
        logger.debug(f"Clearing feed cache ({len(self._entries)} entries)")
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_oldest(self) -> None:
        oldest_key = min(self._entries, key=lambda k: self._entries[k][0])
        del self._entries[oldest_key]
