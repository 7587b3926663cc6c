"""
Property store: tracked properties and their ingestion results.

Run results are keyed by (property id, run date) so re-running a day
replaces that day's result instead of appending a new one.
"""

import json
import os
import re
import tempfile
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from stormintel.core.logging import get_logger
from stormintel.models import RunResult, TrackedProperty

logger = get_logger(__name__)


class PropertyStore(Protocol):
    """Persistence used by batch ingestion."""

    async def get_tracked_properties(self) -> List[TrackedProperty]:
        ...

    async def upsert_run_result(self, property_id: str, result: RunResult) -> None:
        ...

    async def get_run_result(self, property_id: str, run_date: date) -> Optional[RunResult]:
        ...

    async def update_last_ingested(self, property_id: str, at: datetime) -> None:
        ...


class InMemoryPropertyStore:
    """Process-local store, used by tests and when no result directory is configured."""

    def __init__(self, properties: Optional[Iterable[TrackedProperty]] = None):
        self._properties: Dict[str, TrackedProperty] = {}
        self._results: Dict[Tuple[str, date], RunResult] = {}
        for tracked in properties or []:
            self.add_property(tracked)

    def add_property(self, tracked: TrackedProperty) -> None:
        self._properties[tracked.id] = tracked

    async def get_tracked_properties(self) -> List[TrackedProperty]:
        return list(self._properties.values())

    async def upsert_run_result(self, property_id: str, result: RunResult) -> None:
        self._results[(property_id, result.run_date)] = result

    async def get_run_result(self, property_id: str, run_date: date) -> Optional[RunResult]:
        return self._results.get((property_id, run_date))

    async def update_last_ingested(self, property_id: str, at: datetime) -> None:
        tracked = self._properties.get(property_id)
        if tracked is None:
            logger.warning(f"Cannot update last ingestion time of unknown property {property_id}")
            return
        self._properties[property_id] = tracked.model_copy(update={"last_ingested_at": at})

    def result_count(self) -> int:
        return len(self._results)


class JsonFilePropertyStore:
    """
    File-backed store.

    Layout under ``root_dir``::

        properties.json                       list of tracked properties
        results/<property id>/<YYYY-MM-DD>.json

    Every write goes through a temp file and ``os.replace`` so readers never
    see a partially written document.
    """

    PROPERTIES_FILE = "properties.json"

    def __init__(self, root_dir: str):
        self.root_dir = root_dir
        os.makedirs(os.path.join(self.root_dir, "results"), exist_ok=True)

    async def get_tracked_properties(self) -> List[TrackedProperty]:
        path = os.path.join(self.root_dir, self.PROPERTIES_FILE)
        if not os.path.exists(path):
            return []
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        return [TrackedProperty.model_validate(item) for item in payload]

    async def save_tracked_properties(self, properties: Iterable[TrackedProperty]) -> None:
        payload = [p.model_dump(mode="json", by_alias=True) for p in properties]
        self._atomic_write(os.path.join(self.root_dir, self.PROPERTIES_FILE), payload)

    async def upsert_run_result(self, property_id: str, result: RunResult) -> None:
        path = self._result_path(property_id, result.run_date)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        self._atomic_write(path, result.model_dump(mode="json", by_alias=True))
        logger.debug(f"Stored run result for {property_id} on {result.run_date}")

    async def get_run_result(self, property_id: str, run_date: date) -> Optional[RunResult]:
        path = self._result_path(property_id, run_date)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return RunResult.model_validate(json.load(f))

    async def update_last_ingested(self, property_id: str, at: datetime) -> None:
        properties = await self.get_tracked_properties()
        found = False
        updated = []
        for tracked in properties:
            if tracked.id == property_id:
                tracked = tracked.model_copy(update={"last_ingested_at": at})
                found = True
            updated.append(tracked)

        if not found:
            logger.warning(f"Cannot update last ingestion time of unknown property {property_id}")
            return
        await self.save_tracked_properties(updated)

    def _result_path(self, property_id: str, run_date: date) -> str:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", property_id)
        return os.path.join(self.root_dir, "results", safe_id, f"{run_date.isoformat()}.json")

    @staticmethod
    def _atomic_write(path: str, payload) -> None:
        directory = os.path.dirname(path)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
