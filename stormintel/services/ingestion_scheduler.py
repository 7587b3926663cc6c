"""
Ingestion Scheduler

Runs batch weather intel ingestion for every tracked property in the
background.

Schedule: Daily at 2 AM UTC (configurable)
"""

from typing import Any, Dict, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from stormintel.core.logging import get_logger
from stormintel.models import BatchSummary
from stormintel.services.ingestion_service import IngestionService

logger = get_logger(__name__)

BATCH_JOB_ID = "daily_weather_intel_ingestion"


class IngestionScheduler:
    """Schedules the daily batch ingestion job."""

    def __init__(self, ingestion: IngestionService, hour: int = 2, minute: int = 0):
        self.ingestion = ingestion
        self.hour = hour
        self.minute = minute
        self.last_summary: Optional[BatchSummary] = None
        self.scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,  # Combine multiple pending executions
                "max_instances": 1,  # Only one batch at a time
                "misfire_grace_time": 300,
            },
            timezone="UTC",
        )

    def start(self) -> bool:
        """Register the batch job and start the scheduler. Must run inside an event loop."""
        if self.scheduler.running:
            return True

        self.scheduler.add_job(
            func=self.run_batch_job,
            trigger=CronTrigger(hour=self.hour, minute=self.minute, timezone="UTC"),
            id=BATCH_JOB_ID,
            name="Daily Weather Intel Ingestion",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Ingestion scheduler started: daily batch at {self.hour:02d}:{self.minute:02d} UTC")
        return True

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Ingestion scheduler stopped")

    async def run_batch_job(self) -> Optional[BatchSummary]:
        """Background job; never raises so the scheduler keeps its schedule."""
        try:
            logger.info("Starting scheduled batch ingestion")
            self.last_summary = await self.ingestion.run_batch()
            return self.last_summary
        except Exception as e:
            logger.error(f"Error in scheduled batch ingestion: {e}")
            return None

    def get_scheduler_status(self) -> Dict[str, Any]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run_time = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run_time.isoformat() if next_run_time else None,
                "trigger": str(job.trigger),
            })

        status: Dict[str, Any] = {
            "running": self.scheduler.running,
            "jobs": jobs,
            "last_run": None,
        }
        if self.last_summary is not None:
            status["last_run"] = self.last_summary.model_dump(mode="json", by_alias=True, exclude={"outcomes"})
        return status
