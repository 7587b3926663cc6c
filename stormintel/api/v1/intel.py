"""
API endpoints for weather intel
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
import sentry_sdk

from stormintel.core.errors import InvalidLocationError
from stormintel.core.logging import get_logger
from stormintel.models import BatchSummary, WeatherIntel
from stormintel.services.container import ServiceContainer

logger = get_logger(__name__)

# Create router
router = APIRouter()


class OnDemandRequest(BaseModel):
    """Ad-hoc weather intel request. Coordinates are validated by the pipeline."""

    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None
    days: Optional[int] = Field(None, ge=1, le=365, description="Lookback window in days")


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return container


@router.post("/on-demand", response_model=WeatherIntel, response_model_by_alias=True)
async def on_demand_intel(body: OnDemandRequest, container: ServiceContainer = Depends(get_container)):
    """Weather intel and recommended date of loss for one location"""
    try:
        return await container.ingestion.run_on_demand(
            body.lat, body.lng, address=body.address, days=body.days
        )
    except InvalidLocationError as e:
        raise HTTPException(status_code=400, detail={"code": e.code.value, "message": str(e)})


@router.post("/batch", response_model=BatchSummary, response_model_by_alias=True)
async def run_batch(container: ServiceContainer = Depends(get_container)):
    """Run batch ingestion for every tracked property now"""
    try:
        return await container.ingestion.run_batch()
    except Exception as e:
        logger.error(f"Batch ingestion failed: {e}")
        sentry_sdk.capture_exception(e)
        raise HTTPException(status_code=500, detail=f"Batch ingestion failed: {str(e)}")


@router.get("/scheduler")
async def scheduler_status(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Scheduler and feed rate limit status"""
    scheduler: Dict[str, Any] = {"available": False, "running": False, "jobs": []}
    if container.scheduler is not None:
        scheduler = {"available": True, **container.scheduler.get_scheduler_status()}
    return {
        "scheduler": scheduler,
        "rate_limits": container.get_rate_limit_status(),
    }
