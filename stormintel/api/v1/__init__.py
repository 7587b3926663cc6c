"""
API v1 router
"""

from fastapi import APIRouter
from . import intel

# Create v1 router
router = APIRouter()

# Include all v1 endpoints
router.include_router(intel.router, prefix="/intel", tags=["intel"])
