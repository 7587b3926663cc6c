"""
Storm Intel Service - Main FastAPI Application

Hosts on-demand weather intel requests and the scheduled batch ingestion
of tracked properties.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
import os
from dotenv import load_dotenv
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from stormintel.api import router as api_router
from stormintel.core.config import settings
from stormintel.core.logging import get_logger
from stormintel.services.container import build_container

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

# Initialize Sentry for error tracking
sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,  # 10% of transactions
        environment=os.getenv("ENVIRONMENT", "development"),
    )

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Correlates public storm feeds with property locations to recommend a date of loss",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global exception handlers to ensure JSON responses
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON responses"""
    logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "status_code": exc.status_code,
            "message": exc.detail,
            "path": str(request.url)
        }
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON responses"""
    logger.error(f"Validation Error: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "error": True,
            "status_code": 422,
            "message": "Validation error",
            "details": jsonable_errors(exc),
            "path": str(request.url)
        }
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions and return JSON responses"""
    logger.error(f"Unhandled Exception: {type(exc).__name__}: {str(exc)}")
    sentry_sdk.capture_exception(exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "status_code": 500,
            "message": "Internal server error",
            "path": str(request.url)
        }
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception instances that JSONResponse cannot encode
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


# Include API routes
app.include_router(api_router)

# Startup and shutdown event handlers
@app.on_event("startup")
async def startup_event():
    """Build services and start the ingestion scheduler."""
    container = build_container(settings)
    app.state.container = container

    if container.scheduler is None:
        logger.info("Ingestion scheduler disabled")
        return
    try:
        container.scheduler.start()
    except Exception as e:
        logger.error(f"Failed to start ingestion scheduler: {e}")
        sentry_sdk.capture_exception(e)

@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler and release the HTTP client."""
    container = getattr(app.state, "container", None)
    if container is None:
        return
    await container.aclose()
    app.state.container = None
    logger.info("Services stopped")

@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "storm-intel-service",
        "version": "1.0.0"
    }

if __name__ == "__main__":
    uvicorn.run(
        "stormintel.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
