from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from queue_service.config import settings
from queue_service.api.errors import error_payload
from queue_service.api.v1.router import api_router
from queue_service.core.errors import ErrorCode
from queue_service.database import init_db, async_session_factory
from queue_service.jobs.scheduler import get_job_status, scheduler, start_scheduler, shutdown_scheduler
from queue_service.services.event_publisher import close_event_publisher


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create queue tables if missing
    - Start background scheduler (capacity audit)

    Shutdown:
    - Stop scheduler
    - Close the event publisher connection
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    # Shutdown
    shutdown_scheduler()
    await close_event_publisher()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Queue Tickets", "description": "Ticket issue, lifecycle transitions, next-ticket selection and analytics"},
    {"name": "Health", "description": "Service and database health"},
]

API_DESCRIPTION = """
## Queue Service API

Issues branch queue tickets, enforces the ticket lifecycle and keeps each
branch's occupancy within its capacity.

### Ticket lifecycle

| From | To |
|------|----|
| WAITING | CALLED, CANCELLED |
| CALLED | SERVING, NO_SHOW |
| SERVING | COMPLETED, CANCELLED |

### Error Codes

| Status | Code |
|--------|------|
| 400 | INVALID_INPUT |
| 404 | BRANCH_NOT_FOUND, TICKET_NOT_FOUND |
| 409 | BRANCH_NOT_OPERATIONAL, CAPACITY_EXCEEDED, ILLEGAL_TRANSITION |
| 500 | CAPACITY_INVARIANT_VIOLATION, INTERNAL_ERROR |
| 503 | STORAGE_UNAVAILABLE |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400 INVALID_INPUT."""
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_payload(ErrorCode.INVALID_INPUT.value, "Invalid request", {"errors": errors}),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unexpected errors and return a generic 500."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
    return JSONResponse(
        status_code=500,
        content=error_payload(ErrorCode.INTERNAL_ERROR.value, "Internal server error"),
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown",
            "scheduler": {
                "running": scheduler.running,
                "jobs": get_job_status(),
            },
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
