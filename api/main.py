"""
Shopflow - Main FastAPI Application.

Thin HTTP edge over the workflow engine: shipments, label voids and
order cancellation.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import asyncio
import contextlib
import logging
import time
from typing import Optional

from api.dependencies import get_container
from api.routes import health, orders, shipments, workflows
from core.infrastructure.database import close_database, init_database
from core.infrastructure.outbox import run_outbox_worker


# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# Background outbox worker, running between startup and shutdown
_outbox_task: Optional[asyncio.Task] = None


# =============================================================================
# CREATE FASTAPI APP
# =============================================================================

app = FastAPI(
    title="Shopflow - Fulfillment Workflow API",
    description="""
    Saga workflows for shipping and order cancellation.

    Features:
    - Two-phase label purchase (no provider call inside a transaction)
    - Label voids with manual-intervention events
    - Order cancellation with compensation
    - Idempotent requests via the Idempotency-Key header
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# =============================================================================
# REQUEST LOGGING MIDDLEWARE
# =============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing."""
    start_time = time.time()
    logger.info(f"-> {request.method} {request.url.path}")

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"<- {request.method} {request.url.path} "
        f"[{response.status_code}] ({duration:.3f}s)"
    )
    return response


# =============================================================================
# GLOBAL EXCEPTION HANDLER
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "detail": {"kind": "internal", "message": "Internal server error"},
            "path": request.url.path,
        },
    )


# =============================================================================
# STARTUP/SHUTDOWN EVENTS
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Build the container, make sure the schema exists, start the outbox worker."""
    global _outbox_task
    container = get_container()
    await init_database(container.db_engine)
    if container.settings.outbox.enabled:
        _outbox_task = asyncio.create_task(
            run_outbox_worker(container.outbox_publisher, container.settings.outbox)
        )
    logger.info("Shopflow API started")


@app.on_event("shutdown")
async def shutdown_event():
    global _outbox_task
    if _outbox_task is not None:
        _outbox_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _outbox_task
        _outbox_task = None
    container = get_container()
    await close_database(container.db_engine)
    logger.info("Shopflow API shut down")


# =============================================================================
# INCLUDE ROUTERS
# =============================================================================

app.include_router(health.router, tags=["Health"])
app.include_router(shipments.router, prefix="/admin", tags=["Shipments"])
app.include_router(orders.router, prefix="/admin", tags=["Orders"])
app.include_router(workflows.router, prefix="/admin", tags=["Workflows"])
