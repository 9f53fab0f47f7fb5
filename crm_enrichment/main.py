"""
Application entrypoint with database pool and enrichment lifecycle management.
"""

import asyncio
import contextlib
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from crm_enrichment.config import settings
from crm_enrichment.db.pool import db_pool
from crm_enrichment.features.enrichment.api import router as enrichment_router
from crm_enrichment.features.enrichment.services import enrichment_runtime
from crm_enrichment.infrastructure.observability.logging import (
    get_logger,
    log_request,
    setup_logging,
)
from crm_enrichment.jobs.enrichment_refresh_job import start_enrichment_refresh_scheduler
from crm_enrichment.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        await db_pool.initialize()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        raise

    refresh_task: asyncio.Task | None = None
    if settings.ENRICHMENT_REFRESH_ENABLED:
        refresh_task = asyncio.create_task(start_enrichment_refresh_scheduler())
        logger.info("Enrichment refresh scheduler enabled")

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    shutdown_errors = []

    if refresh_task is not None:
        refresh_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresh_task

    try:
        await enrichment_runtime.close()
    except Exception as e:
        logger.error("Error closing enrichment runtime", error=str(e))
        shutdown_errors.append(f"Enrichment: {e}")

    # Close database pool last (running jobs may still hold connections)
    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="CRM Enrichment",
    description="Background contact and company enrichment",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(enrichment_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
