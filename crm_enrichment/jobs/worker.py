"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the matching job coroutine. Jobs run with their
own database pool and enrichment runtime; progress of runs started here
is not visible to API pollers.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from crm_enrichment.config import settings
from crm_enrichment.db.pool import db_pool
from crm_enrichment.features.enrichment.services import enrichment_runtime
from crm_enrichment.infrastructure.observability.logging import get_logger, setup_logging
from crm_enrichment.jobs.enrichment_refresh_job import (
    run_enrichment_refresh_once,
    start_enrichment_refresh_scheduler,
)

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "enrichment_refresh": start_enrichment_refresh_scheduler,
    "enrichment_refresh_once": run_enrichment_refresh_once,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "enrichment_refresh").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


async def _run_with_resources(job_name: str) -> None:
    await db_pool.initialize()
    try:
        await run_worker(job_name)
    finally:
        await enrichment_runtime.close()
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(_run_with_resources(_resolve_job_name()))


if __name__ == "__main__":
    main()
