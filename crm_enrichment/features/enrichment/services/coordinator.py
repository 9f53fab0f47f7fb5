"""
Enrichment job coordinator.

Admits at most one running job per owner, spawns the worker as a detached
task, answers stop/progress requests, and hands finished jobs to the
cleanup scheduler. Late settlements from a stopped run are discarded by
run id, so a stopped job is never resurrected.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any

from crm_enrichment.config import settings
from crm_enrichment.features.enrichment.domain import JobStatus
from crm_enrichment.features.enrichment.services.cleanup import CleanupScheduler
from crm_enrichment.features.enrichment.services.job_store import (
    EnrichmentJob,
    InMemoryJobStore,
    JobStore,
    job_key,
)
from crm_enrichment.features.enrichment.services.progress import ProgressHandle
from crm_enrichment.features.enrichment.services.worker import EnrichmentWorker
from crm_enrichment.infrastructure.observability.logging import bind_job_context, get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class StartResult:
    started: bool
    job_key: str
    progress: dict[str, Any]


@dataclass(slots=True)
class StopResult:
    stopped: bool
    progress: dict[str, Any] | None = None


class EnrichmentJobCoordinator:
    """Per-owner registry of enrichment jobs."""

    def __init__(
        self,
        worker: EnrichmentWorker,
        store: JobStore | None = None,
        cleanup: CleanupScheduler | None = None,
        retention_seconds: float | None = None,
    ):
        self._worker = worker
        self._store = store if store is not None else InMemoryJobStore()
        self._cleanup = cleanup or CleanupScheduler()
        self._retention_seconds = (
            settings.ENRICHMENT_RETENTION_SECONDS
            if retention_seconds is None
            else retention_seconds
        )
        self._admission_lock = asyncio.Lock()
        # Strong references; the event loop only keeps weak ones
        self._tasks: dict[str, asyncio.Task] = {}

    async def start(self, owner_id: str, *, force: bool = False) -> StartResult:
        """
        Start an enrichment run unless one is already running for the owner.

        Returns immediately; the run continues as a background task.
        """
        key = job_key(owner_id)

        async with self._admission_lock:
            existing = await self._store.get(key)
            if existing and not existing.is_terminal:
                logger.info("Enrichment already running", owner_id=owner_id, run_id=existing.run_id)
                return StartResult(started=False, job_key=key, progress=existing.to_progress_dict())

            # The new job replaces the slot; a pending eviction would delete it
            self._cleanup.cancel(key)

            run_id = uuid.uuid4().hex
            job = EnrichmentJob(
                owner_id=owner_id,
                run_id=run_id,
                progress=ProgressHandle(run_id),
                force=force,
            )
            await self._store.set(key, job)

            task = asyncio.create_task(self._run(job), name=f"enrichment:{key}")
            self._tasks[run_id] = task
            task.add_done_callback(lambda _t, run_id=run_id: self._tasks.pop(run_id, None))

        logger.info("Enrichment started", owner_id=owner_id, run_id=run_id, force=force)
        return StartResult(started=True, job_key=key, progress=job.to_progress_dict())

    async def stop(self, owner_id: str) -> StopResult:
        """
        Cancel the owner's running job and report it terminal immediately.

        The worker notices the token at its next contact boundary; counters
        are frozen now so nothing it does afterwards is visible.
        """
        key = job_key(owner_id)
        job = await self._store.get(key)
        if job is None or job.is_terminal:
            return StopResult(stopped=False, progress=job.to_progress_dict() if job else None)

        job.cancel_token.cancel()
        job.mark_terminal(JobStatus.DONE)
        await self._store.set(key, job)
        self._schedule_eviction(job)

        logger.info(
            "Enrichment stopped",
            owner_id=owner_id,
            run_id=job.run_id,
            processed=job.progress.snapshot().processed,
        )
        return StopResult(stopped=True, progress=job.to_progress_dict())

    async def progress(self, owner_id: str) -> dict[str, Any] | None:
        job = await self._store.get(job_key(owner_id))
        return job.to_progress_dict() if job else None

    async def get_job(self, owner_id: str) -> EnrichmentJob | None:
        return await self._store.get(job_key(owner_id))

    async def _run(self, job: EnrichmentJob) -> None:
        bind_job_context(job.owner_id, job.run_id)
        try:
            await self._worker.run(job.owner_id, job.progress, job.cancel_token, force=job.force)
        except Exception as e:
            message = str(e) or "Enrichment failed"
            logger.error(
                "Enrichment run failed",
                owner_id=job.owner_id,
                run_id=job.run_id,
                error=message,
                error_type=type(e).__name__,
            )
            await self._finalize(job, error=message)
        else:
            await self._finalize(job)

    async def _finalize(self, job: EnrichmentJob, error: str | None = None) -> None:
        current = await self._store.get(job.key)
        if current is None or current.run_id != job.run_id or current.is_terminal:
            logger.debug("Discarding late settlement", owner_id=job.owner_id, run_id=job.run_id)
            return

        job.mark_terminal(JobStatus.ERROR if error else JobStatus.DONE, error=error)
        await self._store.set(job.key, job)
        self._schedule_eviction(job)

    def _schedule_eviction(self, job: EnrichmentJob) -> None:
        async def evict() -> None:
            current = await self._store.get(job.key)
            if current is not None and current.run_id == job.run_id:
                await self._store.delete(job.key)
                logger.debug("Enrichment job evicted", owner_id=job.owner_id, run_id=job.run_id)

        self._cleanup.schedule(job.key, self._retention_seconds, evict)

    async def wait_for(self, owner_id: str) -> None:
        """Await the owner's running worker task, if any (tests and CLI runs)."""
        job = await self._store.get(job_key(owner_id))
        task = self._tasks.get(job.run_id) if job else None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running workers and pending evictions."""
        self._cleanup.cancel_all()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Enrichment coordinator shut down", cancelled_runs=len(tasks))
