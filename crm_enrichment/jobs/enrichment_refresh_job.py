"""
Enrichment Refresh Job - periodic background enrichment for every owner.

Runs every ENRICHMENT_REFRESH_INTERVAL_HOURS and asks the coordinator to
start a run for each owner that has contacts. The coordinator's admission
rule makes this idempotent (owners with a running job are skipped) and
the contact cache window keeps the effective cadence weekly.

Usage:
    # Start the refresh scheduler (in main.py lifespan)
    import asyncio
    from crm_enrichment.jobs.enrichment_refresh_job import start_enrichment_refresh_scheduler

    asyncio.create_task(start_enrichment_refresh_scheduler())
"""

import asyncio
from datetime import UTC, datetime

from crm_enrichment.config import settings
from crm_enrichment.features.enrichment.repository import ContactRepository
from crm_enrichment.features.enrichment.services import (
    EnrichmentJobCoordinator,
    get_enrichment_coordinator,
)
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EnrichmentRefreshJob:
    """Queues enrichment runs for all owners with contacts."""

    def __init__(self, coordinator: EnrichmentJobCoordinator | None = None, contacts=ContactRepository):
        self._coordinator = coordinator
        self._contacts = contacts
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_owner_ids: list[str] = []

    @property
    def coordinator(self) -> EnrichmentJobCoordinator:
        if self._coordinator is None:
            self._coordinator = get_enrichment_coordinator()
        return self._coordinator

    async def run_once(self) -> dict:
        """
        Run a single refresh pass.

        Returns:
            dict: {"owners": int, "started": int, "already_running": int, "failures": int}
        """
        if self.is_running:
            logger.warning("Enrichment refresh already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        result = {"owners": 0, "started": 0, "already_running": 0, "failures": 0}

        try:
            owner_ids = await self._contacts.list_owner_ids_with_contacts()
            self.last_owner_ids = owner_ids
            result["owners"] = len(owner_ids)

            for owner_id in owner_ids:
                try:
                    start = await self.coordinator.start(owner_id)
                except Exception as e:
                    result["failures"] += 1
                    logger.warning(
                        "Failed to queue enrichment", owner_id=owner_id, error=str(e)
                    )
                    continue

                if start.started:
                    result["started"] += 1
                else:
                    result["already_running"] += 1

            logger.info("Enrichment refresh pass complete", **result)
            return result

        finally:
            self.is_running = False
            self.last_run_time = datetime.now(UTC)

    async def wait_for_runs(self) -> None:
        """Block until the last pass's runs settle (worker-process mode)."""
        for owner_id in self.last_owner_ids:
            await self.coordinator.wait_for(owner_id)


async def start_enrichment_refresh_scheduler(interval_hours: float | None = None) -> None:
    """
    Loop forever, one refresh pass per interval.

    A failed pass is logged and retried on the next tick.
    """
    interval_seconds = (interval_hours or settings.ENRICHMENT_REFRESH_INTERVAL_HOURS) * 3600
    job = EnrichmentRefreshJob()

    logger.info("Enrichment refresh scheduler started", interval_seconds=interval_seconds)
    while True:
        try:
            await job.run_once()
        except Exception as e:
            logger.error("Enrichment refresh pass failed", error=str(e))
        await asyncio.sleep(interval_seconds)


async def run_enrichment_refresh_once() -> None:
    """Single pass that waits for every started run (used by the worker CLI)."""
    job = EnrichmentRefreshJob()
    await job.run_once()
    await job.wait_for_runs()
