"""
Service layer for the enrichment feature.
"""

from .cancellation import CancellationToken
from .cleanup import CleanupScheduler
from .company_indexer import CompanyIndexer
from .company_upsert import CompanyUpsertService
from .coordinator import EnrichmentJobCoordinator, StartResult, StopResult
from .job_store import EnrichmentJob, InMemoryJobStore, JobStore, job_key
from .progress import ProgressHandle
from .runtime import enrichment_runtime, get_company_upsert_service, get_enrichment_coordinator
from .worker import EnrichmentWorker

__all__ = [
    "CancellationToken",
    "CleanupScheduler",
    "CompanyIndexer",
    "CompanyUpsertService",
    "EnrichmentJob",
    "EnrichmentJobCoordinator",
    "EnrichmentWorker",
    "InMemoryJobStore",
    "JobStore",
    "ProgressHandle",
    "StartResult",
    "StopResult",
    "enrichment_runtime",
    "get_company_upsert_service",
    "get_enrichment_coordinator",
    "job_key",
]
