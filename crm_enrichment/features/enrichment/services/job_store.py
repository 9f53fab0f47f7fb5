"""
Job records and the store that holds them.

The coordinator only talks to JobStore (get/set/delete); the in-memory
implementation is the one used by a single API instance.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from crm_enrichment.features.enrichment.domain import JobStatus
from crm_enrichment.features.enrichment.services.cancellation import CancellationToken
from crm_enrichment.features.enrichment.services.progress import ProgressHandle

JOB_KEY_PREFIX = "contacts-free"


def job_key(owner_id: str) -> str:
    return f"{JOB_KEY_PREFIX}:{owner_id}"


@dataclass(slots=True)
class EnrichmentJob:
    """One enrichment run for one owner."""

    owner_id: str
    run_id: str
    progress: ProgressHandle
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    force: bool = False
    status: JobStatus = JobStatus.RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def key(self) -> str:
        return job_key(self.owner_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.DONE, JobStatus.ERROR)

    def mark_terminal(self, status: JobStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error
        self.finished_at = datetime.now(UTC)
        self.progress.freeze(error_message=error)

    def to_progress_dict(self) -> dict[str, Any]:
        """Snapshot in the shape pollers receive."""
        return {
            **self.progress.snapshot().to_dict(),
            "done": self.is_terminal,
            "error": self.error,
        }


class JobStore(Protocol):
    async def get(self, key: str) -> EnrichmentJob | None: ...

    async def set(self, key: str, job: EnrichmentJob) -> None: ...

    async def delete(self, key: str) -> bool: ...


class InMemoryJobStore:
    """Process-local JobStore; state is lost on restart."""

    def __init__(self):
        self._jobs: dict[str, EnrichmentJob] = {}

    async def get(self, key: str) -> EnrichmentJob | None:
        return self._jobs.get(key)

    async def set(self, key: str, job: EnrichmentJob) -> None:
        self._jobs[key] = job

    async def delete(self, key: str) -> bool:
        return self._jobs.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._jobs)
