"""
Progress handle shared by a running worker and the job's pollers.
"""

from crm_enrichment.features.enrichment.domain import EnrichmentProgress, ItemOutcome
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ProgressHandle:
    """
    Monotonic counters for one run.

    The worker writes through set_total/record; pollers read snapshot().
    Once frozen (job stopped or finalized) every write is discarded, so a
    cancelled run's worker can never move counters after the stop returns.
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._progress = EnrichmentProgress()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def set_total(self, total: int) -> None:
        if self._frozen:
            return
        self._progress.total = max(0, total)

    def record(self, outcome: ItemOutcome) -> bool:
        """Count one processed contact. Returns False if the write was discarded."""
        if self._frozen:
            logger.debug("Discarding progress write on frozen handle", run_id=self.run_id)
            return False

        progress = self._progress
        if progress.processed >= progress.total:
            logger.warning(
                "Progress write beyond total ignored", run_id=self.run_id, total=progress.total
            )
            return False

        if outcome is ItemOutcome.ENRICHED:
            progress.enriched += 1
        elif outcome is ItemOutcome.SKIPPED:
            progress.skipped += 1
        else:
            progress.errors += 1
        return True

    def freeze(self, error_message: str | None = None) -> EnrichmentProgress:
        """Make the current counters final and return them."""
        if not self._frozen:
            if error_message:
                self._progress.error_message = error_message
            self._frozen = True
        return self.snapshot()

    def snapshot(self) -> EnrichmentProgress:
        progress = self._progress
        return EnrichmentProgress(
            total=progress.total,
            enriched=progress.enriched,
            skipped=progress.skipped,
            errors=progress.errors,
            error_message=progress.error_message,
        )
