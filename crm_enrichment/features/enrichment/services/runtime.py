"""
Process-wide wiring of the enrichment services.

Objects are built lazily on first use so importing the package never
opens HTTP clients; the application lifespan calls close() on shutdown.
"""

from crm_enrichment.features.enrichment.providers import ApolloClient, EnrichmentProvider
from crm_enrichment.features.enrichment.services.company_indexer import CompanyIndexer
from crm_enrichment.features.enrichment.services.company_upsert import CompanyUpsertService
from crm_enrichment.features.enrichment.services.coordinator import EnrichmentJobCoordinator
from crm_enrichment.features.enrichment.services.worker import EnrichmentWorker
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EnrichmentRuntime:
    def __init__(self):
        self._provider: EnrichmentProvider | None = None
        self._company_service: CompanyUpsertService | None = None
        self._coordinator: EnrichmentJobCoordinator | None = None

    @property
    def provider(self) -> EnrichmentProvider:
        if self._provider is None:
            self._provider = ApolloClient()
        return self._provider

    @property
    def company_service(self) -> CompanyUpsertService:
        if self._company_service is None:
            self._company_service = CompanyUpsertService(
                self.provider, reindex=CompanyIndexer().reindex
            )
        return self._company_service

    @property
    def coordinator(self) -> EnrichmentJobCoordinator:
        if self._coordinator is None:
            worker = EnrichmentWorker(self.provider, self.company_service)
            self._coordinator = EnrichmentJobCoordinator(worker)
        return self._coordinator

    async def close(self) -> None:
        if self._coordinator is not None:
            await self._coordinator.shutdown()
        if self._company_service is not None:
            await self._company_service.drain()
        if self._provider is not None:
            await self._provider.close()
        self._provider = self._company_service = self._coordinator = None
        logger.info("Enrichment runtime closed")


enrichment_runtime = EnrichmentRuntime()


def get_enrichment_coordinator() -> EnrichmentJobCoordinator:
    return enrichment_runtime.coordinator


def get_company_upsert_service() -> CompanyUpsertService:
    return enrichment_runtime.company_service
