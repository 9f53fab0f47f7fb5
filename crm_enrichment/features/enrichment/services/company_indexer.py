"""
Company search-index refresh.

Embeds a short text description of a company with OpenAI and stores the
vector so semantic company search picks up freshly enriched data. Invoked
fire-and-forget after every company upsert.
"""

import openai
from openai import AsyncOpenAI

from crm_enrichment.config import settings
from crm_enrichment.features.enrichment.domain import Company
from crm_enrichment.features.enrichment.repository import CompanyRepository
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CompanyIndexerError(Exception):
    """Raised when an embedding could not be produced or stored."""

    def __init__(self, message: str, company_id: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.company_id = company_id
        self.recoverable = recoverable


def build_embedding_text(company: Company) -> str:
    location = ", ".join(part for part in (company.city, company.country) if part)
    parts = [company.name, company.domain, company.industry, company.description, location]
    return " | ".join(part for part in parts if part)


class CompanyIndexer:
    """Refreshes one company's embedding."""

    def __init__(self, client: AsyncOpenAI | None = None, companies=CompanyRepository):
        self._client = client
        self._companies = companies

    def _get_client(self) -> AsyncOpenAI | None:
        if self._client is None and settings.OPENAI_API_KEY:
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=30)
        return self._client

    async def reindex(self, company: Company) -> bool:
        """
        Embed and store the company vector.

        Returns:
            bool: True if a vector was stored, False if the company was skipped

        Raises:
            CompanyIndexerError: If the embedding request fails
        """
        if not company.description:
            logger.debug("Company has no description, skipping reindex", domain=company.domain)
            return False

        client = self._get_client()
        if client is None:
            logger.debug("OPENAI_API_KEY not configured, skipping reindex", domain=company.domain)
            return False

        try:
            response = await client.embeddings.create(
                model=settings.OPENAI_EMBEDDING_MODEL,
                input=build_embedding_text(company),
            )
        except openai.OpenAIError as e:
            raise CompanyIndexerError(
                f"Embedding request failed: {e}", company_id=company.id
            ) from e

        await self._companies.store_company_embedding(company.id, response.data[0].embedding)
        logger.info("Company reindexed", company_id=company.id, domain=company.domain)
        return True
