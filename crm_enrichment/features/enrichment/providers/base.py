"""
Provider contract for person/organization enrichment.

Every lookup returns None when the provider has no match and raises
ProviderError when the call itself failed. Adapters never retry.
"""

from abc import ABC, abstractmethod

from crm_enrichment.features.enrichment.domain import Organization, Person


class ProviderError(Exception):
    """Transport, quota or payload failure talking to the enrichment provider."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.recoverable = recoverable


class ProviderConfigurationError(ProviderError):
    """Provider cannot be called at all (e.g. missing API key)."""

    def __init__(self, message: str):
        super().__init__(message, error_code="not_configured", recoverable=False)


class EnrichmentProvider(ABC):
    """Abstract adapter over the third-party enrichment service."""

    def ensure_ready(self) -> None:
        """Raise ProviderConfigurationError if the provider cannot be used."""
        return None

    @abstractmethod
    async def match_person_by_email(self, email: str) -> Person | None: ...

    @abstractmethod
    async def match_person_by_name(
        self, first_name: str | None, last_name: str | None, domain: str
    ) -> Person | None:
        """Name + company domain match; either name part may be omitted."""

    @abstractmethod
    async def search_people_by_domain(self, domain: str) -> list[Person]:
        """Credit-free people search at a company; records carry limited fields."""

    @abstractmethod
    async def enrich_organization(self, domain: str) -> Organization | None:
        """Full (paid) organization lookup."""

    @abstractmethod
    async def enrich_organization_free(self, domain: str) -> Organization | None:
        """Quota-limited organization lookup used by batch enrichment."""

    async def close(self) -> None:
        return None
