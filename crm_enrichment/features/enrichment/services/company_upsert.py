"""
Company upsert service.

Maps a domain to exactly one company row and enriches it at most once
unless forced. Concurrent calls for the same domain inside this process
share one lookup; across processes the ON CONFLICT upsert keeps a single
row (last writer wins on merged fields).
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime
from typing import Any

from crm_enrichment.features.enrichment.domain import (
    Company,
    Organization,
    company_name_from_domain,
    normalize_domain,
)
from crm_enrichment.features.enrichment.providers import EnrichmentProvider, ProviderError
from crm_enrichment.features.enrichment.repository import CompanyRepository
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ReindexHook = Callable[[Company], Awaitable[Any]]


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def organization_to_fields(org: Organization) -> dict[str, Any]:
    """Provider organization -> company columns. Empty values are not written."""
    fields: dict[str, Any] = {
        "name": org.name,
        "industry": org.industry,
        "employee_count": org.estimated_num_employees,
        "founded_year": org.founded_year,
        "linkedin_url": org.linkedin_url,
        "website_url": org.website_url,
        "logo": org.logo_url,
        "city": org.city,
        "state": org.state,
        "country": org.country,
        "description": org.short_description,
        "apollo_id": org.id,
        "annual_revenue": str(org.annual_revenue) if org.annual_revenue else None,
        "total_funding": str(org.total_funding) if org.total_funding else None,
        "last_funding_round": org.latest_funding_stage,
        "last_funding_date": _parse_date(org.latest_funding_round_date),
        "technologies": list(org.keywords) if org.keywords else None,
    }
    return {column: value for column, value in fields.items() if value}


class CompanyUpsertService:
    """Normalize, look up, enrich and upsert companies by domain."""

    def __init__(
        self,
        provider: EnrichmentProvider,
        companies=CompanyRepository,
        reindex: ReindexHook | None = None,
    ):
        self._provider = provider
        self._companies = companies
        self._reindex = reindex
        self._inflight: dict[tuple[str, bool, bool], asyncio.Task] = {}
        self._background_tasks: set[asyncio.Task] = set()

    async def upsert(self, domain: str, *, force: bool = False, use_free: bool = True) -> Company | None:
        """
        Return the company for a domain, enriching it if needed.

        Args:
            domain: Raw domain (any case, optional www.)
            force: Re-enrich even if the company already has enriched_at
            use_free: Use the quota-limited lookup instead of the full one

        Returns:
            Company, or None when the domain is empty

        Raises:
            ProviderError: If the organization lookup fails
        """
        key = normalize_domain(domain)
        if not key:
            return None

        # Shared only between calls with the same domain, force and use_free
        inflight_key = (key, force, use_free)
        task = self._inflight.get(inflight_key)
        if task is None:
            task = asyncio.create_task(self._upsert(key, force=force, use_free=use_free))
            self._inflight[inflight_key] = task
            task.add_done_callback(
                lambda done, inflight_key=inflight_key: self._forget_inflight(inflight_key, done)
            )
        else:
            logger.debug("Joining in-flight company lookup", domain=key)

        # Shielded so one cancelled caller does not cancel the shared lookup
        return await asyncio.shield(task)

    def _forget_inflight(self, key: tuple[str, bool, bool], task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _upsert(self, key: str, *, force: bool, use_free: bool) -> Company:
        existing = await self._companies.find_company_by_domain(key)
        if existing and existing.is_enriched and not force:
            return existing

        lookup = (
            self._provider.enrich_organization_free
            if use_free
            else self._provider.enrich_organization
        )
        org = await lookup(key)

        if org is None or not org.is_usable:
            logger.info("No organization data from provider", domain=key)
            if existing:
                return existing
            company = await self._companies.upsert_company(
                key, {"name": company_name_from_domain(key)}, overwrite=False
            )
            self._schedule_reindex(company)
            return company

        fields = organization_to_fields(org)
        fields["enriched_at"] = datetime.now(UTC)
        company = await self._companies.upsert_company(key, fields)

        logger.info(
            "Company enriched",
            domain=key,
            employees=org.estimated_num_employees,
            industry=org.industry,
        )
        self._schedule_reindex(company)
        return company

    async def lookup(self, domain: str) -> tuple[Company | None, str]:
        """
        Single-company lookup for the API: database first, then full enrich.

        Returns:
            (company, source) where source is "db", "apollo" or "none"
        """
        key = normalize_domain(domain)
        if not key:
            return None, "none"

        existing = await self._companies.find_company_by_domain(key)
        if existing:
            return existing, "db"

        try:
            org = await self._provider.enrich_organization(key)
        except ProviderError as e:
            logger.warning("Company lookup provider failure", domain=key, error=str(e))
            return None, "none"

        if org is None or not org.is_usable:
            return None, "none"

        fields = organization_to_fields(org)
        fields["enriched_at"] = datetime.now(UTC)
        company = await self._companies.upsert_company(key, fields)
        self._schedule_reindex(company)
        return company, "apollo"

    def _schedule_reindex(self, company: Company) -> None:
        if self._reindex is None:
            return
        task = asyncio.create_task(self._run_reindex(company))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _run_reindex(self, company: Company) -> None:
        try:
            await self._reindex(company)
        except Exception as e:
            logger.warning(
                "Company reindex failed", company_id=company.id, domain=company.domain, error=str(e)
            )

    async def drain(self) -> None:
        """Wait for pending reindex tasks (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
