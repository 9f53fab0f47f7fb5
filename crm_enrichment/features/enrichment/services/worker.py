"""
Enrichment worker: drives one job run to completion.

Per contact: person lookup by email (with name-based and free-search
fallbacks for business domains), company resolution for business
domains, one contact update, one counter. Per-item failures become
counters; only failures of the run itself (eligibility query, provider
misconfiguration) propagate.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from crm_enrichment.config import settings
from crm_enrichment.features.enrichment.domain import (
    Company,
    Contact,
    EnrichmentProgress,
    ItemOutcome,
    Person,
    email_domain,
    is_business_domain,
    is_obfuscated_name,
    name_from_email,
    split_name,
)
from crm_enrichment.features.enrichment.providers import EnrichmentProvider, ProviderError
from crm_enrichment.features.enrichment.repository import ContactRepository
from crm_enrichment.features.enrichment.services.cancellation import CancellationToken
from crm_enrichment.features.enrichment.services.company_upsert import CompanyUpsertService
from crm_enrichment.features.enrichment.services.progress import ProgressHandle
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_PERSON_FIELDS = ("title", "headline", "linkedin_url", "photo_url", "city", "state", "country")


def person_to_contact_fields(person: Person, existing_name: str | None) -> dict[str, Any]:
    """
    Provider person -> contact columns.

    An obfuscated provider name only replaces a missing contact name.
    """
    fields: dict[str, Any] = {"apollo_id": person.id}
    if person.name and (not is_obfuscated_name(person.name) or not existing_name):
        fields["name"] = person.name
    for column in _PERSON_FIELDS:
        value = getattr(person, column)
        if value:
            fields[column] = value
    return fields


def find_search_match(people: list[Person], search_name: str) -> Person | None:
    """
    Pick a free-search record for a name.

    Full names must match first and last exactly (case-insensitive); a
    single name matches either the first or the last name. Records
    without a title carry nothing worth writing and never match.
    """
    first, last = split_name(search_name.lower())
    if not first:
        return None

    for candidate in people:
        if not candidate.title:
            continue
        candidate_first = (candidate.first_name or "").lower()
        candidate_last = (candidate.last_name or "").lower()
        if last:
            if candidate_first == first and candidate_last == last:
                return candidate
        elif first in (candidate_first, candidate_last):
            return candidate
    return None


@dataclass
class _RunCache:
    """Per-run lookups shared by every contact on the same domain."""

    companies: dict[str, Company | None] = field(default_factory=dict)
    company_failures: dict[str, ProviderError] = field(default_factory=dict)
    people: dict[str, list[Person]] = field(default_factory=dict)


class EnrichmentWorker:
    """Iterates an owner's eligible contacts and enriches them one by one."""

    def __init__(
        self,
        provider: EnrichmentProvider,
        company_service: CompanyUpsertService,
        contacts=ContactRepository,
        *,
        request_delay: float | None = None,
        name_fallback: bool | None = None,
        stale_after_days: int | None = None,
    ):
        self._provider = provider
        self._company_service = company_service
        self._contacts = contacts
        self._request_delay = (
            settings.ENRICHMENT_REQUEST_DELAY_SECONDS if request_delay is None else request_delay
        )
        self._name_fallback = (
            settings.ENRICHMENT_NAME_FALLBACK_ENABLED if name_fallback is None else name_fallback
        )
        self._stale_after_days = (
            settings.ENRICHMENT_CACHE_DAYS if stale_after_days is None else stale_after_days
        )

    async def run(
        self,
        owner_id: str,
        progress: ProgressHandle,
        token: CancellationToken,
        *,
        force: bool = False,
    ) -> EnrichmentProgress:
        """
        Enrich every eligible contact of an owner.

        total is fixed to the eligible count up front; a cancelled run
        leaves the unprocessed remainder uncounted.

        Raises:
            ProviderConfigurationError: If the provider cannot be used
            DatabaseError: If the eligible contacts cannot be loaded
        """
        self._provider.ensure_ready()

        contacts = await self._contacts.find_contacts_needing_enrichment(
            owner_id, force=force, stale_after_days=self._stale_after_days
        )
        progress.set_total(len(contacts))

        logger.info(
            "Enrichment run started", owner_id=owner_id, force=force, eligible=len(contacts)
        )

        cache = _RunCache()

        for index, contact in enumerate(contacts):
            if token.cancelled:
                logger.info(
                    "Enrichment run cancelled",
                    owner_id=owner_id,
                    processed=index,
                    remaining=len(contacts) - index,
                )
                break

            outcome = await self._enrich_contact(contact, cache)
            progress.record(outcome)

            if index + 1 < len(contacts):
                await self._pause()

        final = progress.snapshot()
        logger.info(
            "Enrichment run finished",
            owner_id=owner_id,
            total=final.total,
            enriched=final.enriched,
            skipped=final.skipped,
            errors=final.errors,
        )
        return final

    async def _pause(self) -> None:
        if self._request_delay > 0:
            await asyncio.sleep(self._request_delay)

    async def _enrich_contact(self, contact: Contact, cache: _RunCache) -> ItemOutcome:
        domain = email_domain(contact.email)
        business = is_business_domain(domain)
        company_failed = False

        try:
            person = await self._match_person(contact, domain if business else None, cache)

            company = None
            if business:
                try:
                    company = await self._resolve_company(domain, cache)
                except ProviderError as e:
                    # The person match is still written
                    company_failed = True
                    logger.warning(
                        "Company lookup failed for contact",
                        contact_id=contact.id,
                        domain=domain,
                        error=str(e),
                        status_code=e.status_code,
                    )

            fields: dict[str, Any] = {}
            if person:
                fields.update(person_to_contact_fields(person, contact.name))
                fields["enriched_at"] = datetime.now(UTC)
            if company and company.id != contact.company_id:
                fields["company_id"] = company.id

            if fields:
                await self._contacts.update_contact(contact.id, fields)

        except ProviderError as e:
            logger.warning(
                "Provider failure enriching contact",
                contact_id=contact.id,
                domain=domain,
                error=str(e),
                status_code=e.status_code,
            )
            return ItemOutcome.ERROR
        except Exception as e:
            logger.error(
                "Unexpected error enriching contact",
                contact_id=contact.id,
                domain=domain,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ItemOutcome.ERROR

        if person:
            logger.info(
                "Contact matched",
                contact_id=contact.id,
                title=person.title,
                linkedin=bool(person.linkedin_url),
            )
            return ItemOutcome.ENRICHED

        if company_failed:
            return ItemOutcome.ERROR

        logger.info("No provider match for contact", contact_id=contact.id, domain=domain)
        return ItemOutcome.SKIPPED

    async def _match_person(
        self, contact: Contact, business_domain: str | None, cache: _RunCache
    ) -> Person | None:
        person = await self._provider.match_person_by_email(contact.email)
        if person or not business_domain or not self._name_fallback:
            return person

        # A previously stored masked name is worse than the email local part
        stored_name = (contact.name or "").strip()
        if is_obfuscated_name(stored_name):
            stored_name = ""
        search_name = stored_name or name_from_email(contact.email)
        if len(search_name) < 2:
            return None

        first_name, last_name = split_name(search_name)
        attempts: list[tuple[str | None, str | None]] = []
        if first_name and last_name:
            attempts.append((first_name, last_name))
        if first_name:
            attempts.append((first_name, None))
        if first_name and not last_name:
            # Single names are often surnames
            attempts.append((None, first_name))

        for attempt_first, attempt_last in attempts:
            await self._pause()
            person = await self._provider.match_person_by_name(
                attempt_first, attempt_last, business_domain
            )
            if person:
                return person

        people = await self._search_people(business_domain, cache)
        match = find_search_match(people, search_name)
        if match is None:
            return None

        logger.info("Contact matched by free search", contact_id=contact.id, title=match.title)
        # Title-only enrichment; search records carry no reliable name
        return Person(
            id=match.id,
            title=match.title,
            linkedin_url=match.linkedin_url,
            photo_url=match.photo_url,
        )

    async def _search_people(self, domain: str, cache: _RunCache) -> list[Person]:
        if domain not in cache.people:
            try:
                cache.people[domain] = await self._provider.search_people_by_domain(domain)
            except ProviderError as e:
                logger.warning("People search failed", domain=domain, error=str(e))
                cache.people[domain] = []
        return cache.people[domain]

    async def _resolve_company(self, domain: str, cache: _RunCache) -> Company | None:
        if domain in cache.company_failures:
            raise cache.company_failures[domain]
        if domain not in cache.companies:
            try:
                cache.companies[domain] = await self._company_service.upsert(domain)
            except ProviderError as e:
                cache.company_failures[domain] = e
                raise
        return cache.companies[domain]
