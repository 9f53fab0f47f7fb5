import asyncio
import uuid
from dataclasses import fields as dataclass_fields
from datetime import UTC, datetime, timedelta

import pytest

from crm_enrichment.auth.verify import auth_dependency
from crm_enrichment.features.enrichment.domain import (
    Company,
    Contact,
    Organization,
    Person,
    normalize_domain,
)
from crm_enrichment.features.enrichment.providers import EnrichmentProvider, ProviderError
from crm_enrichment.features.enrichment.services import (
    CompanyUpsertService,
    EnrichmentJobCoordinator,
    EnrichmentWorker,
)

OWNER_ID = "user-123"


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": OWNER_ID}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class FakeContactRepository:
    """In-memory stand-in for ContactRepository (instance instead of classmethods)."""

    def __init__(self, contacts: list[Contact] | None = None):
        self.contacts: dict[str, Contact] = {c.id: c for c in contacts or []}
        self.updates: list[tuple[str, dict]] = []
        self.find_calls: list[dict] = []
        self.fail_find: Exception | None = None
        self.stats: dict | None = None

    def add(self, contact: Contact) -> Contact:
        self.contacts[contact.id] = contact
        return contact

    async def find_contacts_needing_enrichment(
        self, owner_id: str, force: bool = False, stale_after_days: int = 7
    ) -> list[Contact]:
        self.find_calls.append(
            {"owner_id": owner_id, "force": force, "stale_after_days": stale_after_days}
        )
        if self.fail_find:
            raise self.fail_find
        cutoff = datetime.now(UTC) - timedelta(days=stale_after_days)
        return [
            c
            for c in self.contacts.values()
            if c.owner_id == owner_id
            and (force or c.enriched_at is None or c.enriched_at < cutoff)
        ]

    async def update_contact(self, contact_id: str, fields: dict) -> None:
        self.updates.append((contact_id, dict(fields)))
        contact = self.contacts[contact_id]
        for column, value in fields.items():
            setattr(contact, column, value)

    async def list_owner_ids_with_contacts(self) -> list[str]:
        return sorted({c.owner_id for c in self.contacts.values()})

    async def get_enrichment_stats(self, owner_id: str) -> dict:
        if self.stats is not None:
            return self.stats
        owned = [c for c in self.contacts.values() if c.owner_id == owner_id]
        enriched = [c for c in owned if c.apollo_id]
        return {
            "contacts": {
                "total": len(owned),
                "enriched": len(enriched),
                "not_found": len(owned) - len(enriched),
            },
            "companies": {"total": 0, "enriched": 0},
            "last_enriched_at": max((c.enriched_at for c in enriched), default=None),
        }


class FakeCompanyRepository:
    """In-memory companies table keyed by normalized domain."""

    _columns = {f.name for f in dataclass_fields(Company)} - {"id", "domain"}

    def __init__(self):
        self.companies: dict[str, Company] = {}
        self.upserts: list[tuple[str, dict, bool]] = []
        self.embeddings: dict[str, list[float]] = {}

    def seed(self, domain: str, **fields) -> Company:
        key = normalize_domain(domain)
        company = Company(id=str(uuid.uuid4()), domain=key, **fields)
        self.companies[key] = company
        return company

    async def find_company_by_domain(self, domain: str) -> Company | None:
        return self.companies.get(normalize_domain(domain))

    async def upsert_company(self, domain: str, fields: dict, *, overwrite: bool = True) -> Company:
        key = normalize_domain(domain)
        assert "name" in fields
        assert set(fields) <= self._columns
        self.upserts.append((key, dict(fields), overwrite))

        existing = self.companies.get(key)
        if existing is None:
            return self.seed(key, **fields)
        if overwrite:
            for column, value in fields.items():
                setattr(existing, column, value)
        return existing

    async def store_company_embedding(self, company_id: str, vector: list[float]) -> None:
        self.embeddings[company_id] = vector


class FakeProvider(EnrichmentProvider):
    """
    Scriptable provider.

    Lookups return what was registered, raise what was registered, and
    optionally block on a gate so tests can act while a run is in flight.
    """

    def __init__(self):
        self.people_by_email: dict[str, Person] = {}
        self.people_by_name: dict[tuple, Person] = {}
        self.people_by_domain: dict[str, list[Person]] = {}
        self.people_search_errors: dict[str, Exception] = {}
        self.organizations: dict[str, Organization] = {}
        self.email_errors: dict[str, Exception] = {}
        self.organization_errors: dict[str, Exception] = {}
        self.calls: list[tuple] = []
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()
        self.ready_error: Exception | None = None
        self.closed = False

    def ensure_ready(self) -> None:
        if self.ready_error:
            raise self.ready_error

    async def _maybe_block(self) -> None:
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()

    async def match_person_by_email(self, email: str) -> Person | None:
        self.calls.append(("person_email", email))
        await self._maybe_block()
        if email in self.email_errors:
            raise self.email_errors[email]
        return self.people_by_email.get(email)

    async def match_person_by_name(self, first_name, last_name, domain) -> Person | None:
        self.calls.append(("person_name", first_name, last_name, domain))
        return self.people_by_name.get((first_name, last_name, domain))

    async def search_people_by_domain(self, domain: str) -> list[Person]:
        self.calls.append(("people_search", domain))
        if domain in self.people_search_errors:
            raise self.people_search_errors[domain]
        return self.people_by_domain.get(domain, [])

    async def enrich_organization(self, domain: str) -> Organization | None:
        self.calls.append(("organization", domain))
        if domain in self.organization_errors:
            raise self.organization_errors[domain]
        return self.organizations.get(domain)

    async def enrich_organization_free(self, domain: str) -> Organization | None:
        self.calls.append(("organization_free", domain))
        await asyncio.sleep(0)
        if domain in self.organization_errors:
            raise self.organization_errors[domain]
        return self.organizations.get(domain)

    async def close(self) -> None:
        self.closed = True

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


def make_contact(contact_id: str, email: str, owner_id: str = OWNER_ID, **fields) -> Contact:
    return Contact(id=contact_id, owner_id=owner_id, email=email, **fields)


def make_person(**fields) -> Person:
    defaults = {"id": "p-" + uuid.uuid4().hex[:8], "title": "Engineer"}
    defaults.update(fields)
    return Person(**defaults)


@pytest.fixture
def contacts_repo():
    return FakeContactRepository()


@pytest.fixture
def companies_repo():
    return FakeCompanyRepository()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def company_service(provider, companies_repo):
    return CompanyUpsertService(provider, companies=companies_repo)


@pytest.fixture
def enrichment_worker(provider, company_service, contacts_repo):
    return EnrichmentWorker(
        provider, company_service, contacts=contacts_repo, request_delay=0, name_fallback=True
    )


@pytest.fixture
def coordinator(enrichment_worker):
    return EnrichmentJobCoordinator(enrichment_worker, retention_seconds=0.05)


@pytest.fixture
def provider_error():
    return ProviderError("Apollo error (HTTP 500)", status_code=500, error_code="server_error")
