"""
Repository tests with the db helpers patched out.
"""

from unittest.mock import AsyncMock

import pytest

from crm_enrichment.features.enrichment.repository import (
    CompanyRepository,
    ContactRepository,
    EnrichmentRepositoryError,
)

CONTACT_MODULE = "crm_enrichment.features.enrichment.repository.contact_repository"
COMPANY_MODULE = "crm_enrichment.features.enrichment.repository.company_repository"


@pytest.mark.asyncio
async def test_find_contacts_passes_force_and_window(monkeypatch):
    fetch_all_mock = AsyncMock(
        return_value=[
            {"id": 1, "user_id": "u1", "email": "a@acme.com", "company_id": None},
        ]
    )
    monkeypatch.setattr(f"{CONTACT_MODULE}.fetch_all", fetch_all_mock)

    contacts = await ContactRepository.find_contacts_needing_enrichment(
        "u1", force=True, stale_after_days=7
    )

    assert [c.id for c in contacts] == ["1"]
    assert contacts[0].owner_id == "u1"
    query, params = fetch_all_mock.await_args.args
    assert "ORDER BY last_seen_at DESC" in query
    assert params == ("u1", True, 7)


@pytest.mark.asyncio
async def test_update_contact_rejects_unknown_columns(monkeypatch):
    execute_mock = AsyncMock(return_value=1)
    monkeypatch.setattr(f"{CONTACT_MODULE}.execute_query", execute_mock)

    with pytest.raises(EnrichmentRepositoryError):
        await ContactRepository.update_contact("c1", {"email": "x@y.com"})

    execute_mock.assert_not_called()


@pytest.mark.asyncio
async def test_update_contact_writes_given_columns(monkeypatch):
    execute_mock = AsyncMock(return_value=1)
    monkeypatch.setattr(f"{CONTACT_MODULE}.execute_query", execute_mock)

    await ContactRepository.update_contact("c1", {"title": "CTO", "company_id": "co-1"})

    _, params = execute_mock.await_args.args
    assert params == ("CTO", "co-1", "c1")


@pytest.mark.asyncio
async def test_stats_derive_not_found(monkeypatch):
    monkeypatch.setattr(
        f"{CONTACT_MODULE}.fetch_one",
        AsyncMock(
            return_value={
                "total_contacts": 10,
                "enriched_contacts": 4,
                "total_companies": 3,
                "enriched_companies": 2,
                "last_enriched_at": None,
            }
        ),
    )

    stats = await ContactRepository.get_enrichment_stats("u1")

    assert stats["contacts"] == {"total": 10, "enriched": 4, "not_found": 6}
    assert stats["companies"] == {"total": 3, "enriched": 2}


@pytest.mark.asyncio
async def test_upsert_company_requires_name(monkeypatch):
    execute_mock = AsyncMock()
    monkeypatch.setattr(f"{COMPANY_MODULE}.execute_query", execute_mock)

    with pytest.raises(EnrichmentRepositoryError):
        await CompanyRepository.upsert_company("acme.com", {"industry": "Software"})

    execute_mock.assert_not_called()


@pytest.mark.asyncio
async def test_upsert_company_normalizes_domain_and_reads_back(monkeypatch):
    execute_mock = AsyncMock(return_value=1)
    fetch_one_mock = AsyncMock(
        return_value={"id": "co-1", "domain": "acme.com", "name": "Acme", "technologies": None}
    )
    monkeypatch.setattr(f"{COMPANY_MODULE}.execute_query", execute_mock)
    monkeypatch.setattr(f"{COMPANY_MODULE}.fetch_one", fetch_one_mock)

    company = await CompanyRepository.upsert_company("WWW.Acme.com", {"name": "Acme"})

    _, params = execute_mock.await_args.args
    assert params[1:] == ("acme.com", "Acme")
    assert company.domain == "acme.com"
    assert company.technologies == []
    assert fetch_one_mock.await_args.args[1] == ("acme.com",)
