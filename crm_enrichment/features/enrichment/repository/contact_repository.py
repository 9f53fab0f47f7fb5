"""
Persistence helpers for contacts touched by the enrichment job.
"""

from datetime import datetime
from typing import Any

from psycopg import sql

from crm_enrichment.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from crm_enrichment.features.enrichment.domain import Contact
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EnrichmentRepositoryError(DatabaseError):
    """More specific exception for enrichment repository failures."""


class ContactRepository:
    """Contact queries backing the enrichment worker and stats endpoint."""

    CONTACT_SELECT_COLUMNS = """
        id, user_id, email, name, title, headline, linkedin_url, photo_url,
        city, state, country, apollo_id, company_id, enriched_at
    """

    # Columns the worker is allowed to write
    UPDATABLE_COLUMNS = frozenset(
        {
            "name",
            "title",
            "headline",
            "linkedin_url",
            "photo_url",
            "city",
            "state",
            "country",
            "apollo_id",
            "company_id",
            "enriched_at",
        }
    )

    @classmethod
    def _row_to_contact(cls, row: dict) -> Contact:
        return Contact(
            id=str(row["id"]),
            owner_id=str(row["user_id"]),
            email=row["email"],
            name=row.get("name"),
            title=row.get("title"),
            headline=row.get("headline"),
            linkedin_url=row.get("linkedin_url"),
            photo_url=row.get("photo_url"),
            city=row.get("city"),
            state=row.get("state"),
            country=row.get("country"),
            apollo_id=row.get("apollo_id"),
            company_id=str(row["company_id"]) if row.get("company_id") else None,
            enriched_at=row.get("enriched_at"),
        )

    @classmethod
    async def find_contacts_needing_enrichment(
        cls, owner_id: str, force: bool = False, stale_after_days: int = 7
    ) -> list[Contact]:
        """
        Contacts of an owner that are due for enrichment, most recent first.

        Without force, only contacts never enriched or enriched longer than
        stale_after_days ago are returned.
        """
        query = f"""
            SELECT {cls.CONTACT_SELECT_COLUMNS}
            FROM contacts
            WHERE user_id = %s
              AND (
                  %s
                  OR enriched_at IS NULL
                  OR enriched_at < NOW() - make_interval(days => %s)
              )
            ORDER BY last_seen_at DESC NULLS LAST, id
        """
        rows = await fetch_all(query, (owner_id, force, stale_after_days))
        return [cls._row_to_contact(row) for row in rows]

    @classmethod
    async def update_contact(cls, contact_id: str, fields: dict[str, Any]) -> None:
        """Write the given columns onto one contact."""
        unknown = set(fields) - cls.UPDATABLE_COLUMNS
        if unknown:
            raise EnrichmentRepositoryError(
                f"Unsupported contact columns: {sorted(unknown)}",
                operation="update_contact",
                recoverable=False,
            )
        if not fields:
            return

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in fields
        )
        query = sql.SQL("UPDATE contacts SET {}, updated_at = NOW() WHERE id = %s").format(
            assignments
        )
        affected = await execute_query(query, (*fields.values(), contact_id))
        if affected == 0:
            logger.warning("Contact update matched no rows", contact_id=contact_id)

    @classmethod
    async def list_owner_ids_with_contacts(cls) -> list[str]:
        rows = await fetch_all("SELECT DISTINCT user_id FROM contacts ORDER BY user_id")
        return [str(row["user_id"]) for row in rows]

    @classmethod
    async def get_enrichment_stats(cls, owner_id: str) -> dict[str, Any]:
        """Contact/company enrichment coverage for one owner."""
        query = """
            SELECT
                (SELECT COUNT(*) FROM contacts WHERE user_id = %s) AS total_contacts,
                (SELECT COUNT(*) FROM contacts
                  WHERE user_id = %s AND apollo_id IS NOT NULL) AS enriched_contacts,
                (SELECT COUNT(DISTINCT co.id) FROM companies co
                   JOIN contacts c ON c.company_id = co.id
                  WHERE c.user_id = %s) AS total_companies,
                (SELECT COUNT(DISTINCT co.id) FROM companies co
                   JOIN contacts c ON c.company_id = co.id
                  WHERE c.user_id = %s AND co.enriched_at IS NOT NULL) AS enriched_companies,
                (SELECT MAX(enriched_at) FROM contacts WHERE user_id = %s) AS last_enriched_at
        """
        row = await fetch_one(query, (owner_id,) * 5) or {}

        total_contacts = row.get("total_contacts") or 0
        enriched_contacts = row.get("enriched_contacts") or 0
        last_enriched_at: datetime | None = row.get("last_enriched_at")
        return {
            "contacts": {
                "total": total_contacts,
                "enriched": enriched_contacts,
                "not_found": total_contacts - enriched_contacts,
            },
            "companies": {
                "total": row.get("total_companies") or 0,
                "enriched": row.get("enriched_companies") or 0,
            },
            "last_enriched_at": last_enriched_at,
        }
