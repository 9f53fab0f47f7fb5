"""
Persistence helpers for companies.

Companies are keyed by normalized domain; upsert_company is the only
write path so concurrent enrichment of one domain converges on one row.
"""

import uuid
from typing import Any

from psycopg import sql

from crm_enrichment.db.helpers import execute_query, fetch_one
from crm_enrichment.features.enrichment.domain import Company, normalize_domain
from crm_enrichment.features.enrichment.repository.contact_repository import (
    EnrichmentRepositoryError,
)
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CompanyRepository:
    """Company lookups and upserts."""

    COMPANY_COLUMNS = (
        "name",
        "industry",
        "employee_count",
        "founded_year",
        "linkedin_url",
        "website_url",
        "logo",
        "city",
        "state",
        "country",
        "description",
        "apollo_id",
        "annual_revenue",
        "total_funding",
        "last_funding_round",
        "last_funding_date",
        "technologies",
        "enriched_at",
    )

    COMPANY_SELECT_COLUMNS = "id, domain, " + ", ".join(COMPANY_COLUMNS)

    @classmethod
    def _row_to_company(cls, row: dict | None) -> Company | None:
        if not row:
            return None

        return Company(
            id=str(row["id"]),
            domain=row["domain"],
            name=row["name"],
            industry=row.get("industry"),
            employee_count=row.get("employee_count"),
            founded_year=row.get("founded_year"),
            linkedin_url=row.get("linkedin_url"),
            website_url=row.get("website_url"),
            logo=row.get("logo"),
            city=row.get("city"),
            state=row.get("state"),
            country=row.get("country"),
            description=row.get("description"),
            apollo_id=row.get("apollo_id"),
            annual_revenue=row.get("annual_revenue"),
            total_funding=row.get("total_funding"),
            last_funding_round=row.get("last_funding_round"),
            last_funding_date=row.get("last_funding_date"),
            technologies=list(row.get("technologies") or []),
            enriched_at=row.get("enriched_at"),
        )

    @classmethod
    async def find_company_by_domain(cls, domain: str) -> Company | None:
        query = f"SELECT {cls.COMPANY_SELECT_COLUMNS} FROM companies WHERE domain = %s"
        row = await fetch_one(query, (normalize_domain(domain),))
        return cls._row_to_company(row)

    @classmethod
    async def upsert_company(
        cls, domain: str, fields: dict[str, Any], *, overwrite: bool = True
    ) -> Company:
        """
        Insert or merge a company by domain.

        With overwrite=False an existing row is returned untouched, which is
        how bare placeholder records are created without clobbering a
        concurrent enriched write.
        """
        key = normalize_domain(domain)
        if not key:
            raise EnrichmentRepositoryError("Cannot upsert company without domain", "upsert_company")
        if "name" not in fields:
            raise EnrichmentRepositoryError("Company upsert requires a name", "upsert_company")

        unknown = set(fields) - set(cls.COMPANY_COLUMNS)
        if unknown:
            raise EnrichmentRepositoryError(
                f"Unsupported company columns: {sorted(unknown)}",
                operation="upsert_company",
                recoverable=False,
            )

        columns = list(fields)
        insert_columns = sql.SQL(", ").join(
            sql.Identifier(column) for column in ("id", "domain", *columns)
        )
        placeholders = sql.SQL(", ").join(sql.Placeholder() for _ in range(len(columns) + 2))

        if overwrite:
            conflict_action = sql.SQL("DO UPDATE SET {}, updated_at = NOW()").format(
                sql.SQL(", ").join(
                    sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(column))
                    for column in columns
                )
            )
        else:
            conflict_action = sql.SQL("DO NOTHING")

        query = sql.SQL(
            "INSERT INTO companies ({columns}, updated_at) VALUES ({values}, NOW()) "
            "ON CONFLICT (domain) {action}"
        ).format(columns=insert_columns, values=placeholders, action=conflict_action)

        await execute_query(query, (str(uuid.uuid4()), key, *fields.values()))

        company = await cls.find_company_by_domain(key)
        if company is None:
            raise EnrichmentRepositoryError(
                f"Company row missing after upsert for {key}", operation="upsert_company"
            )

        logger.debug("Company upserted", domain=key, overwrite=overwrite)
        return company

    @classmethod
    async def store_company_embedding(cls, company_id: str, vector: list[float]) -> None:
        vector_literal = "[" + ",".join(str(value) for value in vector) + "]"
        query = """
            UPDATE companies
            SET embedding = %s::vector,
                embedded_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (vector_literal, company_id))
