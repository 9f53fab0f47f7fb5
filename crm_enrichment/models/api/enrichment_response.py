# crm_enrichment/models/api/enrichment_response.py
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class JobProgressResponse(BaseModel):
    """Counters of one enrichment run as seen by pollers."""

    total: int
    enriched: int
    skipped: int
    errors: int
    error_message: str | None = None
    done: bool
    error: str | None = None


class StartEnrichmentResponse(BaseModel):
    """Response for POST /enrichment/contacts-free"""

    message: str
    job_key: str


class EnrichmentConflictResponse(BaseModel):
    """409 body when a run is already in progress."""

    error: str
    progress: JobProgressResponse


class StopEnrichmentResponse(BaseModel):
    """Response for POST /enrichment/stop"""

    message: str
    stopped: bool
    progress: JobProgressResponse | None = None


class EnrichmentProgressResponse(BaseModel):
    """Response for GET /enrichment/progress"""

    contacts_free: JobProgressResponse | None = Field(
        None, description="Null when no run was started or it was already evicted"
    )


class ContactStats(BaseModel):
    total: int
    enriched: int
    not_found: int


class CompanyStats(BaseModel):
    total: int
    enriched: int


class EnrichmentStatsResponse(BaseModel):
    """Response for GET /enrichment/status"""

    contacts: ContactStats
    companies: CompanyStats
    last_enriched_at: datetime | None = None


class CompanyResponse(BaseModel):
    domain: str
    name: str
    id: str | None = None
    industry: str | None = None
    employee_count: int | None = None
    founded_year: int | None = None
    linkedin_url: str | None = None
    website_url: str | None = None
    logo: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    description: str | None = None
    annual_revenue: str | None = None
    total_funding: str | None = None
    last_funding_round: str | None = None
    last_funding_date: date | None = None
    technologies: list[str] = Field(default_factory=list)
    enriched_at: datetime | None = None


class CompanyLookupResponse(BaseModel):
    """Response for GET /enrichment/company/{domain}"""

    company: CompanyResponse
    source: Literal["db", "apollo", "none"]
