"""
Domain models for the enrichment feature.

Lightweight dataclasses shared by repositories, services and the API
layer. Provider payloads are parsed into Person/Organization here so the
rest of the feature never touches raw JSON.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class ItemOutcome(str, Enum):
    """Result of processing one contact; each maps to exactly one counter."""

    ENRICHED = "enriched"
    SKIPPED = "skipped"
    ERROR = "errors"


@dataclass(slots=True)
class Contact:
    """Represents a contacts row owned by one user."""

    id: str
    owner_id: str
    email: str
    name: str | None = None
    title: str | None = None
    headline: str | None = None
    linkedin_url: str | None = None
    photo_url: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    apollo_id: str | None = None
    company_id: str | None = None
    enriched_at: datetime | None = None


@dataclass(slots=True)
class Company:
    """Represents a companies row, unique by normalized domain."""

    id: str
    domain: str
    name: str
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
    apollo_id: str | None = None
    annual_revenue: str | None = None
    total_funding: str | None = None
    last_funding_round: str | None = None
    last_funding_date: date | None = None
    technologies: list[str] = field(default_factory=list)
    enriched_at: datetime | None = None

    @property
    def is_enriched(self) -> bool:
        return self.enriched_at is not None


@dataclass(slots=True)
class Person:
    """Person record returned by the provider's people match."""

    id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    title: str | None = None
    headline: str | None = None
    linkedin_url: str | None = None
    photo_url: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Person":
        return cls(**{name: payload.get(name) for name in cls.__slots__})

    @property
    def has_real_data(self) -> bool:
        """A bare id with every profile field empty is not a match."""
        if not self.id:
            return False
        return bool(self.title or self.linkedin_url or self.photo_url or self.headline)


@dataclass(slots=True)
class Organization:
    """Organization record returned by the provider's enrich/search endpoints."""

    id: str | None = None
    name: str | None = None
    primary_domain: str | None = None
    website_url: str | None = None
    linkedin_url: str | None = None
    estimated_num_employees: int | None = None
    industry: str | None = None
    short_description: str | None = None
    founded_year: int | None = None
    logo_url: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    annual_revenue: float | None = None
    total_funding: float | None = None
    latest_funding_stage: str | None = None
    latest_funding_round_date: str | None = None
    keywords: list[str] | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Organization":
        return cls(**{name: payload.get(name) for name in cls.__slots__})

    @property
    def is_usable(self) -> bool:
        return bool(self.name)


@dataclass(slots=True)
class EnrichmentProgress:
    """Point-in-time copy of a job's counters."""

    total: int = 0
    enriched: int = 0
    skipped: int = 0
    errors: int = 0
    error_message: str | None = None

    @property
    def processed(self) -> int:
        return self.enriched + self.skipped + self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "enriched": self.enriched,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_message": self.error_message,
        }
