"""
Domain subpackage for the enrichment feature.
"""

from .domains import (
    company_name_from_domain,
    email_domain,
    is_business_domain,
    is_generic_domain,
    is_obfuscated_name,
    name_from_email,
    normalize_domain,
    split_name,
)
from .models import (
    Company,
    Contact,
    EnrichmentProgress,
    ItemOutcome,
    JobStatus,
    Organization,
    Person,
)

__all__ = [
    "Company",
    "Contact",
    "EnrichmentProgress",
    "ItemOutcome",
    "JobStatus",
    "Organization",
    "Person",
    "company_name_from_domain",
    "email_domain",
    "is_business_domain",
    "is_generic_domain",
    "is_obfuscated_name",
    "name_from_email",
    "normalize_domain",
    "split_name",
]
