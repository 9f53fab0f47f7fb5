"""
Persistence layer for the enrichment feature.
"""

from .company_repository import CompanyRepository
from .contact_repository import ContactRepository, EnrichmentRepositoryError

__all__ = ["CompanyRepository", "ContactRepository", "EnrichmentRepositoryError"]
