# crm_enrichment/models/api/enrichment_request.py
from pydantic import BaseModel, Field


class StartEnrichmentRequest(BaseModel):
    """Request body for POST /enrichment/contacts-free"""

    force: bool = Field(False, description="Re-enrich contacts even if recently enriched")
