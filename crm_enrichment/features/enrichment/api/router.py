"""
Enrichment routes.

Start/stop/progress for the per-user background enrichment run, plus
coverage statistics and single-company lookup by domain.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from crm_enrichment.auth.verify import auth_dependency
from crm_enrichment.features.enrichment.domain import company_name_from_domain, normalize_domain
from crm_enrichment.features.enrichment.repository import ContactRepository
from crm_enrichment.features.enrichment.services import (
    CompanyUpsertService,
    EnrichmentJobCoordinator,
    get_company_upsert_service,
    get_enrichment_coordinator,
)
from crm_enrichment.infrastructure.observability.logging import get_logger
from crm_enrichment.models.api.enrichment_request import StartEnrichmentRequest
from crm_enrichment.models.api.enrichment_response import (
    CompanyLookupResponse,
    CompanyResponse,
    EnrichmentConflictResponse,
    EnrichmentProgressResponse,
    EnrichmentStatsResponse,
    StartEnrichmentResponse,
    StopEnrichmentResponse,
)

router = APIRouter(prefix="/enrichment", tags=["enrichment"])
logger = get_logger(__name__)


def get_contact_repository():
    return ContactRepository


def _owner_id(claims: dict) -> str:
    user_id = claims.get("sub")
    if not user_id:
        logger.error("No user ID in JWT claims")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token: missing user ID"
        )
    return user_id


@router.get("/status", response_model=EnrichmentStatsResponse)
async def get_status(
    claims: dict = Depends(auth_dependency),
    contacts=Depends(get_contact_repository),
):
    """Enrichment coverage for the authenticated user."""
    user_id = _owner_id(claims)
    try:
        stats = await contacts.get_enrichment_stats(user_id)
    except Exception as e:
        logger.error("Enrichment status error", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch enrichment status",
        ) from e
    return EnrichmentStatsResponse(**stats)


@router.post(
    "/contacts-free",
    response_model=StartEnrichmentResponse,
    responses={409: {"model": EnrichmentConflictResponse}},
)
async def start_contacts_enrichment(
    request: StartEnrichmentRequest | None = None,
    claims: dict = Depends(auth_dependency),
    coordinator: EnrichmentJobCoordinator = Depends(get_enrichment_coordinator),
):
    """
    Start the free contacts enrichment run in the background.

    Raises:
        409: A run is already in progress for this user
    """
    user_id = _owner_id(claims)
    force = bool(request and request.force)

    result = await coordinator.start(user_id, force=force)
    if not result.started:
        body = EnrichmentConflictResponse(
            error="Free enrichment already in progress", progress=result.progress
        )
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump())

    return StartEnrichmentResponse(message="Free enrichment started (0 credits)", job_key=result.job_key)


@router.post("/stop", response_model=StopEnrichmentResponse)
async def stop_contacts_enrichment(
    claims: dict = Depends(auth_dependency),
    coordinator: EnrichmentJobCoordinator = Depends(get_enrichment_coordinator),
):
    """Stop the running enrichment; progress is frozen at the last counters."""
    user_id = _owner_id(claims)
    result = await coordinator.stop(user_id)
    message = "Enrichment stopped" if result.stopped else "No enrichment running"
    return StopEnrichmentResponse(message=message, stopped=result.stopped, progress=result.progress)


@router.get("/progress", response_model=EnrichmentProgressResponse)
async def get_progress(
    claims: dict = Depends(auth_dependency),
    coordinator: EnrichmentJobCoordinator = Depends(get_enrichment_coordinator),
):
    """Poll the current run; contacts_free is null when nothing is registered."""
    user_id = _owner_id(claims)
    return EnrichmentProgressResponse(contacts_free=await coordinator.progress(user_id))


@router.get("/company/{domain}", response_model=CompanyLookupResponse)
async def lookup_company(
    domain: str,
    claims: dict = Depends(auth_dependency),
    company_service: CompanyUpsertService = Depends(get_company_upsert_service),
):
    """Look up a company by domain, enriching and saving it on first sight."""
    _owner_id(claims)
    key = normalize_domain(domain)
    if not key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid domain")

    try:
        company, source = await company_service.lookup(key)
    except Exception as e:
        logger.error("Company lookup error", domain=key, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to look up company",
        ) from e

    if company is None:
        # Unsaved stub so the UI never has to show a raw domain
        stub = CompanyResponse(domain=key, name=company_name_from_domain(key) or key)
        return CompanyLookupResponse(company=stub, source="none")

    return CompanyLookupResponse(company=CompanyResponse(**asdict(company)), source=source)
