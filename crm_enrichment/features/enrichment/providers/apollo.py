"""
Apollo.io adapter implementing the EnrichmentProvider contract.

Low-level HTTP client: one request per call, no retries. Status codes are
mapped onto the None-vs-ProviderError contract so callers only deal with
domain objects.
"""

from typing import Any

import httpx

from crm_enrichment.config import settings
from crm_enrichment.features.enrichment.domain import Organization, Person, normalize_domain
from crm_enrichment.features.enrichment.providers.base import (
    EnrichmentProvider,
    ProviderConfigurationError,
    ProviderError,
)
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Statuses that mean "nothing found for this input" rather than a failure
NO_MATCH_STATUS_CODES = {404, 422}

PEOPLE_SEARCH_PAGE_SIZE = 100


class ApolloClient(EnrichmentProvider):
    """
    Apollo people/organization lookups over httpx.

    A client may be injected (tests pass one built on httpx.MockTransport);
    otherwise a pooled AsyncClient is created from settings.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.APOLLO_API_KEY
        self._base_url = (base_url or settings.APOLLO_BASE_URL).rstrip("/")
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(settings.APOLLO_TIMEOUT_SECONDS)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def ensure_ready(self) -> None:
        if not self._api_key:
            raise ProviderConfigurationError("APOLLO_API_KEY is not configured")

    def _headers(self) -> dict:
        self.ensure_ready()
        return {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "x-api-key": self._api_key,
        }

    async def _request(
        self, method: str, path: str, operation: str, **kwargs
    ) -> dict[str, Any] | None:
        """
        Execute one request and decode the JSON body.

        Returns:
            Parsed body, or None when the status means "no match"

        Raises:
            ProviderError: transport failure, quota, auth or malformed payload
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Apollo {operation} timed out", error=str(e))
            raise ProviderError(f"Apollo {operation} timed out", error_code="timeout") from e
        except httpx.RequestError as e:
            logger.warning(f"Apollo {operation} transport error", error=str(e))
            raise ProviderError(f"Apollo {operation} request failed: {e}") from e

        if response.status_code in NO_MATCH_STATUS_CODES:
            logger.debug(f"Apollo {operation} no match", status_code=response.status_code)
            return None

        if not response.is_success:
            raise self._error_from_response(response, operation)

        try:
            data = response.json() if response.text else {}
        except ValueError as e:
            logger.error(f"Failed to parse Apollo {operation} response", error=str(e))
            raise ProviderError(f"Invalid Apollo {operation} response: {e}") from e

        if not isinstance(data, dict):
            raise ProviderError(f"Invalid Apollo {operation} response: expected an object")
        return data

    def _error_from_response(self, response: httpx.Response, operation: str) -> ProviderError:
        status_code = response.status_code
        error_mappings = {
            401: ("unauthorized", "Apollo rejected the API key", False),
            403: ("forbidden", "Apollo plan does not allow this endpoint", False),
            429: ("rate_limited", "Apollo rate limit or credit quota exceeded", True),
        }
        error_code, message, recoverable = error_mappings.get(
            status_code, ("server_error", f"Apollo error (HTTP {status_code})", True)
        )

        logger.warning(
            f"Apollo {operation} failed",
            status_code=status_code,
            error_code=error_code,
            response_text=response.text[:200] if response.text else "",
        )
        return ProviderError(
            message, status_code=status_code, error_code=error_code, recoverable=recoverable
        )

    @staticmethod
    def _parse_person(data: dict[str, Any] | None) -> Person | None:
        payload = (data or {}).get("person")
        if not isinstance(payload, dict):
            return None
        person = Person.from_payload(payload)
        # Placeholder ids with every profile field empty are misses
        return person if person.has_real_data else None

    async def match_person_by_email(self, email: str) -> Person | None:
        data = await self._request(
            "POST", "/people/match", "people_match", json={"email": email}
        )
        return self._parse_person(data)

    async def match_person_by_name(
        self, first_name: str | None, last_name: str | None, domain: str
    ) -> Person | None:
        body: dict[str, Any] = {"domain": domain}
        if first_name:
            body["first_name"] = first_name
        if last_name:
            body["last_name"] = last_name
        data = await self._request("POST", "/people/match", "people_match_name", json=body)
        return self._parse_person(data)

    async def search_people_by_domain(self, domain: str) -> list[Person]:
        data = await self._request(
            "POST",
            "/mixed_people/api_search",
            "people_search",
            json={
                "q_organization_domains_list": [normalize_domain(domain)],
                "per_page": PEOPLE_SEARCH_PAGE_SIZE,
            },
        )
        return [
            Person.from_payload(payload)
            for payload in (data or {}).get("people") or []
            if isinstance(payload, dict)
        ]

    async def enrich_organization(self, domain: str) -> Organization | None:
        data = await self._request(
            "GET",
            "/organizations/enrich",
            "organization_enrich",
            params={"domain": normalize_domain(domain)},
        )
        payload = (data or {}).get("organization")
        if not isinstance(payload, dict):
            return None
        return Organization.from_payload(payload)

    async def enrich_organization_free(self, domain: str) -> Organization | None:
        normalized = normalize_domain(domain)
        data = await self._request(
            "POST",
            "/mixed_companies/search",
            "organization_search",
            json={"q_organization_domains_list": [normalized], "per_page": 5},
        )
        for payload in (data or {}).get("organizations") or []:
            if not isinstance(payload, dict):
                continue
            if normalize_domain(payload.get("primary_domain")) == normalized:
                return Organization.from_payload(payload)
        return None
