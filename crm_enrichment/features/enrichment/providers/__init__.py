"""
Enrichment provider adapters.
"""

from .apollo import ApolloClient
from .base import EnrichmentProvider, ProviderConfigurationError, ProviderError

__all__ = [
    "ApolloClient",
    "EnrichmentProvider",
    "ProviderConfigurationError",
    "ProviderError",
]
