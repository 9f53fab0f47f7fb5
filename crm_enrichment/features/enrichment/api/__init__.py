"""
HTTP layer for the enrichment feature.
"""

from .router import router

__all__ = ["router"]
