"""IGDB catalog query, normalization and facet statistics engine."""

from catalog.criteria import FilterCriteria
from catalog.errors import (
    CatalogError,
    NotFound,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamTimeout,
)
from catalog.service import CatalogService, get_catalog_service

__all__ = [
    "CatalogError",
    "CatalogService",
    "FilterCriteria",
    "NotFound",
    "UpstreamAuthError",
    "UpstreamError",
    "UpstreamRateLimited",
    "UpstreamTimeout",
    "get_catalog_service",
]
