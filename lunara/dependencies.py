"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from lunara.catalog.loader import InterventionCatalog, get_catalog
from lunara.config import Settings, get_settings
from lunara.guides.cache import GuideCache


@lru_cache
def get_guide_cache() -> GuideCache:
    """Process-wide guide cache; loaded lazily on first lookup."""
    settings = get_settings()
    return GuideCache(settings.guide_cache_dir, settings.guide_cache_version)


def get_intervention_catalog() -> InterventionCatalog:
    return get_catalog(get_settings().catalog_path)


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
Catalog = Annotated[InterventionCatalog, Depends(get_intervention_catalog)]
Guides = Annotated[GuideCache, Depends(get_guide_cache)]
