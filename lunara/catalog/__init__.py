"""Static intervention catalog (interventions.yaml)."""

from lunara.catalog.loader import (
    CatalogValidationError,
    Intervention,
    InterventionCatalog,
    get_catalog,
    load_catalog,
    reload_catalog,
)

__all__ = [
    "CatalogValidationError",
    "Intervention",
    "InterventionCatalog",
    "get_catalog",
    "load_catalog",
    "reload_catalog",
]
