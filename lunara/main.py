"""Lunara API — FastAPI application entry point.

Run locally:
    uvicorn lunara.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lunara.catalog.loader import get_catalog
from lunara.config import get_settings
from lunara.dependencies import get_guide_cache
from lunara.guides.cache import CacheCorrupt, GuideCache
from lunara.routers import cycle, health, interventions

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("lunara")


# ---------- Lifespan ----------

def _report_guide_store(cache: GuideCache) -> None:
    """Log what the API will serve for guide requests; never blocks startup."""
    try:
        metadata = cache.metadata()
    except CacheCorrupt as exc:
        logger.error("Guide store in %s is corrupt; guide requests will return 503: %s", cache.directory, exc)
        return
    if metadata is None:
        logger.warning(
            "No pre-generated guides in %s; run `lunara-guides generate` to create them",
            cache.directory,
        )
        return
    logger.info(
        "Serving %d pre-generated guides (v%s, generated %s, generation %s)",
        metadata.total_interventions,
        metadata.version,
        metadata.generated_at.isoformat(),
        cache.generation,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load the catalog and report guide availability before serving."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info(
        "Starting Lunara API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    # Fail fast on a broken catalog rather than on the first request
    catalog = get_catalog(settings.catalog_path)
    logger.info(
        "Intervention catalog v%s: %d interventions from %s",
        catalog.version,
        len(catalog),
        settings.catalog_path or "bundled interventions.yaml",
    )
    # Same provider the routes resolve, overrides included
    cache_provider = app.dependency_overrides.get(get_guide_cache, get_guide_cache)
    _report_guide_store(cache_provider())
    yield
    logger.info("Lunara API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Menstrual-cycle phase detection plus phase-tagged self-care "
            "interventions. Each intervention serves a pre-generated text guide "
            "or narrated audio guide from the on-disk guide store."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(cycle.router, prefix=v1_prefix)
    app.include_router(interventions.router, prefix=v1_prefix)

    return app


app = create_app()
