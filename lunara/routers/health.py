"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from lunara.dependencies import AppSettings, Guides
from lunara.guides.cache import CacheCorrupt

router = APIRouter(tags=["system"])
logger = logging.getLogger("lunara.health")


@router.get("/health")
async def health_check(settings: AppSettings, cache: Guides) -> dict:
    """Liveness check. Returns 200 if the API process is up.

    Also reports whether pre-generated guides are available.
    """
    guides: dict = {"status": "missing"}
    try:
        metadata = cache.metadata()
    except CacheCorrupt as exc:
        logger.warning("Health check found a corrupt guide store: %s", exc)
        guides = {"status": "corrupt"}
    else:
        if metadata is not None:
            guides = {"status": "ready", **metadata.to_json()}

    return {
        "status": "healthy" if guides["status"] != "corrupt" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "guides": guides,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
