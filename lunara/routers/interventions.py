"""Intervention catalog and pre-generated guide endpoints."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, Query

from lunara.cycle.phase_calculator import Phase
from lunara.dependencies import Catalog, Guides
from lunara.guides.cache import CacheCorrupt, GuideCache
from lunara.models.base import ErrorDetail
from lunara.models.interventions import AudioGuideRead, InterventionRead, TextGuideRead

router = APIRouter(prefix="/interventions", tags=["interventions"])
logger = logging.getLogger("lunara.interventions")


def _corrupt(exc: CacheCorrupt) -> HTTPException:
    logger.error("Guide store is corrupt: %s", exc)
    return HTTPException(status_code=503, detail="Guide store is unavailable")


def _read(intervention, cache: GuideCache) -> InterventionRead:
    return InterventionRead.from_intervention(
        intervention,
        has_text_guide=cache.has_text(intervention.title),
        has_audio_guide=cache.has_audio(intervention.title),
    )


@router.get("", response_model=list[InterventionRead])
async def list_interventions(
    catalog: Catalog,
    cache: Guides,
    phase: Phase | None = Query(default=None),
) -> list[InterventionRead]:
    interventions = catalog.for_phase(phase) if phase is not None else catalog.all()
    try:
        return [_read(i, cache) for i in interventions]
    except CacheCorrupt as exc:
        raise _corrupt(exc) from exc


@router.get("/{title}", response_model=InterventionRead, responses={404: {"model": ErrorDetail}})
async def get_intervention(title: str, catalog: Catalog, cache: Guides) -> InterventionRead:
    intervention = catalog.get(title)
    if intervention is None:
        raise HTTPException(status_code=404, detail="Intervention not found")
    try:
        return _read(intervention, cache)
    except CacheCorrupt as exc:
        raise _corrupt(exc) from exc


@router.get(
    "/{title}/guide",
    response_model=TextGuideRead | AudioGuideRead,
    responses={404: {"model": ErrorDetail}, 503: {"model": ErrorDetail}},
)
async def get_guide(
    title: str,
    catalog: Catalog,
    cache: Guides,
    mode: Literal["text", "audio"] = Query(default="text"),
) -> TextGuideRead | AudioGuideRead:
    if title not in catalog:
        raise HTTPException(status_code=404, detail="Intervention not found")

    try:
        if mode == "audio":
            audio = cache.lookup_audio(title)
            guide = AudioGuideRead.from_guide(audio) if audio is not None else None
        else:
            text = cache.lookup_text(title)
            guide = TextGuideRead.from_guide(text) if text is not None else None
    except CacheCorrupt as exc:
        raise _corrupt(exc) from exc

    if guide is None:
        raise HTTPException(status_code=404, detail=f"No generated {mode} guide for this intervention")
    return guide
