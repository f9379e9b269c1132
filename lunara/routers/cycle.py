"""Cycle phase detection endpoint."""

from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, HTTPException

from lunara.cycle.phase_calculator import InvalidConfiguration, detect_phase
from lunara.cycle.phase_content import phase_description, phase_tips
from lunara.dependencies import AppSettings
from lunara.models.base import ErrorDetail
from lunara.models.cycle import CyclePhaseRequest, CyclePhaseResponse

router = APIRouter(tags=["cycle"])


@router.post(
    "/cycle-phase",
    response_model=CyclePhaseResponse,
    responses={422: {"model": ErrorDetail}},
)
async def cycle_phase(body: CyclePhaseRequest, settings: AppSettings) -> CyclePhaseResponse:
    cycle_length = (
        body.cycle_length if body.cycle_length is not None else settings.default_cycle_length
    )
    try:
        info = detect_phase(body.last_period, cycle_length, now=date.today())
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return CyclePhaseResponse(
        phase=info.phase,
        day_of_cycle=info.day_of_cycle,
        days_until_next_period=info.days_until_next_period,
        estimated_ovulation=info.estimated_ovulation,
        estimated_next_period=info.estimated_next_period,
        description=phase_description(info.phase),
        tips=phase_tips(info.phase),
        timestamp=datetime.now(timezone.utc),
    )
