"""Pydantic models for cycle phase detection."""

from __future__ import annotations

from datetime import date, datetime

from lunara.cycle.phase_calculator import Phase
from lunara.models.base import LunaraBase


class CyclePhaseRequest(LunaraBase):
    last_period: date
    # None = Settings.default_cycle_length; range is checked by the calculator
    cycle_length: int | None = None


class CyclePhaseResponse(LunaraBase):
    phase: Phase
    day_of_cycle: int
    days_until_next_period: int
    estimated_ovulation: date | None = None
    estimated_next_period: date
    description: str
    tips: list[str]
    timestamp: datetime
