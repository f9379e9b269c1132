"""Menstrual cycle phase detection for Lunara.

Modules:
    phase_calculator — Last-period date → phase, cycle day, period/ovulation estimates
    phase_content    — Per-phase description text and tips
"""

from lunara.cycle.phase_calculator import (
    DEFAULT_CYCLE_LENGTH,
    CycleInfo,
    InvalidConfiguration,
    Phase,
    detect_phase,
    phase_day_ranges,
)
from lunara.cycle.phase_content import phase_description, phase_tips

__all__ = [
    "DEFAULT_CYCLE_LENGTH",
    "CycleInfo",
    "InvalidConfiguration",
    "Phase",
    "detect_phase",
    "phase_day_ranges",
    "phase_description",
    "phase_tips",
]
