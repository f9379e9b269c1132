"""Calendar-based menstrual cycle phase detection.

Maps a last-period date (plus an optional cycle length) onto:
- Current phase (menstrual / follicular / ovulatory / luteal)
- Day of cycle (1-indexed, always within the cycle length)
- Days until the next period
- Estimated next period and, during the ovulatory phase, estimated ovulation

Canonical phase table for a cycle of length L (L >= 17)::

    menstrual   days 1–5
    follicular  days 6–13
    ovulatory   days 14–16
    luteal      days 17–L

Shorter cycles compress the table proportionally so no phase is dropped
while the cycle still has room for all four.

Pure computation: no I/O, no state.  ``now`` is injectable for testing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

logger = logging.getLogger("lunara.cycle.phase_calculator")

DEFAULT_CYCLE_LENGTH = 28
RECOMMENDED_CYCLE_RANGE = (21, 35)

# Ovulation is estimated this many days before the next period
OVULATION_OFFSET_DAYS = 14

# Last day of menstrual, follicular and ovulatory phases in a 28-day cycle.
# Luteal always runs from the day after the ovulatory end to the cycle end.
_CANONICAL_LENGTH = 28
_CANONICAL_ENDS = (5, 13, 16)
_LUTEAL_START = _CANONICAL_ENDS[-1] + 1


class InvalidConfiguration(ValueError):
    """Raised when the cycle length is not a positive integer."""


class Phase(str, Enum):
    menstrual = "menstrual"
    follicular = "follicular"
    ovulatory = "ovulatory"
    luteal = "luteal"


@dataclass(frozen=True)
class CycleInfo:
    """Derived cycle position for a single (last period, length, now) triple.

    Never persisted — recomputed on every request.

    Attributes:
        phase:                  Current cycle phase.
        day_of_cycle:           1-indexed day, always in [1, cycle_length].
        days_until_next_period: Days remaining including today (>= 0).
        estimated_ovulation:    Next period minus 14 days; only set in the
                                ovulatory phase, None otherwise.
        estimated_next_period:  Last period + cycle length.
    """

    phase: Phase
    day_of_cycle: int
    days_until_next_period: int
    estimated_ovulation: date | None
    estimated_next_period: date


def _validate_cycle_length(cycle_length: int) -> None:
    if isinstance(cycle_length, bool) or not isinstance(cycle_length, int):
        raise InvalidConfiguration(
            f"cycle_length must be an integer, got {cycle_length!r}"
        )
    if cycle_length <= 0:
        raise InvalidConfiguration(
            f"cycle_length must be positive, got {cycle_length}"
        )


def _scaled_phase_ends(cycle_length: int) -> list[int]:
    """Compress the canonical phase end-days into a cycle shorter than 17 days.

    Each end-day is scaled by ``cycle_length / 28`` and then pushed so every
    phase keeps at least one day.  With fewer than four days the trailing
    phases are left empty.
    """
    ends: list[int] = []
    prev = 0
    phases_after = len(_CANONICAL_ENDS)
    for i, canonical_end in enumerate(_CANONICAL_ENDS):
        scaled = int(canonical_end * cycle_length / _CANONICAL_LENGTH + 0.5)
        upper = cycle_length - (phases_after - i)
        end = max(prev + 1, min(scaled, upper))
        end = min(end, cycle_length)
        ends.append(end)
        prev = end
    return ends


def phase_day_ranges(cycle_length: int = DEFAULT_CYCLE_LENGTH) -> dict[Phase, range]:
    """Return the inclusive day range of every phase for a cycle length.

    Args:
        cycle_length: Total cycle length in days.

    Returns:
        Ordered dict Phase → range of 1-indexed days.  The ranges are
        contiguous and together cover exactly ``1..cycle_length``.

    Raises:
        InvalidConfiguration: If ``cycle_length`` is not a positive integer.
    """
    _validate_cycle_length(cycle_length)
    if cycle_length >= _LUTEAL_START:
        ends = list(_CANONICAL_ENDS)
    else:
        ends = _scaled_phase_ends(cycle_length)

    bounds = [0, *ends, cycle_length]
    return {
        phase: range(bounds[i] + 1, bounds[i + 1] + 1)
        for i, phase in enumerate(Phase)
    }


def phase_for_day(day_of_cycle: int, cycle_length: int = DEFAULT_CYCLE_LENGTH) -> Phase:
    """Return the phase containing a 1-indexed cycle day."""
    for phase, days in phase_day_ranges(cycle_length).items():
        if day_of_cycle in days:
            return phase
    raise ValueError(
        f"day_of_cycle {day_of_cycle} outside 1..{cycle_length}"
    )


def _days_between(start: date, end: date) -> int:
    """Whole days from ``start`` to ``end``, floored (negative if end < start)."""
    start_is_dt = isinstance(start, datetime)
    end_is_dt = isinstance(end, datetime)
    if start_is_dt != end_is_dt:
        # date vs datetime: compare at day granularity
        start = start.date() if start_is_dt else start
        end = end.date() if end_is_dt else end
    # timedelta.days is already floored for negative deltas
    return (end - start).days


def detect_phase(
    last_period: date,
    cycle_length: int = DEFAULT_CYCLE_LENGTH,
    now: date | None = None,
) -> CycleInfo:
    """Detect the current cycle phase from the last period start.

    Args:
        last_period:  First day of the last period (``date`` or ``datetime``).
        cycle_length: Cycle length in days (default 28).  Values outside
                      21–35 are accepted but logged.
        now:          Reference point (defaults to today / the current time,
                      matching the type of ``last_period``).

    Returns:
        CycleInfo for ``now``.

    Raises:
        InvalidConfiguration: If ``cycle_length`` is not a positive integer.
    """
    _validate_cycle_length(cycle_length)

    low, high = RECOMMENDED_CYCLE_RANGE
    if not (low <= cycle_length <= high):
        logger.debug(
            "cycle_length %d outside recommended range %d–%d", cycle_length, low, high
        )

    if now is None:
        now = datetime.now() if isinstance(last_period, datetime) else date.today()

    days_since = _days_between(last_period, now)
    if days_since < 0:
        logger.warning(
            "last_period %s is after reference date %s; projecting backwards",
            last_period,
            now,
        )

    # Python's % with a positive modulus is already non-negative
    day_of_cycle = days_since % cycle_length + 1
    phase = phase_for_day(day_of_cycle, cycle_length)

    days_until_next_period = max(0, cycle_length - day_of_cycle + 1)

    # Anchored on the original cycle start, not on ``now``
    estimated_next_period = last_period + timedelta(days=cycle_length)
    estimated_ovulation = (
        estimated_next_period - timedelta(days=OVULATION_OFFSET_DAYS)
        if phase is Phase.ovulatory
        else None
    )

    return CycleInfo(
        phase=phase,
        day_of_cycle=day_of_cycle,
        days_until_next_period=days_until_next_period,
        estimated_ovulation=estimated_ovulation,
        estimated_next_period=estimated_next_period,
    )
