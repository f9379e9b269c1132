"""Human-readable phase descriptions and phase-specific tips.

Static copy shown next to a detected phase.  Keyed by ``Phase`` so a new
phase cannot be added without matching content (checked in tests).
"""

from __future__ import annotations

from lunara.cycle.phase_calculator import Phase

_DESCRIPTIONS: dict[Phase, str] = {
    Phase.menstrual: (
        "Menstrual phase (days 1–5): your period is occurring. Estrogen and "
        "progesterone are at their lowest, which triggers the shedding of the "
        "uterine lining. Energy often dips and sensitivity to pain rises, so "
        "warmth, rest and gentle movement tend to feel best."
    ),
    Phase.follicular: (
        "Follicular phase (days 6–13): follicles are developing in the ovaries "
        "under the influence of follicle-stimulating hormone. Rising estrogen "
        "usually lifts energy, mood and focus, making this a good window for "
        "new challenges and harder training."
    ),
    Phase.ovulatory: (
        "Ovulatory phase (days 14–16): ovulation is occurring or about to occur. "
        "Estrogen peaks and a luteinizing hormone surge releases an egg. Many "
        "people notice peak strength, coordination and social confidence."
    ),
    Phase.luteal: (
        "Luteal phase (day 17 to the next period): the uterine lining is "
        "preparing for a potential pregnancy. Progesterone rises and, late in "
        "the phase, falls again, which can bring fluid retention, cravings, "
        "mood shifts and a stronger need for rest and routine."
    ),
}

_TIPS: dict[Phase, list[str]] = {
    Phase.menstrual: [
        "Stay hydrated and get plenty of rest",
        "Consider iron-rich foods to replenish lost nutrients",
        "Use heating pads or warm baths for cramp relief",
        "Engage in gentle exercise like walking or yoga",
    ],
    Phase.follicular: [
        "Focus on strength training and cardio",
        "Eat foods rich in iron and vitamin C",
        "This is a great time for new challenges and goals",
        "Energy levels are typically higher during this phase",
    ],
    Phase.ovulatory: [
        "Peak fertility window - plan accordingly",
        "Engage in high-intensity workouts if desired",
        "Social energy is often at its highest",
        "Consider tracking basal body temperature for fertility",
    ],
    Phase.luteal: [
        "Focus on mood-supporting nutrients like magnesium",
        "Consider gentle exercise and stress management",
        "Be mindful of potential PMS symptoms",
        "Prioritize sleep and relaxation",
    ],
}


def phase_description(phase: Phase) -> str:
    return _DESCRIPTIONS[Phase(phase)]


def phase_tips(phase: Phase) -> list[str]:
    """Return a copy of the tips for a phase (callers may mutate it)."""
    return list(_TIPS[Phase(phase)])
