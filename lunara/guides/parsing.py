"""Defensive parsing of text-generation output into TextGuide steps.

Model output is untrusted, best-effort text: it may wrap the JSON in prose
or code fences, number steps arbitrarily, omit fields, or use the wrong
types.  Everything here either produces a well-formed guide or raises
CollaboratorMalformedResponse so the pipeline can take its fallback path.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import Any

from lunara.catalog.loader import Intervention
from lunara.guides.collaborators import CollaboratorMalformedResponse
from lunara.guides.models import DEFAULT_STEP_SECONDS, GuideStep, TextGuide

logger = logging.getLogger("lunara.guides.parsing")

DEFAULT_REFLECTION_QUESTION = "How do you feel? Notice any changes in your body or mind?"

_decoder = json.JSONDecoder()


def extract_json_object(text: str) -> dict:
    """Return the first complete JSON object embedded in ``text``.

    Scans each ``{`` in order and tries to decode a full object from there,
    so surrounding prose, markdown fences and trailing chatter are ignored.

    Raises:
        CollaboratorMalformedResponse: If no JSON object can be decoded.
    """
    if not isinstance(text, str) or not text.strip():
        raise CollaboratorMalformedResponse("Empty response from text generator")

    start = text.find("{")
    while start != -1:
        try:
            obj, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)

    raise CollaboratorMalformedResponse("No JSON object found in text generator response")


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _coerce_seconds(value: Any) -> int:
    """Best-effort non-negative seconds; anything unusable becomes the default."""
    if isinstance(value, bool) or value is None:
        return DEFAULT_STEP_SECONDS
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_STEP_SECONDS
    if isinstance(value, int):
        return value if value >= 0 else DEFAULT_STEP_SECONDS
    if isinstance(value, float) and math.isfinite(value) and value >= 0:
        return int(round(value))
    return DEFAULT_STEP_SECONDS


def normalize_steps(raw_steps: Any) -> tuple[GuideStep, ...]:
    """Convert a model-produced ``steps`` list into numbered GuideSteps.

    Steps are renumbered 1..n in list order regardless of any numbering in
    the source.  Entries may be objects or bare strings; entries with no
    usable instruction are dropped.

    Raises:
        CollaboratorMalformedResponse: If no usable step remains.
    """
    if not isinstance(raw_steps, list):
        raise CollaboratorMalformedResponse("'steps' is missing or not a list")

    steps: list[GuideStep] = []
    for item in raw_steps:
        if isinstance(item, str):
            item = {"instruction": item}
        if not isinstance(item, dict):
            continue
        instruction = _clean_str(item.get("instruction"))
        if instruction is None:
            continue
        steps.append(
            GuideStep(
                step_number=len(steps) + 1,
                instruction=instruction,
                duration_seconds=_coerce_seconds(item.get("duration_seconds")),
                breathing_cue=_clean_str(item.get("breathing_cue")),
                physiological_explanation=_clean_str(item.get("physiological_explanation")),
            )
        )

    if not steps:
        raise CollaboratorMalformedResponse("Response contained no usable steps")
    return tuple(steps)


def text_guide_from_response(
    response_text: str,
    intervention: Intervention,
    generated_at: datetime,
) -> TextGuide:
    """Build a TextGuide from raw text-generator output.

    Raises:
        CollaboratorMalformedResponse: If the output has no usable guide.
    """
    payload = extract_json_object(response_text)
    steps = normalize_steps(payload.get("steps"))
    return TextGuide(
        intervention_title=intervention.title,
        steps=steps,
        reflection_question=(
            _clean_str(payload.get("reflection_question")) or DEFAULT_REFLECTION_QUESTION
        ),
        estimated_time_seconds=intervention.duration_minutes * 60,
        generated_at=generated_at,
        introduction=_clean_str(payload.get("introduction")),
        modification=_clean_str(payload.get("modification")) or intervention.modification,
    )


def fallback_text_guide(intervention: Intervention, generated_at: datetime) -> TextGuide:
    """Build a guide straight from the catalog's static instructions.

    One step per instruction, each with the default duration.  This is a
    permanent, valid guide, not a placeholder awaiting retry.
    """
    return TextGuide(
        intervention_title=intervention.title,
        steps=tuple(
            GuideStep(step_number=i, instruction=instruction, duration_seconds=DEFAULT_STEP_SECONDS)
            for i, instruction in enumerate(intervention.instructions, start=1)
        ),
        reflection_question=DEFAULT_REFLECTION_QUESTION,
        estimated_time_seconds=intervention.duration_minutes * 60,
        generated_at=generated_at,
        introduction=intervention.description,
        modification=intervention.modification,
    )
