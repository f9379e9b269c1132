"""Pydantic models for the intervention catalog and cached guides."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from lunara.catalog.loader import Intervention
from lunara.cycle.phase_calculator import Phase
from lunara.guides.models import AudioGuide, TextGuide
from lunara.models.base import LunaraBase


class InterventionRead(LunaraBase):
    title: str
    description: str
    duration_minutes: int
    location: str
    research_citation: str
    instructions: list[str]
    modification: str | None = None
    phase_tags: list[Phase]
    category: str | None = None
    benefit: str | None = None
    equipment: str | None = None
    has_text_guide: bool = False
    has_audio_guide: bool = False

    @classmethod
    def from_intervention(
        cls, intervention: Intervention, *, has_text_guide: bool, has_audio_guide: bool
    ) -> "InterventionRead":
        return cls(
            title=intervention.title,
            description=intervention.description,
            duration_minutes=intervention.duration_minutes,
            location=intervention.location,
            research_citation=intervention.research_citation,
            instructions=list(intervention.instructions),
            modification=intervention.modification,
            # Sets are unordered; report tags in cycle order
            phase_tags=[p for p in Phase if p in intervention.phase_tags],
            category=intervention.category,
            benefit=intervention.benefit,
            equipment=intervention.equipment,
            has_text_guide=has_text_guide,
            has_audio_guide=has_audio_guide,
        )


class GuideStepRead(LunaraBase):
    step_number: int = Field(ge=1)
    instruction: str
    duration_seconds: int = Field(ge=0)
    breathing_cue: str | None = None
    physiological_explanation: str | None = None


class TextGuideRead(LunaraBase):
    intervention_title: str
    mode: Literal["text"] = "text"
    introduction: str | None = None
    steps: list[GuideStepRead]
    reflection_question: str
    estimated_time_seconds: int
    modification: str | None = None
    generated_at: datetime

    @classmethod
    def from_guide(cls, guide: TextGuide) -> "TextGuideRead":
        return cls.model_validate(guide.to_json())


class AudioGuideRead(LunaraBase):
    intervention_title: str
    mode: Literal["audio"] = "audio"
    narration_script: str
    audio_base64: str | None = None
    reflection_question: str
    estimated_time_seconds: int
    generated_at: datetime

    @classmethod
    def from_guide(cls, guide: AudioGuide) -> "AudioGuideRead":
        return cls.model_validate(guide.to_json())
