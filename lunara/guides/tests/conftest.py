"""Shared fixtures and collaborator fakes for guide tests."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from lunara.catalog.loader import Intervention
from lunara.cycle.phase_calculator import Phase
from lunara.guides.cache import (
    AUDIO_STORE_FILENAME,
    GENERATIONS_DIRNAME,
    MANIFEST_FILENAME,
    TEXT_STORE_FILENAME,
    GuideCache,
)
from lunara.guides.collaborators import CollaboratorUnavailable
from lunara.guides.models import AudioGuide, GuideStep, TextGuide
from lunara.guides.prompts import TEXT_GUIDE_SYSTEM_PROMPT

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

GOOD_GUIDE_JSON = json.dumps(
    {
        "introduction": "Settle in somewhere comfortable.",
        "steps": [
            {
                "step_number": 1,
                "instruction": "Inhale through your nose for four counts",
                "duration_seconds": 20,
                "breathing_cue": "In, two, three, four",
            },
            {"step_number": 2, "instruction": "Hold for four counts", "duration_seconds": 20},
            {"step_number": 3, "instruction": "Exhale for four counts", "duration_seconds": 20},
        ],
        "reflection_question": "What changed in your shoulders?",
    }
)


def make_intervention(title: str = "Box Breathing", **overrides) -> Intervention:
    fields = {
        "title": title,
        "description": "Four-count breathing to calm the nervous system.",
        "duration_minutes": 3,
        "location": "Anywhere",
        "research_citation": "Ma et al., 2017",
        "instructions": ("Inhale for 4", "Hold for 4", "Exhale for 4"),
        "phase_tags": frozenset({Phase.menstrual, Phase.luteal}),
    }
    fields.update(overrides)
    return Intervention(**fields)


def make_text_guide(title: str = "Box Breathing", steps: int = 2) -> TextGuide:
    return TextGuide(
        intervention_title=title,
        steps=tuple(
            GuideStep(step_number=i, instruction=f"Step {i} for {title}")
            for i in range(1, steps + 1)
        ),
        reflection_question="How do you feel?",
        estimated_time_seconds=180,
        generated_at=FIXED_NOW,
        introduction="Welcome.",
    )


def make_audio_guide(title: str = "Box Breathing", payload: bytes | None = b"ID3audio") -> AudioGuide:
    return AudioGuide(
        intervention_title=title,
        narration_script=f"Let's begin {title}.",
        reflection_question="How do you feel?",
        estimated_time_seconds=180,
        generated_at=FIXED_NOW,
        audio_payload=payload,
    )


def write_generation(
    cache_dir: Path,
    text: str | bytes | None = None,
    audio: str | bytes | None = None,
    generation: str = "20250301T120000000000Z-handmade",
) -> Path:
    """Publish raw artifact contents as the live generation.

    Either artifact may be omitted to leave it missing from the generation.
    """
    target = cache_dir / GENERATIONS_DIRNAME / generation
    target.mkdir(parents=True)
    for name, content in ((TEXT_STORE_FILENAME, text), (AUDIO_STORE_FILENAME, audio)):
        if isinstance(content, bytes):
            (target / name).write_bytes(content)
        elif content is not None:
            (target / name).write_text(content, encoding="utf-8")
    (cache_dir / MANIFEST_FILENAME).write_text(json.dumps({"generation": generation}))
    return target


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeTextGenerator:
    """Scripted TextGenerator.

    ``guide_responses`` maps a title (found in the prompt) to the raw text
    returned for the structured guide call; unmatched titles get
    GOOD_GUIDE_JSON.  ``fail_titles`` raise the given exception for any call
    that mentions the title.
    """

    def __init__(
        self,
        guide_responses: dict[str, str] | None = None,
        narration: str = "Breathe in slowly and let your body soften.",
        fail_titles: dict[str, Exception] | None = None,
    ) -> None:
        self.guide_responses = guide_responses or {}
        self.narration = narration
        self.fail_titles = fail_titles or {}
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt, prompt, *, max_tokens, temperature) -> str:
        self.calls.append((system_prompt, prompt))
        for title, exc in self.fail_titles.items():
            if title in prompt:
                raise exc
        if system_prompt == TEXT_GUIDE_SYSTEM_PROMPT:
            for title, response in self.guide_responses.items():
                if title in prompt:
                    return response
            return GOOD_GUIDE_JSON
        return self.narration


class UnavailableTextGenerator:
    async def complete(self, system_prompt, prompt, *, max_tokens, temperature) -> str:
        raise CollaboratorUnavailable("offline")


class FakeSynthesizer:
    def __init__(self, payload: bytes | None = b"ID3fakeaudio", error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.texts: list[str] = []

    async def synthesize(self, text: str) -> bytes | None:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return self.payload


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "guides"


@pytest.fixture
def cache(cache_dir: Path) -> GuideCache:
    return GuideCache(cache_dir, version="1.0.0")


@pytest.fixture
def intervention() -> Intervention:
    return make_intervention()


@pytest.fixture
def text_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
