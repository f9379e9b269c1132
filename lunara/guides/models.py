"""Generated guide data model.

These types are the single persisted schema for generated guide content.
They serialize to and from plain JSON (``to_json`` / ``from_json``); stored
data is only ever parsed, never evaluated.

All models are frozen: once a guide is committed to the cache, callers get
read-only values.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

TEXT_MODE = "text"
AUDIO_MODE = "audio"

DEFAULT_STEP_SECONDS = 30


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be an ISO-8601 string, got {value!r}")
    # fromisoformat() only accepts a trailing 'Z' from Python 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _required_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} is required and must be a string")
    return value


def _non_negative_int(data: dict, key: str, *aliases: str) -> int:
    for k in (key, *aliases):
        if k in data:
            value = data[k]
            break
    else:
        raise ValueError(f"{key} is required")
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    return value


@dataclass(frozen=True)
class GuideStep:
    """One numbered step of a text guide.

    Attributes:
        step_number:               1-based, contiguous within a guide.
        instruction:               What to do.
        duration_seconds:          Suggested time for the step (>= 0).
        breathing_cue:             Optional breathing guidance.
        physiological_explanation: Optional short "why this helps".
    """

    step_number: int
    instruction: str
    duration_seconds: int = DEFAULT_STEP_SECONDS
    breathing_cue: str | None = None
    physiological_explanation: str | None = None

    def to_json(self) -> dict:
        data: dict[str, Any] = {
            "step_number": self.step_number,
            "instruction": self.instruction,
            "duration_seconds": self.duration_seconds,
        }
        if self.breathing_cue is not None:
            data["breathing_cue"] = self.breathing_cue
        if self.physiological_explanation is not None:
            data["physiological_explanation"] = self.physiological_explanation
        return data

    @classmethod
    def from_json(cls, data: dict) -> "GuideStep":
        step_number = _non_negative_int(data, "step_number")
        if step_number < 1:
            raise ValueError("step_number must be >= 1")
        return cls(
            step_number=step_number,
            instruction=_required_str(data, "instruction"),
            duration_seconds=(
                _non_negative_int(data, "duration_seconds")
                if data.get("duration_seconds") is not None
                else DEFAULT_STEP_SECONDS
            ),
            breathing_cue=_optional_str(data, "breathing_cue"),
            physiological_explanation=_optional_str(data, "physiological_explanation"),
        )


@dataclass(frozen=True)
class TextGuide:
    """Generated step-by-step text guide for one intervention.

    ``intervention_title`` is a lookup key into the catalog, not an
    ownership link; a guide may outlive its catalog entry and vice versa.
    """

    intervention_title: str
    steps: tuple[GuideStep, ...]
    reflection_question: str
    estimated_time_seconds: int
    generated_at: datetime
    introduction: str | None = None
    modification: str | None = None

    mode = TEXT_MODE

    def __post_init__(self) -> None:
        numbers = [s.step_number for s in self.steps]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(
                f"steps for {self.intervention_title!r} must be numbered 1..n, got {numbers}"
            )

    def to_json(self) -> dict:
        data: dict[str, Any] = {
            "intervention_title": self.intervention_title,
            "mode": self.mode,
            "steps": [s.to_json() for s in self.steps],
            "reflection_question": self.reflection_question,
            "estimated_time_seconds": self.estimated_time_seconds,
            "generated_at": self.generated_at.isoformat(),
        }
        if self.introduction is not None:
            data["introduction"] = self.introduction
        if self.modification is not None:
            data["modification"] = self.modification
        return data

    @classmethod
    def from_json(cls, data: dict) -> "TextGuide":
        if not isinstance(data, dict):
            raise ValueError("text guide must be an object")
        mode = data.get("mode", TEXT_MODE)
        if mode != TEXT_MODE:
            raise ValueError(f"expected mode {TEXT_MODE!r}, got {mode!r}")
        steps_raw = data.get("steps")
        if not isinstance(steps_raw, list):
            raise ValueError("steps must be a list")
        return cls(
            intervention_title=_required_str(data, "intervention_title"),
            steps=tuple(GuideStep.from_json(s) for s in steps_raw),
            reflection_question=_required_str(data, "reflection_question"),
            # "estimated_time" is the legacy key used by older combined stores
            estimated_time_seconds=_non_negative_int(
                data, "estimated_time_seconds", "estimated_time"
            ),
            generated_at=_parse_timestamp(data.get("generated_at")),
            introduction=_optional_str(data, "introduction"),
            modification=_optional_str(data, "modification"),
        )


@dataclass(frozen=True)
class AudioGuide:
    """Narrated guide for one intervention.

    ``audio_payload`` holds opaque encoded audio (MPEG from the synthesizer)
    and is None when synthesis was unavailable or failed; the narration
    script alone is still a usable guide.
    """

    intervention_title: str
    narration_script: str
    reflection_question: str
    estimated_time_seconds: int
    generated_at: datetime
    audio_payload: bytes | None = None

    mode = AUDIO_MODE

    @property
    def has_audio(self) -> bool:
        return self.audio_payload is not None

    def audio_base64(self) -> str | None:
        if self.audio_payload is None:
            return None
        return base64.b64encode(self.audio_payload).decode("ascii")

    def to_json(self) -> dict:
        data: dict[str, Any] = {
            "intervention_title": self.intervention_title,
            "mode": self.mode,
            "narration_script": self.narration_script,
            "reflection_question": self.reflection_question,
            "estimated_time_seconds": self.estimated_time_seconds,
            "generated_at": self.generated_at.isoformat(),
        }
        if self.audio_payload is not None:
            data["audio_base64"] = self.audio_base64()
        return data

    @classmethod
    def from_json(cls, data: dict) -> "AudioGuide":
        if not isinstance(data, dict):
            raise ValueError("audio guide must be an object")
        mode = data.get("mode", AUDIO_MODE)
        if mode != AUDIO_MODE:
            raise ValueError(f"expected mode {AUDIO_MODE!r}, got {mode!r}")

        narration = data.get("narration_script")
        if narration is None:
            # Older combined stores kept the script in a single pseudo-step
            steps = data.get("steps") or []
            if steps and isinstance(steps[0], dict):
                narration = steps[0].get("physiological_explanation")
        if not isinstance(narration, str):
            raise ValueError("narration_script is required and must be a string")

        payload: bytes | None = None
        encoded = data.get("audio_base64")
        if encoded is not None:
            try:
                payload = base64.b64decode(encoded, validate=True)
            except (binascii.Error, TypeError) as exc:
                raise ValueError(f"audio_base64 is not valid base64: {exc}") from exc

        return cls(
            intervention_title=_required_str(data, "intervention_title"),
            narration_script=narration,
            reflection_question=_required_str(data, "reflection_question"),
            estimated_time_seconds=_non_negative_int(
                data, "estimated_time_seconds", "estimated_time"
            ),
            generated_at=_parse_timestamp(data.get("generated_at")),
            audio_payload=payload,
        )


@dataclass(frozen=True)
class GuideCacheMetadata:
    """Store-wide metadata written alongside each guide map.

    ``total_interventions`` must equal the number of guides in the map it
    accompanies; a mismatch marks the store as corrupt.
    """

    version: str
    generated_at: datetime
    total_interventions: int

    @classmethod
    def for_guides(cls, guides: dict, version: str, generated_at: datetime | None = None) -> "GuideCacheMetadata":
        return cls(
            version=version,
            generated_at=generated_at or utc_now(),
            total_interventions=len(guides),
        )

    def to_json(self) -> dict:
        return {
            "version": self.version,
            "generated_at": self.generated_at.isoformat(),
            "total_interventions": self.total_interventions,
        }

    @classmethod
    def from_json(cls, data: dict) -> "GuideCacheMetadata":
        return cls(
            version=str(data.get("version", "")),
            generated_at=_parse_timestamp(data.get("generated_at")),
            total_interventions=_non_negative_int(data, "total_interventions"),
        )
