"""Batch generation of text and audio guides for the intervention catalog.

For every catalog entry not already cached:
- Ask the text generator for a structured guide; fall back to the catalog's
  static instructions when the answer is unusable or the generator is down
- Ask the text generator for a narration script, then the speech
  synthesizer for audio; a missing payload still yields a valid AudioGuide
- Pause between interventions to respect collaborator rate limits

Failures are per intervention: they are collected in the run report and the
batch moves on.  The cache is written exactly once, after the full pass, so
an interrupted run leaves the previous store untouched.

Usage::

    pipeline = GuideGenerationPipeline(cache, text_generator, synthesizer)
    report = await pipeline.run(get_catalog())
    for err in report.errors:
        logger.warning(err)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable

from lunara.catalog.loader import Intervention
from lunara.config import Settings
from lunara.guides.cache import CacheCorrupt, CacheMissing, GuideCache
from lunara.guides.collaborators import (
    CollaboratorMalformedResponse,
    ElevenLabsSynthesizer,
    OpenAITextGenerator,
    SpeechSynthesizer,
    TextGenerator,
)
from lunara.guides.models import AudioGuide, GuideCacheMetadata, TextGuide, utc_now
from lunara.guides.parsing import fallback_text_guide, text_guide_from_response
from lunara.guides.prompts import (
    NARRATION_SYSTEM_PROMPT,
    TEXT_GUIDE_SYSTEM_PROMPT,
    build_narration_prompt,
    build_text_guide_prompt,
)

logger = logging.getLogger("lunara.guides.pipeline")

DEFAULT_DELAY_SECONDS = 1.0


@dataclass
class GenerationReport:
    """Outcome of one pipeline run.

    Attributes:
        generated:      Titles that received fresh guides.
        skipped:        Titles already cached (not regenerated).
        text_fallbacks: Titles whose text guide came from static instructions.
        audio_missing:  Titles whose audio guide has no payload.
        failed:         Titles that produced no guides at all this run.
        errors:         Human-readable descriptions of every problem, in order.
        metadata:       Metadata of the committed store.
    """

    generated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    text_fallbacks: list[str] = field(default_factory=list)
    audio_missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: GuideCacheMetadata | None = None

    @property
    def ok(self) -> bool:
        return not self.failed


def compose_narration(guide: TextGuide) -> str:
    """Spoken script assembled from a text guide (narration fallback)."""
    parts: list[str] = []
    if guide.introduction:
        parts.append(guide.introduction)
    for step in guide.steps:
        line = f"Step {step.step_number}. {step.instruction}"
        if step.breathing_cue:
            line = f"{line} {step.breathing_cue}"
        parts.append(line)
    parts.append(guide.reflection_question)
    return "\n\n".join(parts)


class GuideGenerationPipeline:
    """Populate a GuideCache from the intervention catalog.

    Collaborators are injected; the pipeline never creates clients itself
    except through ``from_settings``.
    """

    def __init__(
        self,
        cache: GuideCache,
        text_generator: TextGenerator,
        speech_synthesizer: SpeechSynthesizer | None = None,
        *,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        text_max_tokens: int = 1200,
        narration_max_tokens: int = 1000,
        temperature: float = 0.7,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cache = cache
        self._text = text_generator
        self._speech = speech_synthesizer
        self._delay_seconds = delay_seconds
        self._text_max_tokens = text_max_tokens
        self._narration_max_tokens = narration_max_tokens
        self._temperature = temperature
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, cache: GuideCache | None = None
    ) -> "GuideGenerationPipeline":
        synthesizer = ElevenLabsSynthesizer.from_settings(settings)
        return cls(
            cache or GuideCache(settings.guide_cache_dir, settings.guide_cache_version),
            OpenAITextGenerator.from_settings(settings),
            synthesizer if synthesizer.available else None,
            delay_seconds=settings.generation_delay_seconds,
            text_max_tokens=settings.text_guide_max_tokens,
            narration_max_tokens=settings.narration_max_tokens,
            temperature=settings.generation_temperature,
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def run(
        self, interventions: Iterable[Intervention], *, force: bool = False
    ) -> GenerationReport:
        """Generate guides for every uncached intervention and commit once.

        Args:
            interventions: Catalog entries, processed in order.
            force:         Regenerate titles that are already cached.

        Returns:
            GenerationReport describing the run.

        Raises:
            CacheCorrupt:    If the existing store is corrupt and ``force`` is False.
            CacheWriteError: If the final store cannot be written.
        """
        report = GenerationReport()
        text_guides, audio_guides = self._existing_guides(force)

        pending: list[Intervention] = []
        seen: set[str] = set()
        for intervention in interventions:
            if intervention.title in seen:
                continue
            seen.add(intervention.title)
            if not force and intervention.title in text_guides and intervention.title in audio_guides:
                report.skipped.append(intervention.title)
                continue
            pending.append(intervention)

        logger.info(
            "Generating guides for %d intervention(s) (%d already cached)",
            len(pending),
            len(report.skipped),
        )

        for index, intervention in enumerate(pending):
            if index > 0 and self._delay_seconds > 0:
                await self._sleep(self._delay_seconds)

            title = intervention.title
            try:
                text_guide = await self.generate_text_guide(intervention, report)
                audio_guide = await self.generate_audio_guide(intervention, text_guide, report)
            except Exception as exc:
                msg = f"Failed to generate guides for {title}: {exc}"
                logger.error(msg)
                report.errors.append(msg)
                report.failed.append(title)
                continue

            text_guides[title] = text_guide
            audio_guides[title] = audio_guide
            report.generated.append(title)
            logger.info("Completed guides for %s (%d/%d)", title, index + 1, len(pending))

        report.metadata = self._cache.commit(text_guides, audio_guides)

        logger.info(
            "Guide generation finished: %d generated, %d skipped, %d fallback, "
            "%d without audio, %d failed",
            len(report.generated),
            len(report.skipped),
            len(report.text_fallbacks),
            len(report.audio_missing),
            len(report.failed),
        )
        return report

    def _existing_guides(self, force: bool) -> tuple[dict[str, TextGuide], dict[str, AudioGuide]]:
        try:
            snapshot = self._cache.load()
        except CacheMissing:
            return {}, {}
        except CacheCorrupt:
            if not force:
                raise
            logger.warning("Existing guide store is corrupt; regenerating from scratch")
            return {}, {}
        return dict(snapshot.text_guides), dict(snapshot.audio_guides)

    # ------------------------------------------------------------------
    # Per intervention
    # ------------------------------------------------------------------

    async def generate_text_guide(
        self, intervention: Intervention, report: GenerationReport | None = None
    ) -> TextGuide:
        """Generated text guide, or the static-instruction fallback."""
        generated_at = self._clock()
        try:
            response = await self._text.complete(
                TEXT_GUIDE_SYSTEM_PROMPT,
                build_text_guide_prompt(intervention),
                max_tokens=self._text_max_tokens,
                temperature=self._temperature,
            )
            return text_guide_from_response(response, intervention, generated_at)
        except Exception as exc:  # unusable answer or generator down
            msg = f"Text guide for {intervention.title} uses static instructions: {exc}"
            logger.warning(msg)
            if report is not None:
                report.errors.append(msg)
                report.text_fallbacks.append(intervention.title)
            return fallback_text_guide(intervention, generated_at)

    async def generate_audio_guide(
        self,
        intervention: Intervention,
        text_guide: TextGuide,
        report: GenerationReport | None = None,
    ) -> AudioGuide:
        """Narrated guide; ``audio_payload`` is None when synthesis is unavailable."""
        generated_at = self._clock()
        narration = await self._narration_script(intervention, text_guide, report)

        payload: bytes | None = None
        if self._speech is None:
            logger.warning(
                "Skipping audio for %s - no speech synthesizer configured", intervention.title
            )
        else:
            try:
                payload = await self._speech.synthesize(narration)
            except Exception as exc:
                msg = f"Audio for {intervention.title} unavailable: {exc}"
                logger.warning(msg)
                if report is not None:
                    report.errors.append(msg)

        if payload is None and report is not None:
            report.audio_missing.append(intervention.title)

        return AudioGuide(
            intervention_title=intervention.title,
            narration_script=narration,
            reflection_question=text_guide.reflection_question,
            estimated_time_seconds=intervention.duration_minutes * 60,
            generated_at=generated_at,
            audio_payload=payload,
        )

    async def _narration_script(
        self,
        intervention: Intervention,
        text_guide: TextGuide,
        report: GenerationReport | None,
    ) -> str:
        try:
            script = await self._text.complete(
                NARRATION_SYSTEM_PROMPT,
                build_narration_prompt(intervention),
                max_tokens=self._narration_max_tokens,
                temperature=self._temperature,
            )
            script = (script or "").strip()
            if not script:
                raise CollaboratorMalformedResponse("Empty narration script")
            return script
        except Exception as exc:
            msg = f"Narration for {intervention.title} composed from text guide: {exc}"
            logger.warning(msg)
            if report is not None:
                report.errors.append(msg)
            return compose_narration(text_guide)
