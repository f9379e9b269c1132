"""Tests for the batch guide generation pipeline."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from lunara.config import Settings
from lunara.guides.cache import CacheCorrupt, CacheWriteError, GuideCache
from lunara.guides.collaborators import CollaboratorUnavailable
from lunara.guides.models import GuideStep, TextGuide
from lunara.guides.parsing import DEFAULT_REFLECTION_QUESTION
from lunara.guides.pipeline import GuideGenerationPipeline, compose_narration

from .conftest import (
    FIXED_NOW,
    FakeSynthesizer,
    FakeTextGenerator,
    RecordingSleep,
    UnavailableTextGenerator,
    make_audio_guide,
    make_intervention,
    make_text_guide,
    write_generation,
)

TITLES = ("Box Breathing", "Power Walk", "Heat Therapy")


@pytest.fixture
def interventions():
    return [make_intervention(t) for t in TITLES]


def _pipeline(cache, text_generator, synthesizer=None, sleep=None, **kwargs) -> GuideGenerationPipeline:
    return GuideGenerationPipeline(
        cache,
        text_generator,
        synthesizer,
        sleep=sleep or RecordingSleep(),
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestRun:
    @pytest.mark.asyncio
    async def test_generates_all(self, cache, interventions, text_generator, synthesizer) -> None:
        report = await _pipeline(cache, text_generator, synthesizer).run(interventions)

        assert report.generated == list(TITLES)
        assert report.ok
        assert report.errors == []
        assert report.metadata.total_interventions == 3
        for title in TITLES:
            text = cache.lookup_text(title)
            audio = cache.lookup_audio(title)
            assert len(text.steps) == 3
            assert audio.audio_payload == b"ID3fakeaudio"
            assert audio.reflection_question == text.reflection_question
            assert audio.estimated_time_seconds == 180

    @pytest.mark.asyncio
    async def test_commits_once(self, cache, interventions, text_generator, synthesizer) -> None:
        with patch.object(cache, "commit", wraps=cache.commit) as commit:
            await _pipeline(cache, text_generator, synthesizer).run(interventions)
        assert commit.call_count == 1

    @pytest.mark.asyncio
    async def test_narration_from_generator(self, cache, interventions, synthesizer) -> None:
        generator = FakeTextGenerator(narration="  Welcome to your practice.  ")
        await _pipeline(cache, generator, synthesizer).run(interventions[:1])
        assert cache.lookup_audio("Box Breathing").narration_script == "Welcome to your practice."
        assert synthesizer.texts == ["Welcome to your practice."]

    @pytest.mark.asyncio
    async def test_pacing_between_interventions(self, cache, interventions, text_generator) -> None:
        sleep = RecordingSleep()
        await _pipeline(cache, text_generator, sleep=sleep, delay_seconds=1.5).run(interventions)
        assert sleep.delays == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_zero_delay_never_sleeps(self, cache, interventions, text_generator) -> None:
        sleep = RecordingSleep()
        await _pipeline(cache, text_generator, sleep=sleep, delay_seconds=0).run(interventions)
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_duplicate_titles_processed_once(self, cache, text_generator) -> None:
        items = [make_intervention("Box Breathing"), make_intervention("Box Breathing")]
        report = await _pipeline(cache, text_generator).run(items)
        assert report.generated == ["Box Breathing"]


# ---------------------------------------------------------------------------
# Degraded collaborators
# ---------------------------------------------------------------------------


class TestFallbacks:
    @pytest.mark.asyncio
    async def test_malformed_response_uses_static_steps(
        self, cache, interventions, synthesizer
    ) -> None:
        generator = FakeTextGenerator(guide_responses={"Power Walk": "Sorry, no JSON today."})
        report = await _pipeline(cache, generator, synthesizer).run(interventions)

        assert report.generated == list(TITLES)
        assert report.text_fallbacks == ["Power Walk"]
        assert len(report.errors) == 1
        assert "Power Walk" in report.errors[0]

        fallback = cache.lookup_text("Power Walk")
        assert [s.instruction for s in fallback.steps] == ["Inhale for 4", "Hold for 4", "Exhale for 4"]
        assert fallback.reflection_question == DEFAULT_REFLECTION_QUESTION
        # Others unaffected
        assert cache.lookup_text("Box Breathing").steps[0].breathing_cue == "In, two, three, four"

    @pytest.mark.asyncio
    async def test_text_generator_down(self, cache, interventions, synthesizer) -> None:
        report = await _pipeline(cache, UnavailableTextGenerator(), synthesizer).run(interventions)

        assert report.ok
        assert report.text_fallbacks == list(TITLES)
        audio = cache.lookup_audio("Heat Therapy")
        assert audio.narration_script.startswith(make_intervention().description)
        assert "Step 1. Inhale for 4" in audio.narration_script

    @pytest.mark.asyncio
    async def test_non_success_audio_is_missing_not_error(self, cache, interventions, text_generator) -> None:
        report = await _pipeline(cache, text_generator, FakeSynthesizer(payload=None)).run(interventions)
        assert report.audio_missing == list(TITLES)
        assert report.errors == []
        audio = cache.lookup_audio("Box Breathing")
        assert audio.audio_payload is None
        assert audio.narration_script

    @pytest.mark.asyncio
    async def test_unreachable_synthesizer(self, cache, interventions, text_generator) -> None:
        synth = FakeSynthesizer(error=CollaboratorUnavailable("timeout"))
        report = await _pipeline(cache, text_generator, synth).run(interventions)
        assert report.ok
        assert report.audio_missing == list(TITLES)
        assert len(report.errors) == 3

    @pytest.mark.asyncio
    async def test_no_synthesizer_configured(self, cache, interventions, text_generator) -> None:
        report = await _pipeline(cache, text_generator, None).run(interventions)
        assert report.audio_missing == list(TITLES)
        assert not cache.lookup_audio("Power Walk").has_audio

    @pytest.mark.asyncio
    async def test_unexpected_generator_error_falls_back(self, cache, interventions, synthesizer) -> None:
        generator = FakeTextGenerator(fail_titles={"Power Walk": RuntimeError("boom")})
        report = await _pipeline(cache, generator, synthesizer).run(interventions)

        assert report.ok
        assert report.generated == list(TITLES)
        assert report.text_fallbacks == ["Power Walk"]
        # Guide call and narration call both recorded
        assert sum("boom" in e for e in report.errors) == 2
        fallback = cache.lookup_text("Power Walk")
        assert [s.instruction for s in fallback.steps] == ["Inhale for 4", "Hold for 4", "Exhale for 4"]
        assert "Step 1. Inhale for 4" in cache.lookup_audio("Power Walk").narration_script

    @pytest.mark.asyncio
    async def test_overflowing_duration_still_stored(self, cache, synthesizer) -> None:
        generator = FakeTextGenerator(
            guide_responses={
                "Box Breathing": '{"steps": [{"instruction": "Breathe", "duration_seconds": 1e999}]}'
            }
        )
        report = await _pipeline(cache, generator, synthesizer).run([make_intervention()])

        assert report.ok
        assert report.text_fallbacks == []
        guide = cache.lookup_text("Box Breathing")
        assert [(s.instruction, s.duration_seconds) for s in guide.steps] == [("Breathe", 30)]

    @pytest.mark.asyncio
    async def test_unexpected_synthesizer_error_means_no_audio(
        self, cache, interventions, text_generator
    ) -> None:
        synth = FakeSynthesizer(error=RuntimeError("codec exploded"))
        report = await _pipeline(cache, text_generator, synth).run(interventions)
        assert report.ok
        assert report.audio_missing == list(TITLES)
        assert all("codec exploded" in e for e in report.errors)
        assert cache.lookup_audio("Heat Therapy").narration_script

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(
        self, cache, interventions, text_generator, synthesizer, monkeypatch
    ) -> None:
        pipeline = _pipeline(cache, text_generator, synthesizer)
        real_audio = pipeline.generate_audio_guide

        async def flaky_audio(intervention, text_guide, report=None):
            if intervention.title == "Power Walk":
                raise RuntimeError("boom")
            return await real_audio(intervention, text_guide, report)

        monkeypatch.setattr(pipeline, "generate_audio_guide", flaky_audio)
        report = await pipeline.run(interventions)

        assert report.failed == ["Power Walk"]
        assert not report.ok
        assert report.generated == ["Box Breathing", "Heat Therapy"]
        assert any("boom" in e for e in report.errors)
        # Neither half of a failed intervention is stored
        assert cache.lookup_text("Power Walk") is None
        assert cache.lookup_audio("Power Walk") is None
        assert cache.lookup_text("Heat Therapy") is not None


# ---------------------------------------------------------------------------
# Incremental runs
# ---------------------------------------------------------------------------


class TestIncremental:
    @pytest.mark.asyncio
    async def test_skips_cached_titles(self, cache, interventions, text_generator) -> None:
        existing = make_text_guide("Box Breathing", steps=1)
        cache.commit({"Box Breathing": existing}, {"Box Breathing": make_audio_guide()})

        report = await _pipeline(cache, text_generator).run(interventions)

        assert report.skipped == ["Box Breathing"]
        assert report.generated == ["Power Walk", "Heat Therapy"]
        assert cache.lookup_text("Box Breathing") == existing
        assert report.metadata.total_interventions == 3
        assert all("Box Breathing" not in prompt for _, prompt in text_generator.calls)

    @pytest.mark.asyncio
    async def test_title_with_only_text_is_regenerated(self, cache, interventions, text_generator) -> None:
        cache.commit({"Box Breathing": make_text_guide()}, {})
        report = await _pipeline(cache, text_generator).run(interventions)
        assert "Box Breathing" in report.generated

    @pytest.mark.asyncio
    async def test_force_regenerates(self, cache, interventions, text_generator) -> None:
        cache.commit({"Box Breathing": make_text_guide(steps=1)}, {"Box Breathing": make_audio_guide()})
        report = await _pipeline(cache, text_generator).run(interventions, force=True)
        assert report.skipped == []
        assert len(cache.lookup_text("Box Breathing").steps) == 3

    @pytest.mark.asyncio
    async def test_guides_outside_catalog_are_kept(self, cache, interventions, text_generator) -> None:
        cache.commit({"Retired Practice": make_text_guide("Retired Practice")}, {})
        await _pipeline(cache, text_generator).run(interventions)
        assert cache.has_text("Retired Practice")

    @pytest.mark.asyncio
    async def test_corrupt_store_raises_without_force(
        self, cache, cache_dir: Path, interventions, text_generator
    ) -> None:
        write_generation(cache_dir, text="{broken")
        with pytest.raises(CacheCorrupt):
            await _pipeline(cache, text_generator).run(interventions)

    @pytest.mark.asyncio
    async def test_corrupt_store_rebuilt_with_force(
        self, cache_dir: Path, interventions, text_generator
    ) -> None:
        write_generation(cache_dir, text="{broken", audio="{broken")
        cache = GuideCache(cache_dir)
        report = await _pipeline(cache, text_generator).run(interventions, force=True)
        assert report.generated == list(TITLES)
        assert GuideCache(cache_dir).load().metadata.total_interventions == 3

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, cache, interventions, text_generator) -> None:
        with patch("lunara.guides.cache.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(CacheWriteError):
                await _pipeline(cache, text_generator).run(interventions)
        assert not cache.exists()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestComposeNarration:
    def test_layout(self) -> None:
        guide = TextGuide(
            intervention_title="Box Breathing",
            steps=(
                GuideStep(1, "Sit tall", breathing_cue="Breathe in."),
                GuideStep(2, "Relax your jaw"),
            ),
            reflection_question="How do you feel?",
            estimated_time_seconds=60,
            generated_at=FIXED_NOW,
            introduction="Welcome.",
        )
        assert compose_narration(guide) == (
            "Welcome.\n\nStep 1. Sit tall Breathe in.\n\nStep 2. Relax your jaw\n\nHow do you feel?"
        )


class TestFromSettings:
    def test_no_keys_means_no_synthesizer(self, tmp_path: Path) -> None:
        settings = Settings(
            openai_api_key="", elevenlabs_api_key="", guide_cache_dir=tmp_path
        )
        pipeline = GuideGenerationPipeline.from_settings(settings)
        assert pipeline._speech is None
        assert pipeline._cache.directory == tmp_path

    def test_synthesizer_enabled_with_key(self, tmp_path: Path) -> None:
        settings = Settings(elevenlabs_api_key="xi-test", guide_cache_dir=tmp_path)
        pipeline = GuideGenerationPipeline.from_settings(settings)
        assert pipeline._speech is not None

    @pytest.mark.asyncio
    async def test_empty_narration_falls_back(self, cache, synthesizer) -> None:
        generator = FakeTextGenerator(narration="   ")
        report = await _pipeline(cache, generator, synthesizer).run([make_intervention()])
        audio = cache.lookup_audio("Box Breathing")
        assert audio.narration_script.startswith("Settle in somewhere comfortable.")
        assert any("Empty narration" in e for e in report.errors)
