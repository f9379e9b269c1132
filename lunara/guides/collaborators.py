"""External collaborators used by the guide generation pipeline.

The pipeline depends only on the two small protocols below.  Concrete
implementations talk to OpenAI (text) and ElevenLabs (speech); tests pass
in fakes.  Clients are constructed by the caller and handed to the
pipeline, never created as module-level singletons.

Environment variables (via ``lunara.config.Settings``):
    OPENAI_API_KEY      — enables OpenAITextGenerator
    ELEVENLABS_API_KEY  — enables ElevenLabsSynthesizer
    ELEVENLABS_VOICE_ID — voice used for narration
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
import openai

from lunara.config import Settings

logger = logging.getLogger("lunara.guides.collaborators")

_ELEVENLABS_API_BASE = "https://api.elevenlabs.io"


class CollaboratorError(Exception):
    """Base class for text-generation / speech-synthesis failures."""


class CollaboratorUnavailable(CollaboratorError):
    """The collaborator is not configured or the call failed in transport."""


class CollaboratorMalformedResponse(CollaboratorError):
    """The collaborator answered, but not with anything usable."""


class TextGenerator(Protocol):
    """Produces free-form text (expected to contain JSON) from a prompt."""

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        ...


class SpeechSynthesizer(Protocol):
    """Turns narration text into encoded audio.

    Returns None for a non-success answer; raises CollaboratorUnavailable
    when it cannot be reached at all.
    """

    async def synthesize(self, text: str) -> bytes | None:
        ...


class OpenAITextGenerator:
    """Chat-completions backed TextGenerator."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4",
        client: openai.AsyncOpenAI | None = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the generator.

        Args:
            api_key: OpenAI API key.  Without a key or client every call
                     raises CollaboratorUnavailable.
            model:   Chat model name.
            client:  Optional pre-configured AsyncOpenAI client (for testing).
            timeout: Per-request timeout in seconds.
        """
        if client is None and api_key:
            client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout)
        self._client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAITextGenerator":
        return cls(api_key=settings.openai_api_key or None, model=settings.openai_model)

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        if self._client is None:
            raise CollaboratorUnavailable("OpenAI API key not configured")

        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.OpenAIError as exc:
            raise CollaboratorUnavailable(f"OpenAI request failed: {exc}") from exc

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""


class ElevenLabsSynthesizer:
    """ElevenLabs text-to-speech SpeechSynthesizer.

    API base: https://api.elevenlabs.io

    Endpoints used:
        /v1/text-to-speech/{voice_id} — returns audio/mpeg bytes
    """

    def __init__(
        self,
        api_key: str | None = None,
        voice_id: str = "pNInz6obpgDQGcFmaJgB",
        model_id: str = "eleven_monolingual_v1",
        stability: float = 0.6,
        similarity_boost: float = 0.7,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the synthesizer.

        Args:
            api_key:          ElevenLabs API key (ELEVENLABS_API_KEY env var).
            voice_id:         Voice used for narration.
            model_id:         Synthesis model.
            stability:        Voice stability setting (0.0–1.0).
            similarity_boost: Voice similarity setting (0.0–1.0).
            http_client:      Optional pre-configured httpx client (for testing).
            timeout:          Per-request timeout in seconds.
        """
        self._api_key = api_key or ""
        self.voice_id = voice_id
        self.model_id = model_id
        self.stability = stability
        self.similarity_boost = similarity_boost
        self._http_client = http_client
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ElevenLabsSynthesizer":
        return cls(
            api_key=settings.elevenlabs_api_key or None,
            voice_id=settings.elevenlabs_voice_id,
            model_id=settings.elevenlabs_model_id,
            stability=settings.voice_stability,
            similarity_boost=settings.voice_similarity_boost,
        )

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def synthesize(self, text: str) -> bytes | None:
        """Synthesize narration audio.

        Returns:
            MPEG audio bytes, or None if ElevenLabs answered with a
            non-success status or there was nothing to narrate.

        Raises:
            CollaboratorUnavailable: No API key, or the request failed in transport.
        """
        if not self._api_key:
            raise CollaboratorUnavailable("ElevenLabs API key not configured")
        if not text or not text.strip():
            return None

        url = f"{_ELEVENLABS_API_BASE}/v1/text-to-speech/{self.voice_id}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self._api_key,
        }
        body = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {
                "stability": self.stability,
                "similarity_boost": self.similarity_boost,
            },
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=headers, json=body)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise CollaboratorUnavailable(f"ElevenLabs request failed: {exc}") from exc

        if not response.is_success:
            logger.warning(
                "ElevenLabs returned %d for voice %s: %s",
                response.status_code,
                self.voice_id,
                response.reason_phrase,
            )
            return None

        return response.content
