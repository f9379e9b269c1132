"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Every field has a default so the core library and the batch CLI run
    without any environment at all.  Missing collaborator credentials are
    not an error: they switch the generation pipeline onto its fallbacks.
    """

    # --- App ---
    app_name: str = "Lunara"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    # --- Cycle ---
    default_cycle_length: int = 28

    # --- Catalog ---
    catalog_path: Path | None = None  # None = bundled interventions.yaml

    # --- Guide cache ---
    guide_cache_dir: Path = Path("data/guides")
    guide_cache_version: str = "1.0.0"

    # --- Text generation (OpenAI) ---
    openai_api_key: str = ""  # empty = collaborator unavailable
    openai_model: str = "gpt-4"
    text_guide_max_tokens: int = 1200
    narration_max_tokens: int = 1000
    generation_temperature: float = 0.7

    # --- Speech synthesis (ElevenLabs) ---
    elevenlabs_api_key: str = ""  # empty = text-only audio guides
    elevenlabs_voice_id: str = "pNInz6obpgDQGcFmaJgB"
    elevenlabs_model_id: str = "eleven_monolingual_v1"
    voice_stability: float = 0.6
    voice_similarity_boost: float = 0.7

    # --- Pacing ---
    generation_delay_seconds: float = 1.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
