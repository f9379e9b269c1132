"""Pre-generated intervention guides.

Modules:
    models        — GuideStep / TextGuide / AudioGuide / GuideCacheMetadata
    cache         — Durable title-keyed guide store (atomic full rewrite)
    collaborators — Text-generation and speech-synthesis protocols + clients
    parsing       — Defensive parsing of model output into guide steps
    prompts       — Prompt builders
    pipeline      — Batch generation over the catalog
    splitter      — Combined text+audio map → two-store layout
    cli           — ``lunara-guides`` command
"""

from lunara.guides.cache import (
    CacheCorrupt,
    CacheMissing,
    CacheWriteError,
    GuideCache,
    GuideCacheError,
)
from lunara.guides.collaborators import (
    CollaboratorMalformedResponse,
    CollaboratorUnavailable,
)
from lunara.guides.models import AudioGuide, GuideCacheMetadata, GuideStep, TextGuide
from lunara.guides.pipeline import GenerationReport, GuideGenerationPipeline
from lunara.guides.splitter import SplitResult, merge_split, split_combined

__all__ = [
    "AudioGuide",
    "CacheCorrupt",
    "CacheMissing",
    "CacheWriteError",
    "CollaboratorMalformedResponse",
    "CollaboratorUnavailable",
    "GenerationReport",
    "GuideCache",
    "GuideCacheError",
    "GuideCacheMetadata",
    "GuideGenerationPipeline",
    "GuideStep",
    "SplitResult",
    "TextGuide",
    "merge_split",
    "split_combined",
]
