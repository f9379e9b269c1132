"""Split a combined text+audio guide map into the two-store layout.

Older generation runs produced one combined mapping::

    {title: {"text": TextGuide, "audio": AudioGuide}}

The runtime reads text and audio from separate stores so the text path
never parses audio payloads.  ``split_combined`` partitions the combined
mapping; ``merge_split`` is its inverse.  Both are pure: values are passed
through untouched, so any value type works (parsed models or raw dicts).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Generic, Mapping, TypeVar

from lunara.guides.cache import DEFAULT_CACHE_VERSION, CacheCorrupt
from lunara.guides.models import AudioGuide, GuideCacheMetadata, TextGuide, utc_now

logger = logging.getLogger("lunara.guides.splitter")

T = TypeVar("T")
A = TypeVar("A")


@dataclass(frozen=True)
class SplitResult(Generic[T, A]):
    """Two independent maps plus their metadata blocks.

    Attributes:
        text_guides:    title → text value.
        audio_guides:   title → audio value.
        text_metadata:  Metadata whose count matches ``text_guides``.
        audio_metadata: Metadata whose count matches ``audio_guides``.
        skipped:        Titles missing a ``text`` or ``audio`` value.
    """

    text_guides: dict[str, T]
    audio_guides: dict[str, A]
    text_metadata: GuideCacheMetadata
    audio_metadata: GuideCacheMetadata
    skipped: list[str] = field(default_factory=list)


def split_combined(
    combined: Mapping[str, Mapping[str, Any]],
    *,
    version: str = DEFAULT_CACHE_VERSION,
    generated_at: datetime | None = None,
) -> SplitResult:
    """Partition ``title → {text, audio}`` into two title-keyed maps.

    Entries lacking either a ``text`` or an ``audio`` value are skipped and
    logged.  The input is not modified.

    Args:
        combined:     Combined guide mapping.
        version:      Version string for both metadata blocks.
        generated_at: Metadata timestamp (defaults to now).

    Returns:
        SplitResult with one entry per complete title in each map.
    """
    text_guides: dict[str, Any] = {}
    audio_guides: dict[str, Any] = {}
    skipped: list[str] = []

    for title, entry in combined.items():
        text = entry.get("text") if isinstance(entry, Mapping) else None
        audio = entry.get("audio") if isinstance(entry, Mapping) else None
        if text is None or audio is None:
            logger.warning("Skipping %r: combined entry lacks text or audio", title)
            skipped.append(title)
            continue
        text_guides[title] = text
        audio_guides[title] = audio

    now = generated_at or utc_now()
    result = SplitResult(
        text_guides=text_guides,
        audio_guides=audio_guides,
        text_metadata=GuideCacheMetadata.for_guides(text_guides, version, now),
        audio_metadata=GuideCacheMetadata.for_guides(audio_guides, version, now),
        skipped=skipped,
    )
    logger.info(
        "Split %d combined entries into %d text / %d audio guides (%d skipped)",
        len(combined),
        len(text_guides),
        len(audio_guides),
        len(skipped),
    )
    return result


def merge_split(
    text_guides: Mapping[str, T], audio_guides: Mapping[str, A]
) -> dict[str, dict[str, T | A]]:
    """Re-combine split maps; titles present in only one map are dropped."""
    return {
        title: {"text": text, "audio": audio_guides[title]}
        for title, text in text_guides.items()
        if title in audio_guides
    }


def parse_combined(raw: Mapping[str, Any]) -> dict[str, dict[str, TextGuide | AudioGuide]]:
    """Parse raw JSON of a combined store into guide models.

    Accepts either the bare ``{title: {text, audio}}`` mapping or one wrapped
    in a ``guides`` key.  A half that is missing stays missing so that
    ``split_combined`` can skip it.

    Raises:
        CacheCorrupt: If a present half does not match the guide schema or
                      belongs to a different title than its key.
    """
    guides = raw.get("guides", raw) if isinstance(raw, Mapping) else None
    if not isinstance(guides, Mapping):
        raise CacheCorrupt("Combined guide file is not a mapping of titles")

    parsed: dict[str, dict[str, TextGuide | AudioGuide]] = {}
    for title, entry in guides.items():
        if not isinstance(entry, Mapping):
            parsed[title] = {}
            continue
        halves: dict[str, TextGuide | AudioGuide] = {}
        try:
            if entry.get("text") is not None:
                halves["text"] = TextGuide.from_json(entry["text"])
            if entry.get("audio") is not None:
                halves["audio"] = AudioGuide.from_json(entry["audio"])
        except (ValueError, TypeError) as exc:
            raise CacheCorrupt(f"Combined entry {title!r} is invalid: {exc}") from exc
        for half, guide in halves.items():
            if guide.intervention_title != title:
                raise CacheCorrupt(
                    f"Combined entry {title!r} holds a {half} guide for "
                    f"{guide.intervention_title!r}"
                )
        parsed[title] = halves
    return parsed


def load_combined_file(path: Path) -> dict[str, dict[str, TextGuide | AudioGuide]]:
    """Read and parse a combined JSON guide file.

    Raises:
        FileNotFoundError: If the file does not exist.
        CacheCorrupt:      If the file is not valid JSON or not a guide map.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CacheCorrupt(f"Combined guide file {path} is not valid UTF-8 JSON: {exc}") from exc
    return parse_combined(raw)
