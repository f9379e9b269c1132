"""Durable, title-keyed cache of generated guides.

Every commit writes a new *generation*: a directory holding two independent
JSON artifacts.  A small manifest names the live generation::

    current.json  {"generation": "<id>", "committed_at": ...}
    generations/<id>/text_guides.json  {version, generated_at, total_interventions, guides: {title: TextGuide}}
    generations/<id>/audio_guides.json  same shape, guides: {title: AudioGuide}

The text/audio split lets the common "show me the text guide" path load a
few kilobytes of text without touching the base64 audio payloads.

``commit()`` writes the new generation completely, then swaps the manifest
with a single ``os.replace``.  That swap is the only step that publishes
anything, so a reader sees either the previous complete store or the new
one.  A GuideCache instance pins the generation it first reads; its text and
audio views always come from the same commit until ``invalidate()``.

Usage::

    cache = GuideCache(Path("data/guides"))
    guide = cache.lookup_text("Box Breathing")   # TextGuide or None
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Generic, Mapping, TypeVar

from lunara.guides.models import AudioGuide, GuideCacheMetadata, TextGuide, utc_now

logger = logging.getLogger("lunara.guides.cache")

DEFAULT_CACHE_VERSION = "1.0.0"
MANIFEST_FILENAME = "current.json"
GENERATIONS_DIRNAME = "generations"
TEXT_STORE_FILENAME = "text_guides.json"
AUDIO_STORE_FILENAME = "audio_guides.json"

# Generations kept on disk after a commit: the live one plus its predecessor,
# so a reader pinned to the previous commit can still finish loading it.
KEEP_GENERATIONS = 2

G = TypeVar("G", TextGuide, AudioGuide)


class GuideCacheError(Exception):
    """Base class for guide cache failures."""


class CacheMissing(GuideCacheError):
    """No store has been written yet.  Callers treat this as "no guides"."""


class CacheCorrupt(GuideCacheError):
    """The persisted store is unreadable or fails its own metadata check."""


class CacheWriteError(GuideCacheError):
    """The store could not be written; the previous store is left in place."""


@dataclass(frozen=True)
class GuideStore(Generic[G]):
    """One loaded artifact: its metadata plus a read-only guide map."""

    metadata: GuideCacheMetadata
    guides: Mapping[str, G]


@dataclass(frozen=True)
class GuideCacheSnapshot:
    """Both artifacts as returned by ``GuideCache.load()``."""

    metadata: GuideCacheMetadata
    text_guides: Mapping[str, TextGuide]
    audio_guides: Mapping[str, AudioGuide]
    audio_metadata: GuideCacheMetadata


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _read_json(path: Path, what: str) -> object:
    """Parse a JSON file; anything unreadable is CacheCorrupt.

    FileNotFoundError is left to the caller, which decides whether absence
    means "nothing generated yet" or a broken store.
    """
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CacheCorrupt(f"{what} {path} is not valid UTF-8 JSON: {exc}") from exc
    except OSError as exc:
        raise CacheCorrupt(f"{what} {path} cannot be read: {exc}") from exc


def _read_manifest(path: Path) -> str:
    """Return the live generation id.

    Raises:
        CacheMissing: If nothing has been committed yet.
        CacheCorrupt: If the manifest is unreadable or names no generation.
    """
    try:
        raw = _read_json(path, "Guide manifest")
    except FileNotFoundError as exc:
        raise CacheMissing(f"Guide store not found: {path}") from exc

    generation = raw.get("generation") if isinstance(raw, dict) else None
    if not isinstance(generation, str) or not generation or "/" in generation or "\\" in generation:
        raise CacheCorrupt(f"Guide manifest {path} does not name a generation")
    return generation


def _read_store(path: Path, from_json: Callable[[dict], G]) -> GuideStore[G]:
    """Parse one artifact from disk and verify it against its metadata.

    Raises:
        CacheCorrupt: If the file is missing from its generation, is not
                      valid JSON, does not match the schema, or its count
                      disagrees with its guide map.
    """
    try:
        raw = _read_json(path, "Guide store")
    except FileNotFoundError as exc:
        raise CacheCorrupt(f"Guide store {path} named by the manifest is missing") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("guides"), dict):
        raise CacheCorrupt(f"Guide store {path} has no 'guides' mapping")

    try:
        metadata = GuideCacheMetadata.from_json(raw)
    except ValueError as exc:
        raise CacheCorrupt(f"Guide store {path} has invalid metadata: {exc}") from exc

    guides_raw: dict = raw["guides"]
    if metadata.total_interventions != len(guides_raw):
        raise CacheCorrupt(
            f"Guide store {path} claims {metadata.total_interventions} "
            f"interventions but holds {len(guides_raw)}"
        )

    guides: dict[str, G] = {}
    for title, entry in guides_raw.items():
        try:
            guide = from_json(entry)
        except (ValueError, TypeError) as exc:
            raise CacheCorrupt(f"Guide {title!r} in {path} is invalid: {exc}") from exc
        if guide.intervention_title != title:
            raise CacheCorrupt(
                f"Guide stored under {title!r} in {path} belongs to "
                f"{guide.intervention_title!r}"
            )
        guides[title] = guide

    return GuideStore(metadata=metadata, guides=MappingProxyType(guides))


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def _check_keys(guides: Mapping[str, TextGuide | AudioGuide], kind: str) -> None:
    for title, guide in guides.items():
        if guide.intervention_title != title:
            raise ValueError(
                f"{kind} guide for {guide.intervention_title!r} filed under {title!r}"
            )


def _document(metadata: GuideCacheMetadata, guides: Mapping[str, TextGuide | AudioGuide]) -> dict:
    doc = metadata.to_json()
    doc["guides"] = {title: guide.to_json() for title, guide in guides.items()}
    if doc["total_interventions"] != len(doc["guides"]):
        raise CacheCorrupt(
            f"Refusing to write {len(doc['guides'])} guides with "
            f"total_interventions={doc['total_interventions']}"
        )
    return doc


def _write_json(path: Path, doc: dict) -> None:
    with path.open("w", encoding="utf-8") as fh:
        json.dump(doc, fh, indent=2, ensure_ascii=False)
        fh.flush()
        os.fsync(fh.fileno())


def _swap_manifest(path: Path, generation: str, committed_at: datetime) -> None:
    """Point the manifest at ``generation`` with one atomic rename."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        _write_json(tmp, {"generation": generation, "committed_at": committed_at.isoformat()})
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def _new_generation_id() -> str:
    # Sortable by creation time; the suffix keeps same-instant commits apart
    return f"{utc_now():%Y%m%dT%H%M%S%fZ}-{uuid.uuid4().hex[:12]}"


class GuideCache:
    """Title-keyed store of generated text and audio guides.

    Lookups are exact, case-sensitive title matches.  A title with no stored
    guide (or no store at all yet) returns None; a corrupt store raises.
    """

    def __init__(self, directory: Path | str, version: str = DEFAULT_CACHE_VERSION) -> None:
        self.directory = Path(directory)
        self.version = version
        self._lock = threading.Lock()
        self._generation: str | None = None
        self._text: GuideStore[TextGuide] | None = None
        self._audio: GuideStore[AudioGuide] | None = None

    @property
    def manifest_path(self) -> Path:
        return self.directory / MANIFEST_FILENAME

    @property
    def generations_dir(self) -> Path:
        return self.directory / GENERATIONS_DIRNAME

    def generation_dir(self, generation: str) -> Path:
        return self.generations_dir / generation

    @property
    def generation(self) -> str | None:
        """Generation this instance reads from (pinned on first load)."""
        if self._generation is not None:
            return self._generation
        try:
            return _read_manifest(self.manifest_path)
        except CacheMissing:
            return None

    @property
    def text_path(self) -> Path | None:
        generation = self.generation
        return self.generation_dir(generation) / TEXT_STORE_FILENAME if generation else None

    @property
    def audio_path(self) -> Path | None:
        generation = self.generation
        return self.generation_dir(generation) / AUDIO_STORE_FILENAME if generation else None

    def exists(self) -> bool:
        return self.manifest_path.exists()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _pinned_generation_dir(self) -> Path:
        """Directory of the pinned generation, pinning the live one if needed.

        Caller must hold ``self._lock``.
        """
        if self._generation is not None:
            pinned = self.generation_dir(self._generation)
            if pinned.is_dir():
                return pinned
            # Pruned by later commits elsewhere; start over on the live one
            logger.warning(
                "Pinned guide generation %s no longer exists; re-reading %s",
                self._generation,
                self.manifest_path,
            )
            self._text = None
            self._audio = None
        self._generation = _read_manifest(self.manifest_path)
        return self.generation_dir(self._generation)

    def text_store(self) -> GuideStore[TextGuide]:
        """Return the text artifact, reading it from disk on first use."""
        store = self._text
        if store is None:
            with self._lock:
                if self._text is None:
                    directory = self._pinned_generation_dir()
                    self._text = _read_store(directory / TEXT_STORE_FILENAME, TextGuide.from_json)
                    logger.info(
                        "Loaded %d text guides (v%s, generation %s)",
                        self._text.metadata.total_interventions,
                        self._text.metadata.version,
                        self._generation,
                    )
                store = self._text
        return store

    def audio_store(self) -> GuideStore[AudioGuide]:
        """Return the audio artifact, reading it from disk on first use."""
        store = self._audio
        if store is None:
            with self._lock:
                if self._audio is None:
                    directory = self._pinned_generation_dir()
                    self._audio = _read_store(directory / AUDIO_STORE_FILENAME, AudioGuide.from_json)
                    logger.info(
                        "Loaded %d audio guides (v%s, generation %s)",
                        self._audio.metadata.total_interventions,
                        self._audio.metadata.version,
                        self._generation,
                    )
                store = self._audio
        return store

    def load(self) -> GuideCacheSnapshot:
        """Load both artifacts of one generation.

        Raises:
            CacheMissing: If nothing has been committed yet.
            CacheCorrupt: If either artifact fails validation.
        """
        text = self.text_store()
        audio = self.audio_store()
        return GuideCacheSnapshot(
            metadata=text.metadata,
            text_guides=text.guides,
            audio_guides=audio.guides,
            audio_metadata=audio.metadata,
        )

    def metadata(self) -> GuideCacheMetadata | None:
        """Text-store metadata, or None if nothing has been generated yet."""
        try:
            return self.text_store().metadata
        except CacheMissing:
            return None

    def invalidate(self) -> None:
        """Drop in-memory copies so the next lookup re-reads the live generation."""
        with self._lock:
            self._generation = None
            self._text = None
            self._audio = None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup_text(self, title: str) -> TextGuide | None:
        try:
            store = self.text_store()
        except CacheMissing:
            logger.debug("No text guide store yet; %r has no guide", title)
            return None
        return store.guides.get(title)

    def lookup_audio(self, title: str) -> AudioGuide | None:
        try:
            store = self.audio_store()
        except CacheMissing:
            logger.debug("No audio guide store yet; %r has no guide", title)
            return None
        return store.guides.get(title)

    def has_text(self, title: str) -> bool:
        return self.lookup_text(title) is not None

    def has_audio(self, title: str) -> bool:
        return self.lookup_audio(title) is not None

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(
        self,
        text_guides: Mapping[str, TextGuide],
        audio_guides: Mapping[str, AudioGuide],
        *,
        generated_at: datetime | None = None,
    ) -> GuideCacheMetadata:
        """Atomically replace the whole store with the given guide maps.

        Both artifacts are fully written into a fresh generation directory
        before the manifest is swapped to it.  In-memory state is updated
        only after the swap.

        Args:
            text_guides:  Complete title → TextGuide map (not a patch).
            audio_guides: Complete title → AudioGuide map (not a patch).
            generated_at: Override the metadata timestamp (defaults to now).

        Returns:
            Metadata of the new text store.

        Raises:
            ValueError:      If a guide is filed under a title that is not its own.
            CacheWriteError: If writing the generation or swapping the manifest fails.
        """
        text = dict(text_guides)
        audio = dict(audio_guides)
        _check_keys(text, "text")
        _check_keys(audio, "audio")

        now = generated_at or utc_now()
        text_meta = GuideCacheMetadata.for_guides(text, self.version, now)
        audio_meta = GuideCacheMetadata.for_guides(audio, self.version, now)
        text_doc = _document(text_meta, text)
        audio_doc = _document(audio_meta, audio)

        generation = _new_generation_id()
        target = self.generation_dir(generation)

        with self._lock:
            try:
                target.mkdir(parents=True)
                _write_json(target / TEXT_STORE_FILENAME, text_doc)
                _write_json(target / AUDIO_STORE_FILENAME, audio_doc)
                _swap_manifest(self.manifest_path, generation, utc_now())
            except OSError as exc:
                shutil.rmtree(target, ignore_errors=True)
                raise CacheWriteError(
                    f"Failed to write guide store in {self.directory}: {exc}"
                ) from exc

            self._generation = generation
            self._text = GuideStore(metadata=text_meta, guides=MappingProxyType(text))
            self._audio = GuideStore(metadata=audio_meta, guides=MappingProxyType(audio))

        logger.info(
            "Committed %d text / %d audio guides (v%s) as generation %s in %s",
            len(text),
            len(audio),
            self.version,
            generation,
            self.directory,
        )
        self._prune(keep=generation)
        return text_meta

    def _prune(self, keep: str) -> None:
        """Remove generations older than the newest KEEP_GENERATIONS."""
        try:
            names = sorted(p.name for p in self.generations_dir.iterdir() if p.is_dir())
        except OSError as exc:
            logger.warning("Could not list guide generations in %s: %s", self.generations_dir, exc)
            return

        retained = set(names[-KEEP_GENERATIONS:]) | {keep}
        for name in names:
            if name in retained:
                continue
            try:
                shutil.rmtree(self.generation_dir(name))
            except OSError as exc:
                logger.warning("Could not prune guide generation %s: %s", name, exc)
            else:
                logger.debug("Pruned guide generation %s", name)
