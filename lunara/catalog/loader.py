"""Load and validate the Lunara intervention catalog.

The catalog lives in ``interventions.yaml`` alongside this module.  It is
static input data: loaded once, cached, and never mutated.  Call
``reload_catalog()`` to re-read from disk after editing the YAML.

Usage::

    from lunara.catalog.loader import get_catalog

    catalog = get_catalog()
    for intervention in catalog.for_phase(Phase.luteal):
        print(intervention.title)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

import yaml

from lunara.cycle.phase_calculator import Phase

logger = logging.getLogger("lunara.catalog")

# Path to the YAML file sitting next to this module
_CATALOG_PATH = Path(__file__).parent / "interventions.yaml"


@dataclass(frozen=True)
class Intervention:
    """A short, phase-tagged self-care practice.

    Attributes:
        title:             Unique key; also the key of any generated guide.
        description:       One-sentence summary of what the practice does.
        duration_minutes:  Expected practice length.
        location:          Where the practice is done.
        research_citation: Supporting reference shown with the practice.
        instructions:      Ordered plain-text steps (used as the guide fallback).
        modification:      Optional easier / alternative variant.
        phase_tags:        Phases the practice is recommended for.
        category:          Practice category (movement, breathwork, ...).
        benefit:           Short benefit label for cards.
        equipment:         Optional equipment needed.
    """

    title: str
    description: str
    duration_minutes: int
    location: str
    research_citation: str
    instructions: tuple[str, ...]
    modification: str | None = None
    phase_tags: frozenset[Phase] = field(default_factory=frozenset)
    category: str | None = None
    benefit: str | None = None
    equipment: str | None = None

    def is_tagged(self, phase: Phase) -> bool:
        return Phase(phase) in self.phase_tags

    @property
    def primary_phase(self) -> Phase | None:
        """First tagged phase in cycle order (used when prompting)."""
        for phase in Phase:
            if phase in self.phase_tags:
                return phase
        return None


class InterventionCatalog:
    """Read-only, title-indexed collection of interventions.

    Preserves file order.  Titles must be unique; lookups are exact and
    case-sensitive.
    """

    def __init__(self, interventions: Iterable[Intervention], version: str = "1.0") -> None:
        self.version = version
        self._by_title: dict[str, Intervention] = {}
        for intervention in interventions:
            if intervention.title in self._by_title:
                raise CatalogValidationError(
                    f"Duplicate intervention title: {intervention.title!r}"
                )
            self._by_title[intervention.title] = intervention

    def __len__(self) -> int:
        return len(self._by_title)

    def __iter__(self) -> Iterator[Intervention]:
        return iter(self._by_title.values())

    def __contains__(self, title: object) -> bool:
        return title in self._by_title

    def all(self) -> list[Intervention]:
        return list(self._by_title.values())

    def titles(self) -> list[str]:
        return list(self._by_title)

    def get(self, title: str) -> Intervention | None:
        return self._by_title.get(title)

    def for_phase(self, phase: Phase) -> list[Intervention]:
        """Return interventions tagged with ``phase``, in catalog order."""
        phase = Phase(phase)
        return [i for i in self._by_title.values() if phase in i.phase_tags]


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class CatalogValidationError(ValueError):
    """Raised when interventions.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError:      If the file does not exist.
        CatalogValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Intervention catalog not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise CatalogValidationError(f"YAML parse error in {path}: {exc}") from exc


def catalog_from_dict(raw: dict) -> InterventionCatalog:
    """Validate a parsed catalog dict and build an InterventionCatalog.

    All problems are collected and reported together.

    Args:
        raw: Parsed YAML dict with an ``interventions`` list.

    Returns:
        Validated InterventionCatalog.

    Raises:
        CatalogValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []
    version = str(raw.get("version", "1.0"))
    entries = raw.get("interventions")
    if not isinstance(entries, list) or not entries:
        raise CatalogValidationError("'interventions' must be a non-empty list")

    interventions: list[Intervention] = []
    seen: set[str] = set()

    for idx, entry in enumerate(entries):
        where = f"interventions[{idx}]"
        if not isinstance(entry, dict):
            errors.append(f"{where} must be a mapping")
            continue

        def _require(key: str) -> Any:
            if key not in entry or entry[key] in (None, ""):
                errors.append(f"Missing required key '{key}' in {where}")
                return None
            return entry[key]

        title = _require("title")
        description = _require("description")
        location = _require("location")
        research = _require("research_citation")
        duration = _require("duration_minutes")
        instructions = _require("instructions")
        tags_raw = _require("phase_tags")

        if title is not None:
            title = str(title)
            if title in seen:
                errors.append(f"Duplicate title {title!r} in {where}")
            seen.add(title)
            where = f"{where} ({title!r})"

        if duration is not None:
            try:
                duration = int(duration)
                if duration <= 0:
                    errors.append(f"{where}.duration_minutes must be positive")
            except (TypeError, ValueError):
                errors.append(f"{where}.duration_minutes must be an integer, got {duration!r}")

        if instructions is not None and (
            not isinstance(instructions, list)
            or not all(isinstance(s, str) and s.strip() for s in instructions)
        ):
            errors.append(f"{where}.instructions must be a list of non-empty strings")

        phase_tags: set[Phase] = set()
        for tag in tags_raw or []:
            try:
                phase_tags.add(Phase(tag))
            except ValueError:
                errors.append(f"{where}.phase_tags has unknown phase {tag!r}")

        if errors:
            continue

        interventions.append(
            Intervention(
                title=title,
                description=str(description),
                duration_minutes=duration,
                location=str(location),
                research_citation=str(research),
                instructions=tuple(instructions),
                modification=entry.get("modification"),
                phase_tags=frozenset(phase_tags),
                category=entry.get("category"),
                benefit=entry.get("benefit"),
                equipment=entry.get("equipment"),
            )
        )

    if errors:
        raise CatalogValidationError(
            f"Intervention catalog has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return InterventionCatalog(interventions, version=version)


def load_catalog(path: Path | None = None) -> InterventionCatalog:
    """Load and validate the catalog from disk.

    Args:
        path: Override path to YAML. Uses the bundled interventions.yaml by default.
    """
    target = path or _CATALOG_PATH
    catalog = catalog_from_dict(_load_yaml(target))
    logger.info(
        "Loaded %d interventions (catalog v%s) from %s",
        len(catalog),
        catalog.version,
        target,
    )
    return catalog


# ---------------------------------------------------------------------------
# Global singleton with reload support
# ---------------------------------------------------------------------------

_catalog: InterventionCatalog | None = None
_catalog_lock = threading.Lock()


def get_catalog(path: Path | None = None) -> InterventionCatalog:
    """Return the process-wide catalog, loading it on first call.

    ``path`` only matters on the first call; later calls return the cached
    instance.  Thread-safe.
    """
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:  # double-checked locking
                _catalog = load_catalog(path)
    return _catalog


def reload_catalog(path: Path | None = None) -> InterventionCatalog:
    """Re-read the catalog from disk and replace the singleton.

    If validation fails the previous catalog is kept and the error re-raised.
    """
    global _catalog
    new_catalog = load_catalog(path)  # validate before acquiring lock
    with _catalog_lock:
        _catalog = new_catalog
    return new_catalog
