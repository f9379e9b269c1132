"""Command-line entry points for guide maintenance.

Usage::

    lunara-guides generate [--force] [--cache-dir DIR]
    lunara-guides split combined.json [--cache-dir DIR]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from lunara.catalog.loader import get_catalog
from lunara.config import Settings, get_settings
from lunara.guides.cache import GuideCache, GuideCacheError
from lunara.guides.pipeline import GuideGenerationPipeline
from lunara.guides.splitter import load_combined_file, split_combined

logger = logging.getLogger("lunara.guides.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lunara-guides",
        description="Generate and maintain pre-generated intervention guides.",
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Guide cache directory (default: GUIDE_CACHE_DIR setting)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate guides for uncached interventions")
    gen.add_argument(
        "--force", action="store_true", help="Regenerate guides that are already cached"
    )

    split = sub.add_parser("split", help="Split a combined text+audio guide file")
    split.add_argument("input", type=Path, help="Combined guide JSON file")
    return parser


def _cache(settings: Settings, cache_dir: Path | None) -> GuideCache:
    return GuideCache(cache_dir or settings.guide_cache_dir, settings.guide_cache_version)


def _generate(settings: Settings, cache: GuideCache, force: bool) -> int:
    catalog = get_catalog(settings.catalog_path)
    pipeline = GuideGenerationPipeline.from_settings(settings, cache=cache)
    report = asyncio.run(pipeline.run(catalog, force=force))

    print(f"✓ Generated guides for {len(report.generated)} intervention(s)")
    if report.skipped:
        print(f"  {len(report.skipped)} already cached")
    print(f"✓ Text guides written to: {cache.text_path}")
    print(f"✓ Audio guides written to: {cache.audio_path}")
    if report.errors:
        print(f"\n⚠️  {len(report.errors)} issue(s) occurred:")
        for err in report.errors:
            print(f"  - {err}")
    return 0 if report.ok else 1


def _split(settings: Settings, cache: GuideCache, source: Path) -> int:
    combined = load_combined_file(source)
    result = split_combined(combined, version=settings.guide_cache_version)
    cache.commit(
        result.text_guides,
        result.audio_guides,
        generated_at=result.text_metadata.generated_at,
    )
    print(f"✓ Extracted {len(result.text_guides)} text guides to {cache.text_path}")
    print(f"✓ Extracted {len(result.audio_guides)} audio guides to {cache.audio_path}")
    if result.skipped:
        print(f"⚠️  Skipped {len(result.skipped)} incomplete entr(ies): {', '.join(result.skipped)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    cache = _cache(settings, args.cache_dir)
    try:
        if args.command == "generate":
            return _generate(settings, cache, args.force)
        return _split(settings, cache, args.input)
    except (GuideCacheError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
