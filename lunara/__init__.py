"""Lunara — cycle-aware self-care interventions.

Subpackages:
    cycle/   — Phase detection from a last-period date
    catalog/ — Static, phase-tagged intervention catalog
    guides/  — Generated text/audio guide cache, generation pipeline, splitter
    routers/ — Thin FastAPI surface over the above
"""

__version__ = "0.1.0"
