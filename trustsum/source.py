"""
Source Input – Loading & Quality Gate
======================================
Reads a Markdown document, reorganises it by its top-level headings and
rejects inputs too small to summarise meaningfully.  The pipeline itself
never sees a rejected document.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from trustsum.errors import InputQualityError

logger = logging.getLogger(__name__)

MIN_SOURCE_LENGTH = 100
SECTION_SEPARATOR = "\n\n---\n\n"

_HEADING_SPLIT = re.compile(r"(?=^#\s)", re.MULTILINE)


def chunk_by_heading(text: str) -> list[str]:
    """Split *text* before every level-1 heading; drop empty sections."""
    return [section.strip() for section in _HEADING_SPLIT.split(text) if section.strip()]


def normalize_source(text: str) -> str:
    """Re-join heading sections with a horizontal-rule separator."""
    return SECTION_SEPARATOR.join(chunk_by_heading(text))


def assess_input(text: str) -> str | None:
    """Return a warning if *text* is unsuitable for summarisation."""
    if not text or not text.strip():
        return "Input document is empty."
    if len(text) < MIN_SOURCE_LENGTH:
        return (
            f"Input document is very short (<{MIN_SOURCE_LENGTH} characters). "
            "Summary may be unreliable."
        )
    return None


def prepare_source(text: str) -> str:
    """Normalise *text* and enforce the quality gate.

    Raises
    ------
    InputQualityError
        If the normalised text fails :func:`assess_input`.
    """
    normalized = normalize_source(text)
    warning = assess_input(normalized)
    if warning:
        raise InputQualityError(warning)
    return normalized


def load_source(path: str | Path) -> str:
    """Read a UTF-8 document from *path* and prepare it for the pipeline."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Input file '{path}' not found. Place your markdown at that path and rerun."
        )
    text = path.read_text(encoding="utf-8")
    logger.info("Loaded %s (%d chars)", path, len(text))
    return prepare_source(text)
