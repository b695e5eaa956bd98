"""
Trust Aggregator – Verdict Fusion
==================================
The final pipeline stage.  It receives, for every candidate, its best
:class:`ValidationRun`, plus the consistency level, and produces the
:class:`TrustVerdict`:

1. Support ratio per candidate – ``supported / total`` (``0.0`` when
   nothing was judged).
2. Best summary – highest ratio, first occurrence on ties.
3. Source confidence – ``≥ 0.90`` High, ``≥ 0.60`` Medium, else Low.
4. Fusion with consistency (first match wins)::

       (High,   High)          → Very Trustworthy
       (High,   *) / (*, High) → Trustworthy
       (Medium, Medium)        → Check Before Using
       anything else           → Not Reliable

5. Review sentences – the best summary's unsupported sentences, surfaced
   only when its confidence is not High.

Everything here is a pure function of its inputs: no I/O, no randomness.
"""

from __future__ import annotations

import logging
from typing import Mapping

from trustsum.schemas import (
    ConfidenceLevel,
    ConsistencyLevel,
    TrustLevel,
    TrustVerdict,
    ValidationRun,
)

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 0.90
MEDIUM_CONFIDENCE_THRESHOLD = 0.60


def support_ratio(run: ValidationRun) -> float:
    return run.support_ratio


def band_source_confidence(ratio: float) -> ConfidenceLevel:
    if ratio >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if ratio >= MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def fuse_trust(
    confidence: ConfidenceLevel, consistency: ConsistencyLevel
) -> TrustLevel:
    """Fuse the two bands into one trust label."""
    confidence_high = confidence is ConfidenceLevel.HIGH
    consistency_high = consistency is ConsistencyLevel.HIGH

    if confidence_high and consistency_high:
        return TrustLevel.VERY_TRUSTWORTHY
    if confidence_high or consistency_high:
        return TrustLevel.TRUSTWORTHY
    if confidence is ConfidenceLevel.MEDIUM and consistency is ConsistencyLevel.MEDIUM:
        return TrustLevel.CHECK_BEFORE_USING
    return TrustLevel.NOT_RELIABLE


def select_best_summary(validations: Mapping[int, ValidationRun]) -> int:
    """Index of the candidate with the highest support ratio.

    Ties go to the first candidate in ascending index order.
    """
    if not validations:
        raise ValueError("Cannot select a best summary without any validation runs")
    indices = sorted(validations)
    return max(indices, key=lambda index: support_ratio(validations[index]))


def review_sentences_for(run: ValidationRun, confidence: ConfidenceLevel) -> tuple[str, ...]:
    if run.unsupported_sentences and confidence is not ConfidenceLevel.HIGH:
        return tuple(run.unsupported_sentences)
    return ()


def aggregate(
    validations: Mapping[int, ValidationRun],
    consistency_level: ConsistencyLevel,
) -> TrustVerdict:
    """Produce the :class:`TrustVerdict` for one pipeline run.

    Parameters
    ----------
    validations : Mapping[int, ValidationRun]
        Best validation run per candidate index (zero outcomes allowed).
    consistency_level : ConsistencyLevel
        Output of the consistency-scoring stage.
    """
    best_index = select_best_summary(validations)
    best_run = validations[best_index]
    ratio = support_ratio(best_run)
    confidence = band_source_confidence(ratio)
    trust = fuse_trust(confidence, consistency_level)

    logger.info(
        "Best summary %d: ratio=%.3f confidence=%s consistency=%s trust=%s",
        best_index, ratio, confidence.value, consistency_level.value, trust.value,
    )
    return TrustVerdict(
        best_summary_index=best_index,
        source_confidence_level=confidence,
        consistency_level=consistency_level,
        trust_level=trust,
        review_sentences=review_sentences_for(best_run, confidence),
    )
