"""
Trust-Summary Data Schemas
==========================
Typed dataclasses and enums that carry data between every pipeline stage.
Stage outputs are frozen so that a candidate's data, once produced, cannot
be mutated by a later stage running concurrently on another candidate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class FailureCategory(Enum):
    """Retry-relevant classification of an external-call failure."""

    TIMEOUT = auto()
    AUTH = auto()
    QUOTA = auto()
    TRANSIENT = auto()
    PERMANENT = auto()


class ConfidenceLevel(str, Enum):
    """Banded fraction of a summary's sentences supported by the source."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ConsistencyLevel(str, Enum):
    """Banded agreement among candidate summaries."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    UNKNOWN = "Unknown"


class TrustLevel(str, Enum):
    """Final user-facing label."""

    VERY_TRUSTWORTHY = "Very Trustworthy"
    TRUSTWORTHY = "Trustworthy"
    CHECK_BEFORE_USING = "Check Before Using"
    NOT_RELIABLE = "Not Reliable"


@dataclass(frozen=True)
class CandidateSummary:
    """One independently generated summary of the source document.

    Attributes:
        index:     Position of the prompt template that produced it.  Stable
                   through every later stage.
        text:      The summary, trimmed of surrounding whitespace.
        template:  Name of the prompt template (e.g. ``"expert_analyst"``).
    """

    index: int
    text: str
    template: str = ""


@dataclass(frozen=True)
class ValidationRun:
    """Outcome of one fact-checking pass over one candidate summary.

    Attributes:
        supported_count:       Sentences judged supported by the source.
        total_count:           Sentences that were judged at all.
        unsupported_sentences: Unsupported sentences, in response order.
        reported_confidence:   The model's own confidence label.  Advisory
                               only; never used for the verdict.
    """

    supported_count: int = 0
    total_count: int = 0
    unsupported_sentences: tuple[str, ...] = ()
    reported_confidence: str | None = None

    @classmethod
    def zero(cls) -> ValidationRun:
        """The outcome of a pass that produced no usable judgement."""
        return cls()

    @property
    def support_ratio(self) -> float:
        if self.total_count <= 0:
            return 0.0
        return self.supported_count / self.total_count


@dataclass(frozen=True)
class ConsistencyReport:
    """Result of the consistency-scoring stage.

    ``similarities`` maps ``(i, j)`` with ``i < j`` (candidate indices) to
    their cosine similarity.  ``mean_similarity`` is ``None`` whenever the
    level is :attr:`ConsistencyLevel.UNKNOWN`.
    """

    level: ConsistencyLevel
    mean_similarity: float | None = None
    similarities: dict[tuple[int, int], float] = field(default_factory=dict)

    @classmethod
    def unknown(cls) -> ConsistencyReport:
        return cls(level=ConsistencyLevel.UNKNOWN)


@dataclass(frozen=True)
class TrustVerdict:
    """Terminal artifact of the pipeline, handed to the verdict consumer."""

    best_summary_index: int
    source_confidence_level: ConfidenceLevel
    consistency_level: ConsistencyLevel
    trust_level: TrustLevel
    review_sentences: tuple[str, ...] = ()


@dataclass
class SummaryResult:
    """Everything a verdict consumer needs from one pipeline run.

    Attributes:
        verdict:        The fused :class:`TrustVerdict`.
        best_summary:   Text of the candidate selected as best.
        candidates:     All candidate summaries, ordered by index.
        consistency:    The consistency-scoring report.
        validations:    Best :class:`ValidationRun` per candidate index.
        run_id:         Short identifier of this run.
        stage_timings:  Wall-clock seconds per stage.
        audit_trail:    Human-readable log of each pipeline stage.
    """

    verdict: TrustVerdict
    best_summary: str
    candidates: list[CandidateSummary] = field(default_factory=list)
    consistency: ConsistencyReport = field(default_factory=ConsistencyReport.unknown)
    validations: dict[int, ValidationRun] = field(default_factory=dict)
    run_id: str = ""
    stage_timings: dict[str, float] = field(default_factory=dict)
    audit_trail: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable representation."""
        return {
            "run_id": self.run_id,
            "best_summary": self.best_summary,
            "verdict": {
                "best_summary_index": self.verdict.best_summary_index,
                "source_confidence_level": self.verdict.source_confidence_level.value,
                "consistency_level": self.verdict.consistency_level.value,
                "trust_level": self.verdict.trust_level.value,
                "review_sentences": list(self.verdict.review_sentences),
            },
            "consistency": {
                "level": self.consistency.level.value,
                "mean_similarity": self.consistency.mean_similarity,
                "similarities": [
                    {"pair": [i, j], "similarity": sim}
                    for (i, j), sim in sorted(self.consistency.similarities.items())
                ],
            },
            "candidates": [
                {
                    "index": c.index,
                    "template": c.template,
                    "text": c.text,
                    "supported_count": self.validations[c.index].supported_count
                    if c.index in self.validations else 0,
                    "total_count": self.validations[c.index].total_count
                    if c.index in self.validations else 0,
                }
                for c in self.candidates
            ],
            "stage_timings": self.stage_timings,
            "audit_trail": self.audit_trail,
        }
