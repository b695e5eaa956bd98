"""
Consistency Scorer – Agreement Among Candidates
================================================
Embeds every candidate summary and measures how much they agree with each
other.

Algorithm
---------
1. Request one embedding per candidate, concurrently, each with its own
   retry budget; join.
2. Compute the cosine similarity of every unordered pair ``(i, j)``,
   ``i < j``:  ``sim(a, b) = a·b / (‖a‖·‖b‖)``, defined as ``0`` when either
   vector has zero magnitude.
3. Average the pairwise similarities.
4. Band the mean: ``≥ 0.85`` High, ``≥ 0.70`` Medium, otherwise Low.

Consistency is an auxiliary signal: if any embedding request or the
reduction fails, the level degrades to ``Unknown`` instead of aborting the
run.
"""

from __future__ import annotations

import asyncio
import logging
from itertools import combinations
from typing import Sequence

import numpy as np
from numpy.typing import ArrayLike

from trustsum.observer import Event, EventBus, EventType
from trustsum.providers.base import EmbeddingProvider
from trustsum.retry import RetryExecutor
from trustsum.schemas import CandidateSummary, ConsistencyLevel, ConsistencyReport

logger = logging.getLogger(__name__)

HIGH_CONSISTENCY_THRESHOLD = 0.85
MEDIUM_CONSISTENCY_THRESHOLD = 0.70


def cosine_similarity(a: ArrayLike, b: ArrayLike) -> float:
    """Cosine similarity between two 1-D vectors, in ``[-1, 1]``."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise ValueError(f"Vector shapes differ: {va.shape} vs {vb.shape}")
    if not (np.isfinite(va).all() and np.isfinite(vb).all()):
        raise ValueError("Vectors contain NaN or infinite components")
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0:
        return 0.0
    similarity = float(np.dot(va, vb)) / norm
    if not np.isfinite(similarity):
        raise ValueError("Cosine similarity overflowed")
    return max(-1.0, min(1.0, similarity))


def pairwise_similarities(
    vectors: dict[int, ArrayLike],
) -> dict[tuple[int, int], float]:
    """Similarity of every unordered pair, keyed lower index first."""
    return {
        (i, j): cosine_similarity(vectors[i], vectors[j])
        for i, j in combinations(sorted(vectors), 2)
    }


def band_consistency(mean_similarity: float) -> ConsistencyLevel:
    if mean_similarity >= HIGH_CONSISTENCY_THRESHOLD:
        return ConsistencyLevel.HIGH
    if mean_similarity >= MEDIUM_CONSISTENCY_THRESHOLD:
        return ConsistencyLevel.MEDIUM
    return ConsistencyLevel.LOW


class ConsistencyScorer:
    """Score agreement among candidate summaries.

    Parameters
    ----------
    embedder : EmbeddingProvider
        The embedding service.
    retry : RetryExecutor
        Retry policy applied to each embedding request.
    event_bus : EventBus, optional
        Publish similarity and consistency events.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        retry: RetryExecutor,
        event_bus: EventBus | None = None,
    ) -> None:
        self._embedder = embedder
        self._retry = retry
        self._bus = event_bus

    async def _embed_one(self, candidate: CandidateSummary) -> list[float]:
        return await self._retry.execute(
            lambda: self._embedder.embed(candidate.text),
            label=f"embedding for candidate {candidate.index}",
        )

    async def score(self, candidates: Sequence[CandidateSummary]) -> ConsistencyReport:
        """Return the consistency report; never raises for service failures."""
        if len(candidates) < 2:
            logger.warning(
                "Consistency needs at least 2 candidates, got %d; level Unknown",
                len(candidates),
            )
            return self._publish(ConsistencyReport.unknown())

        results = await asyncio.gather(
            *(self._embed_one(c) for c in candidates),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        for failure in failures:
            if isinstance(failure, asyncio.CancelledError):
                raise failure
        if failures:
            logger.warning(
                "Embedding calculation failed for %d candidate(s): %s",
                len(failures), failures[0],
            )
            return self._publish(ConsistencyReport.unknown())

        try:
            vectors = {c.index: vec for c, vec in zip(candidates, results)}
            similarities = pairwise_similarities(vectors)
            mean = float(np.mean(list(similarities.values())))
        except (ValueError, TypeError) as exc:
            logger.warning("Similarity reduction failed: %s", exc)
            return self._publish(ConsistencyReport.unknown())

        if self._bus:
            for (i, j), sim in similarities.items():
                self._bus.publish(
                    Event(
                        EventType.SIMILARITY_COMPUTED,
                        message=f"Cosine similarity between candidate {i} and {j}: {sim:.4f}",
                        payload={"pair": [i, j], "similarity": sim},
                    )
                )
        logger.info("Average cosine similarity between summaries: %.4f", mean)

        return self._publish(
            ConsistencyReport(
                level=band_consistency(mean),
                mean_similarity=mean,
                similarities=similarities,
            )
        )

    def _publish(self, report: ConsistencyReport) -> ConsistencyReport:
        if self._bus:
            self._bus.publish(
                Event(
                    EventType.CONSISTENCY_SCORED,
                    message=f"Consistency level: {report.level.value}",
                    payload={
                        "level": report.level.value,
                        "mean_similarity": report.mean_similarity,
                    },
                )
            )
        return report
