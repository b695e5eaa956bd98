"""
Trust-Summary Orchestrator – The Async Pipeline
================================================
The :class:`TrustSummarizer` class wires every stage together and exposes a
single ``await engine.run(source_text)`` entry point.

Pipeline
--------
1. **Candidate generation** — :class:`CandidateGenerator` fans out K
   summarisation requests concurrently (barrier #1).
2. **Consistency scoring** — :class:`ConsistencyScorer` embeds the
   candidates concurrently (barrier #2) and bands their mean pairwise
   cosine similarity.
3. **Fact validation** — :class:`FactValidator` checks every candidate
   against the source R times, candidates in parallel (barrier #3), keeping
   the most generous pass per candidate.
4. **Trust aggregation** — :func:`trust_aggregator.aggregate` picks the
   best-supported candidate and fuses its source confidence with the
   consistency level into the final :class:`TrustVerdict`.

Stages 2 and 3 both depend only on stage 1, so they run concurrently with
each other.  Each stage writes per-candidate results into its own slots,
which are only read after the stage's join.

Failure policy
--------------
* Generation failures follow :class:`GenerationFailurePolicy` (default
  ``ABORT``: the run raises :class:`CandidateGenerationError`).
* Embedding failures degrade the consistency level to ``Unknown``.
* Validation failures (exhausted retries, malformed JSON) degrade that one
  pass to the zero outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Awaitable, TypeVar

from trustsum import trust_aggregator
from trustsum.candidate_generator import (
    CandidateGenerator,
    GenerationFailurePolicy,
)
from trustsum.consistency import ConsistencyScorer
from trustsum.fact_validator import DEFAULT_VALIDATION_RUNS, FactValidator
from trustsum.observer import Event, EventBus, EventType, LoggingObserver
from trustsum.providers.base import CompletionProvider, EmbeddingProvider
from trustsum.providers.factory import EmbedderFactory, ProviderFactory
from trustsum.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    RetryExecutor,
)
from trustsum.schemas import SummaryResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TrustSummarizer:
    """Produce a trust-scored summary of one source document.

    Parameters
    ----------
    provider : CompletionProvider or str
        Completion service (or a registered provider name such as
        ``"openai"`` / ``"ollama:mistral"``), used both to summarise and to
        fact-check.
    embedder : EmbeddingProvider or str
        Embedding service (or a registered embedder name such as
        ``"local"``).
    templates : dict[str, str], optional
        Summarisation prompt templates; their count is K.
    validation_runs : int
        Fact-check passes per candidate, R (default ``3``).
    failure_policy : GenerationFailurePolicy
        What to do when some candidates cannot be generated.
    max_attempts : int
        Attempts per external call (default ``3``).
    retry_base_delay : float
        Initial backoff in seconds, doubled per failure (default ``0.5``).
    request_timeout : float, optional
        Per-call deadline in seconds (default ``120.0``).
    max_concurrent_tasks : int
        Upper bound on simultaneous external calls (default ``4``).
    enable_logging_observer : bool
        Attach a :class:`LoggingObserver` to the event bus (default ``True``).
    """

    def __init__(
        self,
        provider: CompletionProvider | str = "openai",
        embedder: EmbeddingProvider | str = "local",
        templates: dict[str, str] | None = None,
        validation_runs: int = DEFAULT_VALIDATION_RUNS,
        failure_policy: GenerationFailurePolicy = GenerationFailurePolicy.ABORT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT,
        max_concurrent_tasks: int = 4,
        enable_logging_observer: bool = True,
    ) -> None:
        self._bus = EventBus()
        self._running = False
        if enable_logging_observer:
            self._bus.subscribe_all(LoggingObserver())

        self.provider = (
            ProviderFactory.create(provider) if isinstance(provider, str) else provider
        )
        self.embedder = (
            EmbedderFactory.create(embedder) if isinstance(embedder, str) else embedder
        )

        self._retry = RetryExecutor(
            max_attempts=max_attempts,
            base_delay=retry_base_delay,
            request_timeout=request_timeout,
            semaphore=asyncio.Semaphore(max_concurrent_tasks),
            event_bus=self._bus,
        )
        self._generator = CandidateGenerator(
            provider=self.provider,
            retry=self._retry,
            templates=templates,
            failure_policy=failure_policy,
            event_bus=self._bus,
        )
        self._scorer = ConsistencyScorer(
            embedder=self.embedder,
            retry=self._retry,
            event_bus=self._bus,
        )
        self._validator = FactValidator(
            provider=self.provider,
            retry=self._retry,
            runs=validation_runs,
            event_bus=self._bus,
        )

    @property
    def event_bus(self) -> EventBus:
        """Expose the bus so callers can subscribe to pipeline events."""
        return self._bus

    async def run(self, source_text: str) -> SummaryResult:
        """Execute the full pipeline on an already-vetted source text.

        An engine handles one run at a time: events on :attr:`event_bus` are
        stamped with the current run's id.  Use one engine per concurrent
        document.

        Raises
        ------
        CandidateGenerationError
            If candidate generation fails under the configured policy.
        RuntimeError
            If another run on this engine is still in progress.
        """
        if self._running:
            raise RuntimeError(
                f"TrustSummarizer is already running (run_id={self._bus.run_id}); "
                "create a separate engine for concurrent runs"
            )
        self._running = True
        try:
            return await self._run(source_text)
        finally:
            self._running = False

    async def _run(self, source_text: str) -> SummaryResult:
        audit_trail: list[str] = []
        stage_timings: dict[str, float] = {}

        run_id = uuid.uuid4().hex[:12]
        self._bus.run_id = run_id
        logger.info(
            "Pipeline run_id=%s started (%d chars, provider=%s, embedder=%s)",
            run_id, len(source_text), self.provider.name, self.embedder.name,
        )

        # 1. Candidate generation
        t0 = time.perf_counter()
        candidates = await self._generator.generate(source_text)
        stage_timings["generate"] = round(time.perf_counter() - t0, 4)
        audit_trail.append(
            f"Generated {len(candidates)} of {self._generator.candidate_count} "
            f"candidate summaries."
        )

        # 2 + 3. Consistency scoring and fact validation
        consistency, validations = await asyncio.gather(
            self._timed(self._scorer.score(candidates), stage_timings, "consistency"),
            self._timed(
                self._validator.validate_all(candidates, source_text),
                stage_timings,
                "validate",
            ),
        )
        if consistency.mean_similarity is None:
            audit_trail.append("Consistency: Unknown (embedding unavailable).")
        else:
            audit_trail.append(
                f"Consistency: {consistency.level.value} "
                f"(mean cosine similarity {consistency.mean_similarity:.4f})."
            )
        for candidate in candidates:
            run = validations[candidate.index]
            audit_trail.append(
                f"Candidate {candidate.index} ({candidate.template}): "
                f"{run.supported_count}/{run.total_count} sentences supported."
            )

        # 4. Trust aggregation
        t0 = time.perf_counter()
        verdict = trust_aggregator.aggregate(validations, consistency.level)
        stage_timings["aggregate"] = round(time.perf_counter() - t0, 4)
        audit_trail.append(
            f"Best summary: candidate {verdict.best_summary_index} — "
            f"source confidence {verdict.source_confidence_level.value}, "
            f"trust {verdict.trust_level.value}."
        )
        if verdict.review_sentences:
            audit_trail.append(
                f"{len(verdict.review_sentences)} sentence(s) flagged for review."
            )

        best_summary = next(
            c.text for c in candidates if c.index == verdict.best_summary_index
        )
        result = SummaryResult(
            verdict=verdict,
            best_summary=best_summary,
            candidates=candidates,
            consistency=consistency,
            validations=validations,
            run_id=run_id,
            stage_timings=stage_timings,
            audit_trail=audit_trail,
        )

        self._bus.publish(
            Event(
                EventType.TRUST_VERDICT,
                message=(
                    f"Trust: {verdict.trust_level.value} "
                    f"(source confidence {verdict.source_confidence_level.value}, "
                    f"consistency {verdict.consistency_level.value})"
                ),
                payload=result.to_dict(),
            )
        )
        return result

    @staticmethod
    async def _timed(coro: Awaitable[T], timings: dict[str, float], stage: str) -> T:
        t0 = time.perf_counter()
        try:
            return await coro
        finally:
            timings[stage] = round(time.perf_counter() - t0, 4)
