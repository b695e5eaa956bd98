"""
Fact Validator – Sentence-Level Source Checking
================================================
Asks the completion service to act as an impartial fact-checker: split a
candidate summary into sentences and judge each one as supported or not by
the source document.

Model judgements are noisy, so every candidate is checked ``runs`` times
(independent samples) and the **most generous** pass – the one with the
highest absolute count of supported sentences – is kept.  A correct summary
is more likely to be spuriously under-supported by one pass than spuriously
over-supported.

Response decoding
-----------------
The model is told to return a single JSON object::

    {
      "sentences": [{"sentence": "...", "supported": true}, ...],
      "confidence": "High" | "Medium" | "Low"
    }

optionally wrapped in a fenced code block.  The document is validated
against a pydantic schema: anything that is not an object with a
``sentences`` array yields the zero outcome.  Individual entries lacking a
string ``sentence`` or a boolean ``supported`` are skipped and not counted.
The model's own ``confidence`` is kept for inspection only; the pipeline
recomputes the ratio itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr, ValidationError

from trustsum.errors import RetriesExhaustedError
from trustsum.observer import Event, EventBus, EventType
from trustsum.providers.base import CompletionProvider
from trustsum.retry import RetryExecutor
from trustsum.schemas import CandidateSummary, ValidationRun

logger = logging.getLogger(__name__)

VALIDATION_TEMPERATURE = 0.0
VALIDATION_TOP_P = 1.0
DEFAULT_VALIDATION_RUNS = 3

CODE_FENCE = "```"

# ──────────────────────────────────────────────────────────────────────
# Fact-check prompt
# ──────────────────────────────────────────────────────────────────────

VALIDATION_PROMPT = (
    "You are an impartial fact-checker. Evaluate if each sentence in the "
    "summary is supported by the source.\n\n"
    "Original source:\n"
    "%%\n{source}\n%%\n\n"
    "Summary:\n"
    "%%\n{summary}\n%%\n\n"
    "Instructions:\n"
    "- Split the summary into sentences (use punctuation like ., !, ? as delimiters).\n"
    "- For each sentence, output the result as JSON in this format:\n"
    '{{ "sentence": "Sentence text...", "supported": true or false }}\n'
    "- After all sentences, return the full result as a single JSON object:\n"
    "{{\n"
    '"sentences": [\n'
    '    {{ "sentence": "...", "supported": true }},\n'
    '    {{ "sentence": "...", "supported": false }}\n'
    "],\n"
    '"confidence": "High" | "Medium" | "Low"\n'
    "}}\n"
    "- Do NOT include any explanations, commentary, or extra text outside this JSON.\n"
    "- Use these rules for the confidence value:\n"
    "- High: ≥90% of sentences supported\n"
    "- Medium: 60–89% supported\n"
    "- Low: <60% supported\n"
)


def build_validation_prompt(source_text: str, summary: str) -> str:
    return VALIDATION_PROMPT.format(source=source_text, summary=summary)


# ──────────────────────────────────────────────────────────────────────
# Response schema
# ──────────────────────────────────────────────────────────────────────

class ValidationDocument(BaseModel):
    """Top-level shape of a fact-check response."""

    model_config = ConfigDict(extra="ignore")

    sentences: list[Any]
    confidence: Any = None


class SentenceJudgement(BaseModel):
    """One judged sentence; both fields are mandatory and strictly typed."""

    model_config = ConfigDict(extra="ignore")

    sentence: StrictStr
    supported: StrictBool


def strip_code_fence(raw: str) -> str:
    """Remove an enclosing fenced block (first and last line) if present."""
    text = raw.strip()
    if text.startswith(CODE_FENCE):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1])
    return text


def decode_validation_response(raw: str) -> ValidationRun:
    """Turn a raw fact-check response into a :class:`ValidationRun`.

    Never raises: a document that fails schema validation is the zero
    outcome.
    """
    body = strip_code_fence(raw)
    try:
        document = ValidationDocument.model_validate_json(body)
    except ValidationError as exc:
        logger.warning(
            "Validation response rejected (%d schema error(s)). Raw response: %.200s",
            exc.error_count(), body,
        )
        return ValidationRun.zero()

    supported_count = 0
    total_count = 0
    unsupported: list[str] = []
    for entry in document.sentences:
        try:
            judgement = SentenceJudgement.model_validate(entry)
        except ValidationError:
            logger.debug("Skipping malformed sentence entry: %r", entry)
            continue
        total_count += 1
        if judgement.supported:
            supported_count += 1
        else:
            unsupported.append(judgement.sentence)

    confidence = document.confidence if isinstance(document.confidence, str) else None
    return ValidationRun(
        supported_count=supported_count,
        total_count=total_count,
        unsupported_sentences=tuple(unsupported),
        reported_confidence=confidence,
    )


def select_best_run(runs: Sequence[ValidationRun]) -> ValidationRun:
    """Run with the highest ``supported_count``; the first one wins ties."""
    if not runs:
        return ValidationRun.zero()
    return max(runs, key=lambda run: run.supported_count)


class FactValidator:
    """Repeated sentence-level fact-checking of candidate summaries.

    Parameters
    ----------
    provider : CompletionProvider
        The completion service acting as fact-checker.
    retry : RetryExecutor
        Retry policy applied to each validation pass.
    runs : int
        Validation passes per candidate (default ``3``).
    event_bus : EventBus, optional
        Publish per-pass and per-candidate validation events.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        retry: RetryExecutor,
        runs: int = DEFAULT_VALIDATION_RUNS,
        temperature: float = VALIDATION_TEMPERATURE,
        top_p: float = VALIDATION_TOP_P,
        event_bus: EventBus | None = None,
    ) -> None:
        if runs < 1:
            raise ValueError("runs must be at least 1")
        self._provider = provider
        self._retry = retry
        self._runs = runs
        self._temperature = temperature
        self._top_p = top_p
        self._bus = event_bus

    async def run_pass(
        self, candidate: CandidateSummary, source_text: str, pass_number: int = 1
    ) -> ValidationRun:
        """One fact-check pass.  Exhausted retries degrade to the zero outcome."""
        prompt = build_validation_prompt(source_text, candidate.text)
        try:
            raw = await self._retry.execute(
                lambda: self._provider.complete(prompt, self._temperature, self._top_p),
                label=f"validation pass {pass_number} for candidate {candidate.index}",
            )
        except RetriesExhaustedError as exc:
            logger.warning("Validation pass degraded to zero outcome: %s", exc)
            run = ValidationRun.zero()
        else:
            run = decode_validation_response(raw)

        if self._bus:
            self._bus.publish(
                Event(
                    EventType.VALIDATION_PASS,
                    message=(
                        f"Candidate {candidate.index} pass {pass_number}: "
                        f"{run.supported_count}/{run.total_count} supported"
                    ),
                    payload={
                        "index": candidate.index,
                        "pass": pass_number,
                        "supported_count": run.supported_count,
                        "total_count": run.total_count,
                        "reported_confidence": run.reported_confidence,
                    },
                )
            )
        return run

    async def validate(self, candidate: CandidateSummary, source_text: str) -> ValidationRun:
        """Run every pass for *candidate* sequentially and keep the best."""
        runs = [
            await self.run_pass(candidate, source_text, pass_number)
            for pass_number in range(1, self._runs + 1)
        ]
        best = select_best_run(runs)

        if self._bus:
            self._bus.publish(
                Event(
                    EventType.CANDIDATE_VALIDATED,
                    message=(
                        f"Candidate {candidate.index} best pass: "
                        f"{best.supported_count}/{best.total_count} supported"
                    ),
                    payload={
                        "index": candidate.index,
                        "supported_count": best.supported_count,
                        "total_count": best.total_count,
                        "unsupported_sentences": list(best.unsupported_sentences),
                    },
                )
            )
        return best

    async def validate_all(
        self, candidates: Sequence[CandidateSummary], source_text: str
    ) -> dict[int, ValidationRun]:
        """Validate all candidates concurrently; keyed by candidate index."""
        results = await asyncio.gather(
            *(self.validate(c, source_text) for c in candidates)
        )
        return {c.index: run for c, run in zip(candidates, results)}
