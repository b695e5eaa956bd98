"""
Shared fixtures for the trust-summary test suite.
"""
from __future__ import annotations

import asyncio
import json
import math
from typing import Any, Sequence

import pytest

from trustsum.observer import EventBus
from trustsum.providers.base import CompletionProvider, EmbeddingProvider
from trustsum.retry import RetryExecutor

SOURCE_TEXT = (
    "# Quarterly Report\n\n"
    "Revenue grew 12% year over year, driven by subscription sales in Europe. "
    "Operating costs were flat. The company opened two new offices in Berlin "
    "and Lisbon and hired 40 engineers.\n\n"
    "# Outlook\n\n"
    "Management expects growth to continue next quarter but warned about "
    "currency headwinds."
)

SUMMARIES = [
    "Revenue grew 12% thanks to European subscriptions.",
    "The company expanded to Berlin and Lisbon and hired engineers.",
    "Costs were flat and growth is expected to continue.",
]

TEMPLATE_MARKERS = {
    "Act as a professional summarizer": 0,
    "Act as an expert analyst": 1,
    "As a professional content analyst": 2,
}


def validation_json(judgements: Sequence[tuple[str, bool]], confidence: str = "High") -> str:
    """Build a fact-check response like the model is asked to return."""
    return json.dumps({
        "sentences": [{"sentence": s, "supported": ok} for s, ok in judgements],
        "confidence": confidence,
    })


def ratio_json(supported: int, total: int, prefix: str = "Claim") -> str:
    """A response with *supported* of *total* sentences supported."""
    return validation_json(
        [(f"{prefix} {i}.", i < supported) for i in range(total)]
    )


def unit_vectors_with_similarity(similarity: float, count: int = 3) -> list[list[float]]:
    """Unit vectors whose pairwise cosine similarity all equal *similarity*."""
    shared = math.sqrt(similarity)
    own = math.sqrt(1.0 - similarity)
    vectors = []
    for i in range(count):
        vec = [shared] + [0.0] * count
        vec[i + 1] = own
        vectors.append(vec)
    return vectors


# ---------------------------------------------------------------------------
# Mock services – canned responses, no network calls
# ---------------------------------------------------------------------------

class ScriptedProvider(CompletionProvider):
    """Answers summarisation prompts by template and fact-check prompts by summary.

    ``validations`` maps a summary text to the responses returned for its
    successive fact-check passes; the last response repeats once the list is
    exhausted.
    """

    def __init__(
        self,
        name: str = "scripted",
        summaries: Sequence[str] = SUMMARIES,
        validations: dict[str, list[str]] | None = None,
        default_validation: str | None = None,
        failing_templates: set[int] | None = None,
        fail_validation: bool = False,
        latency: float = 0.001,
    ) -> None:
        self.name = name
        self.model = "scripted-model"
        self._summaries = list(summaries)
        self._validations = {k: list(v) for k, v in (validations or {}).items()}
        self._default_validation = default_validation or ratio_json(1, 1)
        self._failing_templates = failing_templates or set()
        self._fail_validation = fail_validation
        self._latency = latency
        self.calls: list[tuple[str, float, float]] = []
        self._in_flight = {"summary": 0, "validation": 0}
        self.peak_in_flight = {"summary": 0, "validation": 0}

    async def _call(self, prompt: str, temperature: float, top_p: float) -> tuple[str, dict[str, Any]]:
        self.calls.append((prompt, temperature, top_p))
        kind = "validation" if "impartial fact-checker" in prompt else "summary"
        self._in_flight[kind] += 1
        self.peak_in_flight[kind] = max(self.peak_in_flight[kind], self._in_flight[kind])
        try:
            await asyncio.sleep(self._latency)
            return self._respond(prompt)
        finally:
            self._in_flight[kind] -= 1

    def _respond(self, prompt: str) -> tuple[str, dict[str, Any]]:
        if "impartial fact-checker" in prompt:
            if self._fail_validation:
                raise ConnectionError("connection reset by peer")
            for summary, responses in self._validations.items():
                if f"Summary:\n%%\n{summary}\n%%" in prompt:
                    return (responses.pop(0) if len(responses) > 1 else responses[0]), {}
            return self._default_validation, {}

        for marker, index in TEMPLATE_MARKERS.items():
            if marker in prompt:
                if index in self._failing_templates:
                    raise ConnectionError(f"connection reset for template {index}")
                return f"  {self._summaries[index]}\n", {}
        raise AssertionError("Unexpected prompt")

    @property
    def validation_calls(self) -> list[tuple[str, float, float]]:
        return [c for c in self.calls if "impartial fact-checker" in c[0]]

    @property
    def summary_calls(self) -> list[tuple[str, float, float]]:
        return [c for c in self.calls if "impartial fact-checker" not in c[0]]


class FlakyProvider(CompletionProvider):
    """Fails N times then succeeds. For testing retry logic."""

    def __init__(self, name: str = "flaky", response_text: str = "Success!", fail_count: int = 2) -> None:
        self.name = name
        self._response_text = response_text
        self._fail_count = fail_count
        self.call_count = 0

    async def _call(self, prompt: str, temperature: float, top_p: float) -> tuple[str, dict[str, Any]]:
        self.call_count += 1
        if self.call_count <= self._fail_count:
            raise ConnectionError(f"Flaky failure #{self.call_count}")
        return self._response_text, {"attempt": self.call_count}


class DictEmbedder(EmbeddingProvider):
    """Returns a fixed vector per text; unknown texts get ``default``."""

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        default: list[float] | None = None,
    ) -> None:
        self.name = "dict-embedder"
        self.model = "dict"
        self._vectors = vectors or {}
        self._default = default or [1.0, 0.0, 0.0]
        self.requests: list[str] = []
        self._in_flight = 0
        self.peak_in_flight = 0

    async def _embed(self, text: str) -> list[float]:
        self.requests.append(text)
        self._in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        try:
            await asyncio.sleep(0.001)
        finally:
            self._in_flight -= 1
        return self._vectors.get(text, self._default)


class FailingEmbedder(EmbeddingProvider):
    """Every request fails with a transient error."""

    def __init__(self) -> None:
        self.name = "failing-embedder"
        self.call_count = 0

    async def _embed(self, text: str) -> list[float]:
        self.call_count += 1
        raise ConnectionError("embedding service unreachable")


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def fast_retry() -> RetryExecutor:
    return RetryExecutor(max_attempts=3, base_delay=0.001, request_timeout=5.0)


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def identical_embedder() -> DictEmbedder:
    return DictEmbedder(default=[0.3, 0.4, 0.5])
