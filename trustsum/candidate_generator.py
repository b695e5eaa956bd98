"""
Candidate Generator – Diversity Injection
==========================================
Produces K independently-worded candidate summaries of one source text.
Each candidate comes from a differently-phrased but semantically equivalent
summarisation instruction, so disagreement between candidates reflects the
model's uncertainty about the document rather than a difference in the
task:

* **Professional summarizer** – detailed summary with headings.
* **Expert analyst** – comprehensive summary in clear sections.
* **Content analyst** – thorough yet concise summary.

All K requests are issued concurrently, each protected by its own
:class:`RetryExecutor` budget, and joined before anything downstream reads
them.  Sampling is low-temperature / high-top-p to bias toward literal,
low-variance summaries.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Sequence

from trustsum.errors import CandidateGenerationError, RetriesExhaustedError
from trustsum.observer import Event, EventBus, EventType
from trustsum.providers.base import CompletionProvider
from trustsum.retry import RetryExecutor
from trustsum.schemas import CandidateSummary

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.1
SUMMARY_TOP_P = 0.9
TEXT_PLACEHOLDER = "{text}"

# ──────────────────────────────────────────────────────────────────────
# Prompt templates  –  {text} is replaced at runtime
# ──────────────────────────────────────────────────────────────────────

PROFESSIONAL_SUMMARIZER_TEMPLATE = (
    "%%\n{text}\n%%\n\n"
    "Act as a professional summarizer. Create a concise and comprehensive "
    "summary of the text enclosed in %% above, while adhering to the "
    "guidelines enclosed in [ ] below.\n\n"
    "Guidelines:\n\n"
    "[\n"
    "Create a summary that is detailed, thorough, in-depth, and complex, while "
    "maintaining clarity and conciseness.\n"
    "The summary must cover all the key points and main ideas presented in the "
    "original text, while also condensing the information into a concise and "
    "easy-to-understand format.\n"
    "Ensure that the summary includes relevant details and examples that support "
    "the main ideas, while avoiding any unnecessary information or repetition.\n"
    "Rely strictly on the provided text, without including external information.\n"
    "The length of the summary must be appropriate for the length and complexity "
    "of the original text. The length must allow to capture the main points and "
    "key details, without being overly long.\n"
    "Ensure that the summary is well-organized and easy to read, with clear "
    "headings and subheadings to guide the reader through each section. Format "
    "each section in paragraph form.\n"
    "]"
)

EXPERT_ANALYST_TEMPLATE = (
    "%%\n{text}\n%%\n\n"
    "Act as an expert analyst. Provide a comprehensive summary of the text "
    "enclosed in %% above. Follow the guidelines in [ ] below.\n\n"
    "Guidelines:\n\n"
    "[\n"
    "Create a detailed and thorough summary that captures all main points and "
    "key ideas from the original text.\n"
    "Condense the information into a clear, concise format that is easy to "
    "understand.\n"
    "Include relevant details and examples that support the main ideas, while "
    "avoiding repetition.\n"
    "Use only information from the provided text.\n"
    "Make the summary appropriate in length for the complexity of the original "
    "text.\n"
    "Organize the summary with clear sections to guide the reader.\n"
    "Format each section as a paragraph.\n"
    "]"
)

CONTENT_ANALYST_TEMPLATE = (
    "%%\n{text}\n%%\n\n"
    "As a professional content analyst, create a clear and comprehensive "
    "summary of the text in %% above, following the instructions in [ ] "
    "below.\n\n"
    "Instructions:\n\n"
    "[\n"
    "The summary should be thorough yet concise, covering all main points and "
    "ideas.\n"
    "Condense the information into an easy-to-understand format.\n"
    "Include supporting details and examples where relevant.\n"
    "Do not add external information - use only the provided text.\n"
    "Keep the summary length appropriate for the original text.\n"
    "Structure the summary with clear sections for readability.\n"
    "Use paragraph format for each section.\n"
    "]"
)

DEFAULT_TEMPLATES: dict[str, str] = {
    "professional_summarizer": PROFESSIONAL_SUMMARIZER_TEMPLATE,
    "expert_analyst": EXPERT_ANALYST_TEMPLATE,
    "content_analyst": CONTENT_ANALYST_TEMPLATE,
}


class GenerationFailurePolicy(str, Enum):
    """What to do when some candidates exhaust their retries.

    ``ABORT``   – any failure is fatal to the run.
    ``DEGRADE`` – continue with the candidates that succeeded.
    """

    ABORT = "abort"
    DEGRADE = "degrade"


def build_prompts(text: str, templates: dict[str, str] | None = None) -> list[tuple[str, str]]:
    """Return ``(template_name, prompt)`` pairs in template order.

    Only the literal ``{text}`` placeholder is substituted; any other braces
    in a template (e.g. a JSON example) are left as written.
    """
    templates = templates or DEFAULT_TEMPLATES
    return [
        (name, template.replace(TEXT_PLACEHOLDER, text))
        for name, template in templates.items()
    ]


class CandidateGenerator:
    """Generate K candidate summaries concurrently.

    Parameters
    ----------
    provider : CompletionProvider
        The completion service.
    retry : RetryExecutor
        Retry policy applied independently to each candidate.
    templates : dict[str, str], optional
        Ordered ``name → template`` mapping; each template must contain a
        ``{text}`` placeholder.  Defaults to the three built-in variants.
    failure_policy : GenerationFailurePolicy
        Defaults to :attr:`GenerationFailurePolicy.ABORT`.
    event_bus : EventBus, optional
        Publish generation events.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        retry: RetryExecutor,
        templates: dict[str, str] | None = None,
        failure_policy: GenerationFailurePolicy = GenerationFailurePolicy.ABORT,
        temperature: float = SUMMARY_TEMPERATURE,
        top_p: float = SUMMARY_TOP_P,
        event_bus: EventBus | None = None,
    ) -> None:
        self._provider = provider
        self._retry = retry
        self._templates = dict(templates or DEFAULT_TEMPLATES)
        if not self._templates:
            raise ValueError("At least one summary template is required")
        self._failure_policy = GenerationFailurePolicy(failure_policy)
        self._temperature = temperature
        self._top_p = top_p
        self._bus = event_bus

    @property
    def candidate_count(self) -> int:
        return len(self._templates)

    async def _generate_one(self, index: int, template_name: str, prompt: str) -> CandidateSummary:
        text = await self._retry.execute(
            lambda: self._provider.complete(prompt, self._temperature, self._top_p),
            label=f"candidate {index} ({template_name})",
        )
        candidate = CandidateSummary(index=index, text=text.strip(), template=template_name)
        if self._bus:
            self._bus.publish(
                Event(
                    EventType.CANDIDATE_GENERATED,
                    message=f"Candidate {index} ({template_name}): {len(candidate.text)} chars",
                    payload={
                        "index": index,
                        "template": template_name,
                        "text": candidate.text,
                    },
                )
            )
        return candidate

    async def generate(self, source_text: str) -> list[CandidateSummary]:
        """Return the candidates ordered by index.

        Raises
        ------
        CandidateGenerationError
            Under ``ABORT`` when any candidate fails; under ``DEGRADE`` when
            every candidate fails.
        """
        prompts = build_prompts(source_text, self._templates)
        results: Sequence[CandidateSummary | BaseException] = await asyncio.gather(
            *(
                self._generate_one(index, name, prompt)
                for index, (name, prompt) in enumerate(prompts)
            ),
            return_exceptions=True,
        )

        candidates: list[CandidateSummary] = []
        failures: dict[int, BaseException] = {}
        for index, result in enumerate(results):
            if isinstance(result, CandidateSummary):
                candidates.append(result)
                continue
            if not isinstance(result, RetriesExhaustedError):
                # Programming errors are not a generation outcome.
                raise result
            failures[index] = result
            logger.warning("Candidate %d failed: %s", index, result)
            if self._bus:
                self._bus.publish(
                    Event(
                        EventType.CANDIDATE_FAILED,
                        message=f"Candidate {index} failed after {result.attempts} attempt(s).",
                        payload={"index": index, "error": str(result)},
                    )
                )

        if failures and self._failure_policy is GenerationFailurePolicy.ABORT:
            raise CandidateGenerationError(
                f"{len(failures)} of {len(prompts)} candidate summaries failed; "
                "aborting run",
                failures,
            )
        if not candidates:
            raise CandidateGenerationError("Every candidate summary failed", failures)
        if failures:
            logger.warning(
                "Proceeding with %d of %d candidates (policy=%s)",
                len(candidates), len(prompts), self._failure_policy.value,
            )
        return candidates
