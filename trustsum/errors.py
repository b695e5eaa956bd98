"""
Exceptions raised by the trust-summary pipeline.
"""

from __future__ import annotations

from trustsum.schemas import FailureCategory


class TrustSummaryError(Exception):
    """Base class for every error this package raises."""


class RetriesExhaustedError(TrustSummaryError):
    """An external call failed on every permitted attempt.

    Also raised early, after fewer attempts, when a failure is classified as
    non-retryable (auth errors, malformed requests).
    """

    def __init__(
        self,
        label: str,
        attempts: int,
        last_error: BaseException | None = None,
        category: FailureCategory = FailureCategory.TRANSIENT,
    ) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        self.category = category
        detail = f"{type(last_error).__name__}: {last_error}" if last_error else "no error recorded"
        super().__init__(
            f"Retries exhausted for {label} after {attempts} attempt(s) "
            f"[{category.name}] — {detail}"
        )


class CandidateGenerationError(TrustSummaryError):
    """Candidate generation could not produce a usable set of summaries."""

    def __init__(self, message: str, failures: dict[int, BaseException] | None = None) -> None:
        super().__init__(message)
        self.failures = failures or {}


class InputQualityError(TrustSummaryError):
    """The source document was rejected before the pipeline ran."""
