"""
Retry Executor – Bounded Exponential Backoff
=============================================
Wraps any fallible asynchronous external call (completion or embedding
request) with a bounded retry budget.

Every attempt is turned into an explicit outcome value rather than being
left as an in-flight exception:

* :class:`Success`          – the call returned a value.
* :class:`TransientFailure` – timeout, rate limit, network hiccup; retry.
* :class:`TerminalFailure`  – auth or malformed-request error; stop now.

The retry loop in :meth:`RetryExecutor.execute` only inspects these values.
When the budget is spent (or a terminal failure is seen) it raises
:class:`~trustsum.errors.RetriesExhaustedError`, which aborts just the unit
of work it wraps: one candidate's generation, one validation pass, or one
embedding request.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from trustsum.errors import RetriesExhaustedError
from trustsum.observer import Event, EventBus, EventType
from trustsum.schemas import FailureCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.5  # seconds
DEFAULT_REQUEST_TIMEOUT = 120.0  # seconds


# ------------------------------------------------------------------ #
#  Failure classification                                             #
# ------------------------------------------------------------------ #

def classify_failure(exc: BaseException) -> FailureCategory:
    """Categorise an exception into a retry-relevant failure bucket."""
    if isinstance(exc, asyncio.TimeoutError):
        return FailureCategory.TIMEOUT

    name = type(exc).__name__.lower()
    msg = str(exc).lower()

    if "timeout" in name or "timeout" in msg:
        return FailureCategory.TIMEOUT

    if "auth" in name or "auth" in msg or "401" in msg or "403" in msg:
        return FailureCategory.AUTH
    if "permission" in msg or "api key" in msg or "invalid key" in msg:
        return FailureCategory.AUTH

    if "429" in msg or "rate" in msg or "quota" in msg or "limit" in msg:
        return FailureCategory.QUOTA

    if "400" in msg or "404" in msg or "invalid" in name:
        return FailureCategory.PERMANENT

    return FailureCategory.TRANSIENT


def is_retryable(category: FailureCategory) -> bool:
    """Return ``True`` if the failure category warrants a retry."""
    return category in (
        FailureCategory.TIMEOUT,
        FailureCategory.QUOTA,
        FailureCategory.TRANSIENT,
    )


# ------------------------------------------------------------------ #
#  Attempt outcomes                                                   #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class TransientFailure:
    error: BaseException
    category: FailureCategory


@dataclass(frozen=True)
class TerminalFailure:
    error: BaseException
    category: FailureCategory


Outcome = Union[Success[Any], TransientFailure, TerminalFailure]


def failure_outcome(exc: BaseException) -> TransientFailure | TerminalFailure:
    """Map a raised exception onto the matching failure outcome."""
    category = classify_failure(exc)
    if is_retryable(category):
        return TransientFailure(exc, category)
    return TerminalFailure(exc, category)


def backoff_delays(max_attempts: int, base_delay: float) -> list[float]:
    """Sleep durations between consecutive attempts.

    ``backoff_delays(3, 0.5) == [0.5, 1.0]`` – nothing after the last attempt.
    """
    return [base_delay * (2 ** i) for i in range(max(max_attempts - 1, 0))]


class RetryExecutor:
    """Run a zero-argument async operation with bounded retry.

    Parameters
    ----------
    max_attempts : int
        Total attempts including the first (default ``3``).
    base_delay : float
        Seconds to wait after the first failure; doubles after every further
        failure (default ``0.5``).
    request_timeout : float, optional
        Per-attempt deadline in seconds (default ``120.0``).  ``None``
        disables it.  A timed-out attempt counts as a retryable failure.
    semaphore : asyncio.Semaphore, optional
        Shared gate bounding how many attempts run at once across the whole
        pipeline.
    event_bus : EventBus, optional
        Publish :pydata:`EventType.RETRY_SCHEDULED` events.
    sleep : callable
        Awaitable sleep function; replaceable in tests.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT,
        semaphore: asyncio.Semaphore | None = None,
        event_bus: EventBus | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.request_timeout = request_timeout
        self._semaphore = semaphore
        self._bus = event_bus
        self._sleep = sleep

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> Outcome:
        try:
            if self._semaphore is not None:
                async with self._semaphore:
                    value = await asyncio.wait_for(operation(), timeout=self.request_timeout)
            else:
                value = await asyncio.wait_for(operation(), timeout=self.request_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return failure_outcome(exc)
        return Success(value)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "external call",
    ) -> T:
        """Return the operation's result or raise :class:`RetriesExhaustedError`."""
        delays = backoff_delays(self.max_attempts, self.base_delay)
        last: TransientFailure | TerminalFailure | None = None

        for attempt in range(1, self.max_attempts + 1):
            outcome = await self._attempt(operation)
            if isinstance(outcome, Success):
                return outcome.value

            last = outcome
            if isinstance(outcome, TerminalFailure):
                logger.warning(
                    "Non-retryable failure for %s — %s [%s]",
                    label, type(outcome.error).__name__, outcome.category.name,
                )
                raise RetriesExhaustedError(
                    label, attempt, outcome.error, outcome.category
                ) from outcome.error

            if attempt < self.max_attempts:
                delay = delays[attempt - 1]
                logger.warning(
                    "Retry %d/%d for %s — %s [%s] (delay %.2fs)",
                    attempt, self.max_attempts - 1, label,
                    type(outcome.error).__name__, outcome.category.name, delay,
                )
                if self._bus:
                    self._bus.publish(
                        Event(
                            EventType.RETRY_SCHEDULED,
                            message=f"Retrying {label} in {delay:.2f}s (attempt {attempt + 1}).",
                            payload={
                                "label": label,
                                "attempt": attempt,
                                "delay": delay,
                                "category": outcome.category.name,
                            },
                        )
                    )
                await self._sleep(delay)

        assert last is not None
        raise RetriesExhaustedError(
            label, self.max_attempts, last.error, last.category
        ) from last.error
