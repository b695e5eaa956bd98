"""
Observer Pattern – EventBus
===========================
A lightweight publish-subscribe bus used by every pipeline stage to emit
structured events (candidate generation, retries, similarity scores,
validation passes, the final verdict) without coupling to concrete loggers
or UIs.

Subscribers implement the :class:`EventObserver` protocol or are plain
callables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Categories of pipeline events."""

    CANDIDATE_GENERATED = auto()
    CANDIDATE_FAILED = auto()
    RETRY_SCHEDULED = auto()
    SIMILARITY_COMPUTED = auto()
    CONSISTENCY_SCORED = auto()
    VALIDATION_PASS = auto()
    CANDIDATE_VALIDATED = auto()
    TRUST_VERDICT = auto()


@dataclass
class Event:
    """A single pipeline event."""

    event_type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    message: str = ""
    run_id: str = ""


class EventObserver(Protocol):
    """Protocol that any subscriber must satisfy."""

    def on_event(self, event: Event) -> None: ...


class EventBus:
    """Simple synchronous pub-sub bus.

    Usage::

        bus = EventBus()
        bus.subscribe(EventType.VALIDATION_PASS, my_logger)
        bus.publish(Event(EventType.VALIDATION_PASS, message="…"))

    ``run_id`` is stamped onto every published event that does not carry
    one, so stages do not need to know which run they belong to.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Callable[[Event], None]]] = {}
        self.run_id = ""

    def subscribe(
        self,
        event_type: EventType,
        callback: Callable[[Event], None] | EventObserver,
    ) -> None:
        """Register *callback* (or an :class:`EventObserver`) for *event_type*."""
        fn = callback if callable(callback) and not hasattr(callback, "on_event") else getattr(callback, "on_event")
        self._subscribers.setdefault(event_type, []).append(fn)

    def subscribe_all(self, callback: Callable[[Event], None] | EventObserver) -> None:
        """Register *callback* for **every** event type."""
        for et in EventType:
            self.subscribe(et, callback)

    def publish(self, event: Event) -> None:
        """Dispatch *event* to all registered subscribers."""
        if not event.run_id:
            event.run_id = self.run_id
        for fn in self._subscribers.get(event.event_type, []):
            try:
                fn(event)
            except Exception:
                logger.exception("Subscriber raised for %s", event.event_type)


class LoggingObserver:
    """Default observer that writes every event to Python's logging module.

    Failures and retries are logged at WARNING, per-pair similarities and
    individual validation passes at DEBUG, everything else at INFO.
    """

    _LEVELS = {
        EventType.CANDIDATE_FAILED: logging.WARNING,
        EventType.RETRY_SCHEDULED: logging.WARNING,
        EventType.SIMILARITY_COMPUTED: logging.DEBUG,
        EventType.VALIDATION_PASS: logging.DEBUG,
    }

    def on_event(self, event: Event) -> None:
        level = self._LEVELS.get(event.event_type, logging.INFO)
        logger.log(
            level,
            "[%s] run=%s %s",
            event.event_type.name, event.run_id or "-", event.message or event.payload,
        )
