"""
Observer Pattern – EventBus
===========================
A lightweight publish-subscribe bus the :class:`~humanizer.orchestrator.Humanizer`
uses to emit structured events (phase progress, oracle responses, attempt
scores, run outcome) without coupling to concrete loggers, terminals or
HTTP streams.

Subscribers are plain callables or objects implementing the
:class:`EventObserver` protocol.  A subscriber that raises is logged and
skipped; it can never break the run that published the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Categories of pipeline events."""

    PROGRESS = auto()
    ORACLE_RESPONSE = auto()
    ATTEMPT_SCORED = auto()
    RUN_COMPLETED = auto()
    RUN_FAILED = auto()


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
        bus.subscribe(EventType.ATTEMPT_SCORED, my_callback)
        bus.publish(Event(EventType.ATTEMPT_SCORED, message="…"))
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Callable[[Event], None]]] = {}

    def subscribe(
        self,
        event_type: EventType,
        callback: Callable[[Event], None] | EventObserver,
    ) -> None:
        """Register *callback* (or an :class:`EventObserver`) for *event_type*."""
        fn = getattr(callback, "on_event", None) or callback
        self._subscribers.setdefault(event_type, []).append(fn)

    def subscribe_all(self, callback: Callable[[Event], None] | EventObserver) -> None:
        """Register *callback* for **every** event type."""
        for et in EventType:
            self.subscribe(et, callback)

    def unsubscribe(
        self,
        event_type: EventType,
        callback: Callable[[Event], None] | EventObserver,
    ) -> None:
        """Remove a previously registered callback; unknown callbacks are ignored."""
        fn = getattr(callback, "on_event", None) or callback
        subscribers = self._subscribers.get(event_type, [])
        if fn in subscribers:
            subscribers.remove(fn)

    def publish(self, event: Event) -> None:
        """Dispatch *event* to all registered subscribers."""
        for fn in list(self._subscribers.get(event.event_type, [])):
            try:
                fn(event)
            except Exception:
                logger.exception("Subscriber raised for %s", event.event_type)


class LoggingObserver:
    """Default observer that writes every event to Python's logging module."""

    def on_event(self, event: Event) -> None:
        prefix = f"[{event.run_id}] " if event.run_id else ""
        logger.info("%s[%s] %s", prefix, event.event_type.name, event.message or event.payload)
