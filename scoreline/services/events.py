"""Domain events collected during a computation and drained after commit."""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

# Event type constants
BET_SCORED = "BET_SCORED"
STANDINGS_RECOMPUTED = "STANDINGS_RECOMPUTED"
SIGNAL_LOST = "SIGNAL_LOST"
PREDICTION_FALLBACK = "PREDICTION_FALLBACK"
BOT_PREDICTION_PLACED = "BOT_PREDICTION_PLACED"


class DomainEvent:
    """Immutable event payload."""

    __slots__ = ("event_type", "payload", "created_at")

    def __init__(self, event_type: str, payload: Dict[str, Any]):
        self.event_type = event_type
        self.payload = payload
        self.created_at = datetime.now(timezone.utc)

    def __repr__(self):
        return f"DomainEvent({self.event_type}, {self.payload})"


class Outbox:
    """Append-only list of pending events.

    Producers append while computing; the caller drains once its
    transaction has committed and hands the events to subscribers.
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._handlers: Dict[str, List[Callable]] = {}
        self._lock = threading.Lock()

    def append(self, event_type: str, payload: Dict[str, Any]) -> DomainEvent:
        event = DomainEvent(event_type, payload)
        with self._lock:
            self._events.append(event)
        logger.debug(f"Outbox: appended {event}")
        return event

    def subscribe(self, event_type: str, handler: Callable):
        """Register a handler called for each drained event of this type."""
        self._handlers.setdefault(event_type, []).append(handler)
        logger.info(f"Outbox: subscribed {handler.__name__} to {event_type}")

    def drain(self) -> List[DomainEvent]:
        """Remove and dispatch all pending events, returning them."""
        with self._lock:
            events, self._events = self._events, []

        for event in events:
            for handler in self._handlers.get(event.event_type, []):
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Outbox: handler {handler.__name__} failed for {event}: {e}",
                        exc_info=True,
                    )
        return events

    def discard(self) -> int:
        """Drop pending events after a rolled-back transaction."""
        with self._lock:
            count = len(self._events)
            self._events = []
        return count

    @property
    def pending(self) -> List[DomainEvent]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
