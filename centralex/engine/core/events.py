"""
Event system for ledger and governance events.

EventBus is a simple pub/sub mechanism; EventLog is the durable, ordered
record consumed by external observers. Engines buffer events while an
operation runs and hand them to the log only after the operation commits.
"""
from typing import Dict, List, Callable, Any, Optional
import logging

from pydantic import BaseModel, Field

from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class Event(BaseModel):
    """One emitted event. `data` holds the event's fields."""
    seq: int = 0
    source: str
    name: str
    timestamp: int
    data: Dict[str, Any] = Field(default_factory=dict)


class EventBus:
    """
    Simple event bus for engine events.

    Events are delivered synchronously in the same thread. A failing
    listener is logged and does not affect other listeners or the
    operation that emitted the event.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event name (e.g., 'Deposited', 'VoteAdded'), or '*' for all events
            callback: Function called with the Event when it is emitted
        """
        if event_type not in self.listeners:
            self.listeners[event_type] = []

        self.listeners[event_type].append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        """
        Unsubscribe from an event type.

        Args:
            event_type: Event name
            callback: The callback to remove
        """
        if event_type in self.listeners:
            try:
                self.listeners[event_type].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event: Event) -> None:
        """
        Deliver an event to its subscribers and to wildcard subscribers.

        Args:
            event: Committed event
        """
        listeners = self.listeners.get(event.name, []) + self.listeners.get("*", [])

        if not listeners:
            logger.debug(f"No listeners for event: {event.name}")
            return

        logger.debug(f"Emitting event: {event.name} to {len(listeners)} listener(s)")

        for callback in listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in event callback for {event.name}: {e}", exc_info=True)

    def clear(self, event_type: str = None) -> None:
        """
        Clear all listeners for an event type, or all listeners if no type specified.

        Args:
            event_type: Event type to clear, or None to clear all
        """
        if event_type:
            self.listeners.pop(event_type, None)
            logger.debug(f"Cleared listeners for event: {event_type}")
        else:
            self.listeners.clear()
            logger.debug("Cleared all event listeners")


class EventLog:
    """
    Append-only, totally ordered event record.

    When a StorageDB is attached, events wait in `pending` until `flush`
    writes them to its events table together with the engine state they
    describe, so observers can replay the log after a restart.
    """

    def __init__(self, bus: Optional[EventBus] = None, db: Optional[StorageDB] = None):
        self.bus = bus or EventBus()
        self.db = db
        self.events: List[Event] = []
        self.pending: List[Event] = []
        self._next_seq = 1
        if db is not None:
            self._next_seq = db.get_last_event_seq() + 1

    def append(self, source: str, name: str, timestamp: int, **data: Any) -> Event:
        event = Event(seq=self._next_seq, source=source, name=name, timestamp=timestamp, data=data)
        self._next_seq += 1
        self.events.append(event)
        if self.db is not None:
            self.pending.append(event)
        self.bus.emit(event)
        return event

    def flush(self) -> int:
        """Writes pending events to DB. Returns the number written."""
        if self.db is None:
            return 0
        written = 0
        with self.db.batch():
            for event in self.pending:
                self.db.append_event(event.seq, event.source, event.name, event.timestamp, event.model_dump_json())
                written += 1
        self.pending.clear()
        return written

    def by_name(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]

    def last(self, name: Optional[str] = None) -> Optional[Event]:
        for event in reversed(self.events):
            if name is None or event.name == name:
                return event
        return None

    def history(self, name: Optional[str] = None, source: Optional[str] = None) -> List[Event]:
        """All events, including those persisted by earlier processes and those not flushed yet."""
        def matches(e: Event) -> bool:
            return (name is None or e.name == name) and (source is None or e.source == source)

        if self.db is None:
            return [e for e in self.events if matches(e)]
        rows = self.db.get_events(name=name, source=source)
        return [Event.model_validate_json(raw) for raw in rows] + [e for e in self.pending if matches(e)]

    def clear(self) -> None:
        self.events.clear()
