"""
Event Dispatcher.

Drains an EventQueue in order, advancing a simulated clock and calling
the handlers registered for each event kind. Each dispatcher owns its
queue and its clock; nothing is shared between dispatchers.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional

from .queue import EventQueue
from .schemas import Event, EventType, KillSwitchEvent

logger = logging.getLogger(__name__)


class EventDispatcher:
    """
    Event-driven simulation driver.

    Usage:
        dispatcher = EventDispatcher()

        # Register handlers
        dispatcher.on(EventType.MARKET_DATA, handle_bar)
        dispatcher.on(EventType.FILL, handle_fill)

        # Load events
        dispatcher.add_events(events)

        # Run simulation
        for event in dispatcher.run():
            pass
    """

    def __init__(self, queue: Optional[EventQueue] = None, start_time: Optional[datetime] = None):
        self._queue = queue if queue is not None else EventQueue()
        self._handlers: dict[EventType, list[Callable[[Event], None]]] = {
            et: [] for et in EventType
        }
        self._current_time: Optional[datetime] = start_time
        self._events_processed: int = 0
        self._halted: bool = False

    def on(self, event_type: EventType, handler: Callable[[Event], None]):
        """
        Register handler for event type.

        Args:
            event_type: Type of event to handle
            handler: Callback function receiving Event
        """
        self._handlers[event_type].append(handler)

    def add_event(self, event: Event):
        """Add event to queue."""
        self._queue.push(event)

    def add_events(self, events: Iterable[Event]):
        """Add multiple events to queue."""
        self._queue.push_many(events)

    def run(self) -> Iterator[Event]:
        """
        Run simulation, yielding events in delivery order.

        Stops early after a kill switch that halts trading.
        """
        while not self._halted:
            event = self._queue.pop()
            if event is None:
                break
            self._dispatch(event)
            yield event

    def run_until(self, end_time: datetime) -> Iterator[Event]:
        """
        Run simulation until the next event would be later than end_time.

        Events after end_time stay queued for a later call.
        """
        while not self._halted:
            event = self._queue.peek()
            if event is None or event.timestamp > end_time:
                break
            self._queue.pop()
            self._dispatch(event)
            yield event

        if not self._halted and (self._current_time is None or self._current_time < end_time):
            self._current_time = end_time

    def _dispatch(self, event: Event):
        self._current_time = event.timestamp
        self._events_processed += 1

        for handler in self._handlers[event.event_type]:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler error on {event.event_type.value} at {event.timestamp}: {e}")

        if isinstance(event, KillSwitchEvent) and event.halt_trading:
            logger.warning(f"Kill switch at {event.timestamp}: {event.reason}")
            self._halted = True

    @property
    def current_time(self) -> Optional[datetime]:
        """Get current simulation time."""
        return self._current_time

    @property
    def events_remaining(self) -> int:
        """Get number of events remaining in queue."""
        return len(self._queue)

    @property
    def events_processed(self) -> int:
        """Get number of events processed."""
        return self._events_processed

    @property
    def halted(self) -> bool:
        return self._halted

    def peek(self) -> Optional[Event]:
        """Peek at next event without removing it."""
        return self._queue.peek()

    def clear(self):
        """Clear all events and reset the clock."""
        self._queue.clear()
        self._events_processed = 0
        self._current_time = None
        self._halted = False
