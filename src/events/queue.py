"""
Ordered event buffer.

Events are kept sorted by (timestamp, priority). Insertion scans backward
from the tail: backtests replay mostly pre-sorted history with occasional
events injected near the current simulated time, so the scan usually stops
after one comparison. Workloads that inject far in the past should use a
heap with the same tie-break rule instead.

The queue is not thread-safe; each simulation owns its own instance.
"""

from collections import deque
from typing import Iterable, Iterator, Optional

from .schemas import Event


class EventQueue:
    """
    Deterministically ordered event timeline.

    Ordering: for positions i < j, queue[i].timestamp < queue[j].timestamp,
    or the timestamps are equal and queue[i].priority <= queue[j].priority.
    Events with identical keys keep insertion order.

    Usage:
        queue = EventQueue()
        queue.push(event)

        while (event := queue.pop()) is not None:
            handle(event)
    """

    def __init__(self, events: Optional[Iterable[Event]] = None):
        self._events: deque[Event] = deque()
        if events is not None:
            self.push_many(events)

    def push(self, event: Event):
        """Insert event after every queued event that sorts at or before it."""
        key = event.sort_key
        events = self._events

        # Fast path: in-order append
        if not events or events[-1].sort_key <= key:
            events.append(event)
            return

        index = len(events) - 1
        while index > 0 and events[index - 1].sort_key > key:
            index -= 1
        events.insert(index, event)

    def push_many(self, events: Iterable[Event]):
        """Insert events in iteration order."""
        for event in events:
            self.push(event)

    def pop(self) -> Optional[Event]:
        """Remove and return the earliest event, or None when empty."""
        if not self._events:
            return None
        return self._events.popleft()

    def peek(self) -> Optional[Event]:
        """Return the earliest event without removing it, or None when empty."""
        return self._events[0] if self._events else None

    @property
    def size(self) -> int:
        return len(self._events)

    def clear(self):
        """Drop all events."""
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)

    def __iter__(self) -> Iterator[Event]:
        """Iterate queued events in delivery order without consuming them."""
        return iter(tuple(self._events))
