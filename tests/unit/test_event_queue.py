"""
Unit tests for EventQueue ordering.
"""

import random
import pytest
from datetime import datetime, timedelta

from src.events.queue import EventQueue
from src.events.schemas import (
    FillEvent,
    KillSwitchEvent,
    MarketDataEvent,
    RiskEvent,
    Side,
    SignalEvent,
)


def _random_event(rng: random.Random, base: datetime, spread_seconds: int) -> SignalEvent:
    return SignalEvent(
        base + timedelta(seconds=rng.randrange(spread_seconds)),
        symbol="BTC-USD",
        side=Side.BUY,
        priority=rng.randrange(10),
    )


def _drain(queue: EventQueue) -> list:
    drained = []
    while (event := queue.pop()) is not None:
        drained.append(event)
    return drained


def _assert_ordered(events):
    for earlier, later in zip(events, events[1:]):
        assert earlier.timestamp < later.timestamp or (
            earlier.timestamp == later.timestamp and earlier.priority <= later.priority
        )


class TestOrdering:
    """Removal order must follow (timestamp, priority)."""

    @pytest.mark.parametrize("size", [1, 2, 10, 100, 1000])
    def test_random_batches_drain_in_order(self, size):
        """Arbitrary insertion order drains sorted and stable on ties."""
        rng = random.Random(size)
        base = datetime(2024, 1, 1)
        # Narrow spread forces plenty of timestamp ties
        events = [_random_event(rng, base, max(1, size // 4)) for _ in range(size)]

        queue = EventQueue()
        for event in events:
            queue.push(event)

        drained = _drain(queue)

        assert len(drained) == size
        _assert_ordered(drained)
        # Same as a stable sort: identical keys keep insertion order
        assert drained == sorted(events, key=lambda e: e.sort_key)

    def test_large_mostly_sorted_batch(self):
        """10,000 events replayed near-sorted with late injections."""
        rng = random.Random(7)
        base = datetime(2024, 1, 1)
        events = []
        for i in range(10_000):
            jitter = rng.randint(-5, 5)
            events.append(SignalEvent(
                base + timedelta(seconds=i + jitter),
                symbol="ETH-USD",
                side=Side.SELL,
                priority=rng.randrange(10),
            ))

        queue = EventQueue(events)
        drained = _drain(queue)

        assert len(drained) == 10_000
        _assert_ordered(drained)
        assert drained == sorted(events, key=lambda e: e.sort_key)

    def test_priority_breaks_timestamp_ties(self, base_time):
        """Lower priority value is delivered first at equal timestamps."""
        queue = EventQueue()
        late = SignalEvent(base_time, "BTC-USD", Side.BUY, priority=9)
        early = SignalEvent(base_time, "BTC-USD", Side.BUY, priority=1)

        queue.push(late)
        queue.push(early)

        assert queue.pop() is early
        assert queue.pop() is late

    def test_default_priorities_order_kinds(self, base_time):
        """Kill switch before risk before market data before fills."""
        queue = EventQueue()
        fill = FillEvent(base_time, "o1", "BTC-USD", Side.BUY, 1, 100)
        bar = MarketDataEvent(base_time, "BTC-USD", 100, 100, 100, 100)
        risk = RiskEvent(base_time, rule="max_drawdown")
        kill = KillSwitchEvent(base_time, reason="drawdown breach")

        for event in (fill, bar, risk, kill):
            queue.push(event)

        assert _drain(queue) == [kill, risk, bar, fill]

    def test_timestamp_dominates_priority(self, base_time):
        """An earlier event wins even with a higher priority value."""
        queue = EventQueue()
        later = KillSwitchEvent(base_time + timedelta(seconds=1), reason="stop")
        earlier = FillEvent(base_time, "o1", "BTC-USD", Side.BUY, 1, 100)

        queue.push(later)
        queue.push(earlier)

        assert queue.pop() is earlier

    def test_insert_at_head(self, base_time):
        """Event earlier than everything queued goes to the front."""
        queue = EventQueue()
        for i in range(1, 5):
            queue.push(SignalEvent(base_time + timedelta(seconds=i), "X", Side.BUY))

        first = SignalEvent(base_time, "X", Side.SELL)
        queue.push(first)

        assert queue.peek() is first


class TestEmptyQueue:
    """Empty queue is a normal state, never an error."""

    def test_pop_empty_returns_none(self):
        assert EventQueue().pop() is None

    def test_peek_empty_returns_none(self):
        assert EventQueue().peek() is None

    def test_pop_after_drain_returns_none(self, sample_bar):
        queue = EventQueue([sample_bar])
        assert queue.pop() is sample_bar
        assert queue.pop() is None

    def test_clear_resets_size(self, base_time):
        queue = EventQueue()
        for i in range(50):
            queue.push(SignalEvent(base_time + timedelta(seconds=i), "X", Side.BUY))

        queue.clear()

        assert len(queue) == 0
        assert queue.size == 0
        assert not queue
        assert queue.pop() is None

    def test_clear_on_empty_queue(self):
        queue = EventQueue()
        queue.clear()
        assert len(queue) == 0


class TestIntrospection:
    """Peek, size and iteration do not consume events."""

    def test_peek_does_not_remove(self, sample_bar):
        queue = EventQueue([sample_bar])

        assert queue.peek() is sample_bar
        assert queue.peek() is sample_bar
        assert len(queue) == 1

    def test_iteration_is_ordered_and_non_destructive(self, base_time):
        queue = EventQueue()
        events = [SignalEvent(base_time + timedelta(seconds=s), "X", Side.BUY) for s in (3, 1, 2)]
        queue.push_many(events)

        listed = list(queue)

        assert [e.timestamp for e in listed] == sorted(e.timestamp for e in events)
        assert len(queue) == 3

    def test_size_tracks_push_and_pop(self, sample_bar, sample_fill):
        queue = EventQueue()
        queue.push(sample_bar)
        queue.push(sample_fill)
        assert queue.size == 2

        queue.pop()
        assert queue.size == 1
