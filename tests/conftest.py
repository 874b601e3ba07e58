"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from src.events.schemas import FillEvent, MarketDataEvent, Side


@pytest.fixture
def base_time() -> datetime:
    """Fixed start of the test timeline."""
    return datetime(2024, 1, 1)


@pytest.fixture
def sample_bar(base_time) -> MarketDataEvent:
    """Create a sample market data event for testing."""
    return MarketDataEvent(
        base_time,
        symbol="BTC-USD",
        open=Decimal("42000"),
        high=Decimal("42500"),
        low=Decimal("41800"),
        close=Decimal("42250"),
        volume=Decimal("12.5"),
        bid=Decimal("42249"),
        ask=Decimal("42251"),
    )


@pytest.fixture
def sample_fill(base_time) -> FillEvent:
    """Create a sample fill for testing."""
    return FillEvent(
        base_time,
        order_id="ord-1",
        symbol="BTC-USD",
        side=Side.BUY,
        quantity=Decimal("0.5"),
        price=Decimal("42251"),
        commission=Decimal("2.11"),
        slippage=Decimal("0.5"),
    )


def make_daily_events(start: datetime, days: int, symbol: str = "ES", trade_every: int = 5):
    """
    Daily bars rising by 1 per day, with a round-trip trade every
    `trade_every` days: buy 10 at midnight, sell 12 hours later 2 higher.

    Each round trip opens and closes inside one day. Walk-forward legs
    start and end on day boundaries, so no trade is split across legs;
    a split trade would leave a lone sell that opens a losing short.
    """
    events = []
    for day in range(days):
        ts = start + timedelta(days=day)
        price = Decimal(100 + day)
        events.append(MarketDataEvent(ts, symbol, price, price, price, price, volume=1000))

        if day % trade_every == 0:
            events.append(FillEvent(
                ts, order_id=f"buy-{day}", symbol=symbol, side=Side.BUY,
                quantity=10, price=price,
            ))
            events.append(FillEvent(
                ts + timedelta(hours=12), order_id=f"sell-{day}", symbol=symbol, side=Side.SELL,
                quantity=10, price=price + 2,
            ))
    return events


@pytest.fixture
def daily_events(base_time) -> list:
    """90 days of rising bars with periodic round-trip trades."""
    return make_daily_events(base_time, 90)
