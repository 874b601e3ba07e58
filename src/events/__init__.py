"""
Events Module.

Deterministically ordered event timeline for backtest simulation.

Components:
- Event variants: market data, signal, order, fill, cancel, portfolio,
  risk, chain block, mempool transaction, kill switch
- EventQueue: (timestamp, priority) ordered buffer
- EventDispatcher: drains a queue and routes events to handlers

Usage:
    from src.events import EventQueue, MarketDataEvent

    queue = EventQueue()
    queue.push(MarketDataEvent(ts, "BTC-USD", 100, 101, 99, 100.5))
    event = queue.pop()
"""

from .schemas import (
    DEFAULT_PRIORITIES,
    CancelEvent,
    ChainBlockEvent,
    Event,
    EventType,
    FillEvent,
    KillSwitchEvent,
    MarketDataEvent,
    MempoolTransactionEvent,
    MEVType,
    OrderEvent,
    PortfolioEvent,
    RiskEvent,
    Side,
    SignalEvent,
    to_decimal,
)
from .queue import EventQueue
from .dispatcher import EventDispatcher

__all__ = [
    # Schemas
    "DEFAULT_PRIORITIES",
    "Event",
    "EventType",
    "Side",
    "MEVType",
    "MarketDataEvent",
    "SignalEvent",
    "OrderEvent",
    "FillEvent",
    "CancelEvent",
    "PortfolioEvent",
    "RiskEvent",
    "ChainBlockEvent",
    "MempoolTransactionEvent",
    "KillSwitchEvent",
    "to_decimal",
    # Queue
    "EventQueue",
    # Dispatcher
    "EventDispatcher",
]
