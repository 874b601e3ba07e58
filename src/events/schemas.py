"""
Event model for the backtest timeline.

Every event carries the same envelope (timestamp, priority, kind) and one
kind-specific payload. The kind is fixed by the concrete class and exposed
read-only, so it always matches the payload.

Event kinds:
- market_data: OHLCV bar or quote for a symbol
- signal: strategy signal
- order / fill / cancel: order lifecycle
- portfolio: portfolio snapshot
- risk: risk rule breach or warning
- chain_block: new block observed on a chain
- mempool_tx: pending transaction, optionally MEV-classified
- kill_switch: emergency stop
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional


class EventType(Enum):
    """Types of backtest events."""
    MARKET_DATA = "market_data"
    SIGNAL = "signal"
    ORDER = "order"
    FILL = "fill"
    CANCEL = "cancel"
    PORTFOLIO = "portfolio"
    RISK = "risk"
    CHAIN_BLOCK = "chain_block"
    MEMPOOL_TX = "mempool_tx"
    KILL_SWITCH = "kill_switch"


class Side(Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"


class MEVType(Enum):
    """Maximum-extractable-value pattern flagged on a pending transaction."""
    SANDWICH = "sandwich"
    FRONTRUN = "frontrun"
    BACKRUN = "backrun"
    ARBITRAGE = "arbitrage"
    LIQUIDATION = "liquidation"


# Tie-break order for events sharing a timestamp (lower = earlier).
# Safety events first, then chain state, then market data, then the
# order lifecycle, then bookkeeping.
DEFAULT_PRIORITIES: dict[EventType, int] = {
    EventType.KILL_SWITCH: 0,
    EventType.RISK: 1,
    EventType.CHAIN_BLOCK: 2,
    EventType.MEMPOOL_TX: 3,
    EventType.MARKET_DATA: 4,
    EventType.SIGNAL: 5,
    EventType.ORDER: 6,
    EventType.CANCEL: 7,
    EventType.FILL: 8,
    EventType.PORTFOLIO: 9,
}


def to_decimal(value: Any) -> Decimal:
    """Coerce a number to Decimal, going through str so floats stay exact-looking."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


@dataclass
class Event:
    """
    Common envelope for every event in the backtest timeline.

    Events are ordered by timestamp, then by priority (lower = earlier).
    Priority defaults to the kind's entry in DEFAULT_PRIORITIES.
    """
    timestamp: datetime
    priority: Optional[int] = field(default=None, kw_only=True)

    _event_type: ClassVar[Optional[EventType]] = None

    def __post_init__(self):
        if self._event_type is None:
            raise TypeError(f"{type(self).__name__} is not a concrete event kind")
        if self.priority is None:
            self.priority = DEFAULT_PRIORITIES[self._event_type]

    def __setattr__(self, name, value):
        if name == "_event_type":
            raise AttributeError(f"{type(self).__name__} kind is fixed by its class")
        super().__setattr__(name, value)

    @property
    def event_type(self) -> EventType:
        """Kind tag, fixed by the concrete class."""
        return self._event_type

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """(timestamp, priority) pair defining delivery order."""
        return self.timestamp, self.priority


@dataclass
class MarketDataEvent(Event):
    """OHLCV bar with optional top-of-book quote."""
    symbol: str
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal("0")
    bid: Optional[Decimal] = None
    ask: Optional[Decimal] = None

    _event_type: ClassVar[EventType] = EventType.MARKET_DATA

    def __post_init__(self):
        super().__post_init__()
        self.open = to_decimal(self.open)
        self.high = to_decimal(self.high)
        self.low = to_decimal(self.low)
        self.close = to_decimal(self.close)
        self.volume = to_decimal(self.volume)
        self.bid = _optional_decimal(self.bid)
        self.ask = _optional_decimal(self.ask)

    @property
    def mid_price(self) -> Decimal:
        """Mid of the quote when both sides exist, else the close."""
        if self.bid is not None and self.ask is not None:
            return (self.bid + self.ask) / 2
        return self.close


@dataclass
class SignalEvent(Event):
    """Trading signal emitted by a strategy."""
    symbol: str
    side: Side
    strength: float = 1.0
    confidence: float = 1.0
    strategy: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    _event_type: ClassVar[EventType] = EventType.SIGNAL


@dataclass
class OrderEvent(Event):
    """Order submitted to the simulated venue."""
    order_id: str
    symbol: str
    side: Side
    quantity: Decimal
    order_type: str = "market"
    limit_price: Optional[Decimal] = None

    _event_type: ClassVar[EventType] = EventType.ORDER

    def __post_init__(self):
        super().__post_init__()
        self.quantity = to_decimal(self.quantity)
        self.limit_price = _optional_decimal(self.limit_price)


@dataclass
class FillEvent(Event):
    """Execution of (part of) an order."""
    order_id: str
    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal
    commission: Decimal = Decimal("0")
    slippage: Decimal = Decimal("0")

    _event_type: ClassVar[EventType] = EventType.FILL

    def __post_init__(self):
        super().__post_init__()
        self.quantity = to_decimal(self.quantity)
        self.price = to_decimal(self.price)
        self.commission = to_decimal(self.commission)
        self.slippage = to_decimal(self.slippage)

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.price


@dataclass
class CancelEvent(Event):
    """Cancellation of a resting order."""
    order_id: str
    symbol: str = ""
    reason: str = ""

    _event_type: ClassVar[EventType] = EventType.CANCEL


@dataclass
class PortfolioEvent(Event):
    """Portfolio snapshot."""
    equity: Decimal
    cash: Decimal
    positions: dict[str, Decimal] = field(default_factory=dict)

    _event_type: ClassVar[EventType] = EventType.PORTFOLIO

    def __post_init__(self):
        super().__post_init__()
        self.equity = to_decimal(self.equity)
        self.cash = to_decimal(self.cash)
        self.positions = {k: to_decimal(v) for k, v in self.positions.items()}


@dataclass
class RiskEvent(Event):
    """Risk rule breach or warning."""
    rule: str
    severity: str = "warning"  # "info", "warning", "critical"
    message: str = ""
    current_value: Optional[Decimal] = None
    limit: Optional[Decimal] = None

    _event_type: ClassVar[EventType] = EventType.RISK

    def __post_init__(self):
        super().__post_init__()
        self.current_value = _optional_decimal(self.current_value)
        self.limit = _optional_decimal(self.limit)


@dataclass
class ChainBlockEvent(Event):
    """New block observed on a chain."""
    chain: str
    block_number: int
    block_hash: str
    parent_hash: str = ""
    tx_count: int = 0
    base_fee: Optional[Decimal] = None
    gas_used: int = 0

    _event_type: ClassVar[EventType] = EventType.CHAIN_BLOCK

    def __post_init__(self):
        super().__post_init__()
        self.base_fee = _optional_decimal(self.base_fee)


@dataclass
class MempoolTransactionEvent(Event):
    """Pending transaction seen in the mempool."""
    tx_hash: str
    sender: str
    receiver: str
    value: Decimal
    gas_limit: int
    gas_price: Decimal
    max_fee_per_gas: Optional[Decimal] = None
    max_priority_fee_per_gas: Optional[Decimal] = None
    mev_type: Optional[MEVType] = None

    _event_type: ClassVar[EventType] = EventType.MEMPOOL_TX

    def __post_init__(self):
        super().__post_init__()
        self.value = to_decimal(self.value)
        self.gas_price = to_decimal(self.gas_price)
        self.max_fee_per_gas = _optional_decimal(self.max_fee_per_gas)
        self.max_priority_fee_per_gas = _optional_decimal(self.max_priority_fee_per_gas)

    @property
    def is_mev(self) -> bool:
        return self.mev_type is not None


@dataclass
class KillSwitchEvent(Event):
    """Emergency stop."""
    reason: str
    triggered_by: str = "system"
    halt_trading: bool = True

    _event_type: ClassVar[EventType] = EventType.KILL_SWITCH
