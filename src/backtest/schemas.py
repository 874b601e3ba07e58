"""Backtest result schemas."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from src.events.schemas import Side, to_decimal

if TYPE_CHECKING:
    from .config import BacktestConfig
    from .monte_carlo import MonteCarloResult
    from .walk_forward import WalkForwardResult

ZERO = Decimal("0")


@dataclass
class Trade:
    """Completed (closing) trade with realized P&L net of costs."""
    timestamp: datetime
    symbol: str
    side: Side  # Side of the closing fill
    quantity: Decimal
    entry_price: Decimal
    exit_price: Decimal
    pnl: Decimal
    commission: Decimal = ZERO
    slippage: Decimal = ZERO

    def __post_init__(self):
        self.quantity = to_decimal(self.quantity)
        self.entry_price = to_decimal(self.entry_price)
        self.exit_price = to_decimal(self.exit_price)
        self.pnl = to_decimal(self.pnl)
        self.commission = to_decimal(self.commission)
        self.slippage = to_decimal(self.slippage)


@dataclass(frozen=True)
class EquityPoint:
    """Account equity at a point in time."""
    timestamp: datetime
    equity: Decimal


@dataclass(frozen=True)
class PerformanceMetrics:
    """Summary performance of one backtest (or of pooled out-of-sample legs)."""
    start_date: Optional[datetime]
    end_date: Optional[datetime]

    # Returns
    total_pnl: Decimal
    total_return: Decimal
    annualized_return: Decimal

    # Risk
    sharpe_ratio: Decimal
    sortino_ratio: Decimal
    max_drawdown: Decimal
    max_drawdown_duration: float  # Days

    # Trade statistics
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: Decimal
    avg_win: Decimal
    avg_loss: Decimal
    profit_factor: Decimal  # Infinity when there are no losing trades

    final_equity: Decimal

    @classmethod
    def empty(cls, initial_capital: Decimal = ZERO) -> "PerformanceMetrics":
        """Metrics for a run without trades."""
        return cls(
            start_date=None,
            end_date=None,
            total_pnl=ZERO,
            total_return=ZERO,
            annualized_return=ZERO,
            sharpe_ratio=ZERO,
            sortino_ratio=ZERO,
            max_drawdown=ZERO,
            max_drawdown_duration=0.0,
            total_trades=0,
            winning_trades=0,
            losing_trades=0,
            win_rate=ZERO,
            avg_win=ZERO,
            avg_loss=ZERO,
            profit_factor=ZERO,
            final_equity=to_decimal(initial_capital),
        )


@dataclass
class BacktestResult:
    """Complete result of one engine run."""
    config: "BacktestConfig"
    metrics: PerformanceMetrics
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    events_processed: int = 0
    walk_forward: Optional["WalkForwardResult"] = None
    monte_carlo: Optional["MonteCarloResult"] = None
