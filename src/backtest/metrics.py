"""
Performance Metrics Calculator.

Calculates key trading metrics for backtest evaluation:
- Returns (total, annualized)
- Risk-adjusted returns (Sharpe, Sortino)
- Drawdown analysis
- Trade statistics (win rate, profit factor)

Money and returns stay in Decimal. Sharpe and Sortino go through numpy
and are converted back to Decimal at 6 decimal places.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from src.events.schemas import to_decimal

from .schemas import ZERO, EquityPoint, PerformanceMetrics, Trade

RATIO_PLACES = Decimal("0.000001")
INFINITY = Decimal("Infinity")


def equity_to_dataframe(points: Sequence[EquityPoint]) -> pd.DataFrame:
    """Convert equity points to a DataFrame with float equity and drawdown columns."""
    equity = [float(p.equity) for p in points]
    peak = np.maximum.accumulate(equity) if equity else np.array([])
    drawdown = (peak - equity) / peak if equity else np.array([])
    return pd.DataFrame({
        "timestamp": [p.timestamp for p in points],
        "equity": equity,
        "drawdown": drawdown,
    })


class MetricsCalculator:
    """
    Calculates performance metrics from trades and an equity curve.

    Key metrics:
    - Sharpe Ratio: Risk-adjusted return (excess return / volatility)
    - Sortino Ratio: Downside-risk adjusted return
    - Maximum Drawdown: Largest peak-to-trough decline
    - Win Rate: Percentage of profitable trades
    - Profit Factor: Gross profit / gross loss

    `calculate` is a pure function of its arguments; the calculator holds
    no per-run state, so one instance can serve any number of runs.

    Usage:
        calculator = MetricsCalculator()
        metrics = calculator.calculate(trades, equity_curve, Decimal("10000"))
    """

    # Annualization factor (trading days per year)
    TRADING_DAYS = 252

    def __init__(self, risk_free_rate: float = 0.05):
        """
        Initialize metrics calculator.

        Args:
            risk_free_rate: Annual risk-free rate for Sharpe/Sortino
        """
        self.risk_free_rate = risk_free_rate

    def __call__(
        self,
        trades: Sequence[Trade],
        equity_curve: Sequence[EquityPoint],
        initial_capital: Decimal,
    ) -> PerformanceMetrics:
        return self.calculate(trades, equity_curve, initial_capital)

    def calculate(
        self,
        trades: Sequence[Trade],
        equity_curve: Sequence[EquityPoint],
        initial_capital: Decimal,
    ) -> PerformanceMetrics:
        """
        Calculate all performance metrics.

        Args:
            trades: Completed trades, in any order
            equity_curve: Equity points, in any order
            initial_capital: Starting capital

        Returns:
            PerformanceMetrics dataclass with all metrics
        """
        initial_capital = to_decimal(initial_capital)
        if not trades:
            return PerformanceMetrics.empty(initial_capital)

        trades = sorted(trades, key=lambda t: t.timestamp)
        points = sorted(equity_curve, key=lambda p: p.timestamp)

        # Basic stats
        pnls = [t.pnl for t in trades]
        total_pnl = sum(pnls, ZERO)
        total_return = total_pnl / initial_capital

        start_time = trades[0].timestamp
        end_time = trades[-1].timestamp
        if points:
            start_time = min(start_time, points[0].timestamp)
            end_time = max(end_time, points[-1].timestamp)

        annualized_return = self._annualize(total_return, start_time, end_time)

        # Risk metrics
        daily_returns = self._daily_returns(trades, initial_capital)
        sharpe = self.calculate_sharpe(daily_returns)
        sortino = self.calculate_sortino(daily_returns)

        if not points:
            points = self._equity_from_trades(trades, initial_capital)
        max_dd, max_dd_duration = self._drawdown_with_duration(points)

        # Trade statistics
        winners = [p for p in pnls if p > 0]
        losers = [p for p in pnls if p <= 0]

        return PerformanceMetrics(
            start_date=start_time,
            end_date=end_time,
            total_pnl=total_pnl,
            total_return=total_return,
            annualized_return=annualized_return,
            sharpe_ratio=self._to_ratio(sharpe),
            sortino_ratio=self._to_ratio(sortino),
            max_drawdown=max_dd,
            max_drawdown_duration=max_dd_duration,
            total_trades=len(trades),
            winning_trades=len(winners),
            losing_trades=len(losers),
            win_rate=self.calculate_win_rate(pnls),
            avg_win=sum(winners, ZERO) / len(winners) if winners else ZERO,
            avg_loss=sum(losers, ZERO) / len(losers) if losers else ZERO,
            profit_factor=self.calculate_profit_factor(pnls),
            final_equity=initial_capital + total_pnl,
        )

    def calculate_sharpe(
        self,
        returns: Sequence[float],
        risk_free_rate: Optional[float] = None,
    ) -> float:
        """
        Calculate annualized Sharpe ratio.

        Sharpe = (mean_return - risk_free) / std_dev * sqrt(252)
        """
        returns = np.asarray(returns, dtype=float)
        if len(returns) < 2:
            return 0.0

        rf = self.risk_free_rate if risk_free_rate is None else risk_free_rate
        daily_rf = rf / self.TRADING_DAYS

        std_return = np.std(returns, ddof=1)
        if std_return == 0:
            return 0.0

        return float((np.mean(returns) - daily_rf) / std_return * math.sqrt(self.TRADING_DAYS))

    def calculate_sortino(
        self,
        returns: Sequence[float],
        risk_free_rate: Optional[float] = None,
    ) -> float:
        """
        Calculate annualized Sortino ratio.

        Sortino = (mean_return - risk_free) / downside_std * sqrt(252)
        """
        returns = np.asarray(returns, dtype=float)
        if len(returns) < 2:
            return 0.0

        rf = self.risk_free_rate if risk_free_rate is None else risk_free_rate
        daily_rf = rf / self.TRADING_DAYS
        mean_return = np.mean(returns)

        # Downside deviation (only returns below the risk-free rate)
        downside_returns = returns[returns < daily_rf]
        if len(downside_returns) < 2:
            return math.inf if mean_return > daily_rf else 0.0

        downside_std = np.std(downside_returns, ddof=1)
        if downside_std == 0:
            return math.inf if mean_return > daily_rf else 0.0

        return float((mean_return - daily_rf) / downside_std * math.sqrt(self.TRADING_DAYS))

    def calculate_max_drawdown(self, equity: Sequence) -> Decimal:
        """Largest peak-to-trough decline as a fraction of the peak."""
        max_dd = ZERO
        peak: Optional[Decimal] = None
        for value in equity:
            value = to_decimal(value)
            if peak is None or value > peak:
                peak = value
            if peak > 0:
                max_dd = max(max_dd, (peak - value) / peak)
        return max_dd

    def calculate_win_rate(self, pnls: Sequence) -> Decimal:
        """Share of trades with positive P&L."""
        if not pnls:
            return ZERO
        wins = sum(1 for p in pnls if to_decimal(p) > 0)
        return Decimal(wins) / Decimal(len(pnls))

    def calculate_profit_factor(self, pnls: Sequence) -> Decimal:
        """Gross profit / gross loss; Infinity when nothing was lost."""
        values = [to_decimal(p) for p in pnls]
        gross_profit = sum((p for p in values if p > 0), ZERO)
        gross_loss = abs(sum((p for p in values if p <= 0), ZERO))
        if gross_loss == 0:
            return INFINITY if gross_profit > 0 else ZERO
        return gross_profit / gross_loss

    def _annualize(self, total_return: Decimal, start: datetime, end: datetime) -> Decimal:
        duration_days = max((end - start).days, 1)
        years = Decimal(duration_days) / Decimal("365.25")
        growth = 1 + total_return
        if growth <= 0:
            return Decimal("-1")
        return growth ** (1 / years) - 1

    def _daily_returns(self, trades: Sequence[Trade], initial_capital: Decimal) -> list[float]:
        """Daily returns from trade P&L grouped by calendar day."""
        daily_pnl: dict = {}
        for trade in trades:
            day = trade.timestamp.date()
            daily_pnl[day] = daily_pnl.get(day, ZERO) + trade.pnl

        equity = initial_capital
        returns = []
        for day in sorted(daily_pnl):
            returns.append(float(daily_pnl[day] / equity) if equity else 0.0)
            equity += daily_pnl[day]
        return returns

    def _equity_from_trades(self, trades: Sequence[Trade], initial_capital: Decimal) -> list[EquityPoint]:
        equity = initial_capital
        points = [EquityPoint(trades[0].timestamp, equity)]
        for trade in trades:
            equity += trade.pnl
            points.append(EquityPoint(trade.timestamp, equity))
        return points

    def _drawdown_with_duration(self, points: Sequence[EquityPoint]) -> tuple[Decimal, float]:
        """
        Maximum drawdown and its duration.

        Duration runs from the peak to recovery, or to the last point if
        equity never recovers.
        """
        if not points:
            return ZERO, 0.0

        max_dd = ZERO
        peak_value = points[0].equity
        peak_idx = 0
        worst_peak_idx = 0
        worst_trough_idx = 0

        for i, point in enumerate(points):
            if point.equity > peak_value:
                peak_value = point.equity
                peak_idx = i
            if peak_value > 0:
                dd = (peak_value - point.equity) / peak_value
                if dd > max_dd:
                    max_dd = dd
                    worst_peak_idx = peak_idx
                    worst_trough_idx = i

        if max_dd == 0:
            return ZERO, 0.0

        recovery_idx = len(points) - 1
        target = points[worst_peak_idx].equity
        for i in range(worst_trough_idx, len(points)):
            if points[i].equity >= target:
                recovery_idx = i
                break

        duration = points[recovery_idx].timestamp - points[worst_peak_idx].timestamp
        return max_dd, duration.total_seconds() / 86400

    def _to_ratio(self, value: float) -> Decimal:
        if math.isinf(value):
            return INFINITY if value > 0 else -INFINITY
        if math.isnan(value):
            return ZERO
        return Decimal(str(value)).quantize(RATIO_PLACES)
