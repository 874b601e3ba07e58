"""
Unit tests for MetricsCalculator.
"""

import random
import pytest
import numpy as np
from datetime import timedelta
from decimal import Decimal

from src.backtest.metrics import MetricsCalculator, equity_to_dataframe
from src.backtest.schemas import EquityPoint, PerformanceMetrics, Trade
from src.events.schemas import Side


def _trade(ts, pnl):
    return Trade(
        timestamp=ts,
        symbol="ES",
        side=Side.SELL,
        quantity=1,
        entry_price=100,
        exit_price=100,
        pnl=pnl,
    )


class TestMetricsCalculator:
    """Tests for MetricsCalculator."""

    def test_sharpe_ratio_positive_returns(self):
        """Sharpe ratio should be positive for positive excess returns."""
        calc = MetricsCalculator()

        # Consistent positive returns
        returns = [0.01, 0.02, 0.015, 0.01, 0.025] * 50  # 250 days

        sharpe = calc.calculate_sharpe(returns, risk_free_rate=0.0)

        assert sharpe > 0

    def test_sharpe_ratio_negative_returns(self):
        """Sharpe ratio should be negative for negative returns."""
        calc = MetricsCalculator()

        returns = [-0.01, -0.02, -0.015, -0.01, -0.025] * 50

        sharpe = calc.calculate_sharpe(returns, risk_free_rate=0.0)

        assert sharpe < 0

    def test_sharpe_ratio_annualization(self):
        """Sharpe should stay in a sane range for noisy returns."""
        calc = MetricsCalculator()

        np.random.seed(42)
        returns = np.random.normal(0.001, 0.01, 252).tolist()
        sharpe = calc.calculate_sharpe(returns, risk_free_rate=0.0)

        assert -5 < sharpe < 5

    def test_sharpe_zero_volatility(self):
        """Flat returns have no volatility and a zero Sharpe."""
        calc = MetricsCalculator()

        assert calc.calculate_sharpe([0.0] * 252, risk_free_rate=0.0) == 0.0

    def test_sortino_ratio_ignores_upside(self):
        """Sortino should only penalize downside volatility."""
        calc = MetricsCalculator()

        # High upside variance, low downside
        returns = [0.05, 0.03, 0.04, 0.06, -0.01, 0.05, 0.04, -0.005] * 30

        sortino = calc.calculate_sortino(returns, risk_free_rate=0.0)
        sharpe = calc.calculate_sharpe(returns, risk_free_rate=0.0)

        assert sortino > sharpe

    def test_max_drawdown_calculation(self):
        """Should calculate max drawdown correctly."""
        calc = MetricsCalculator()

        # Equity curve: 100 -> 120 -> 90 -> 110
        # Max DD = (120 - 90) / 120 = 25%
        equity_curve = [100, 110, 120, 100, 90, 95, 100, 110]

        dd = calc.calculate_max_drawdown(equity_curve)

        assert dd == Decimal("0.25")

    def test_max_drawdown_no_drawdown(self):
        """Max drawdown should be 0 for monotonically increasing equity."""
        calc = MetricsCalculator()

        dd = calc.calculate_max_drawdown([100, 101, 102, 103, 104, 105])

        assert dd == 0

    def test_win_rate_calculation(self):
        """Should calculate win rate correctly."""
        calc = MetricsCalculator()

        # 7 wins, 3 losses = 70% win rate
        pnls = [10, -5, 20, 15, -10, 5, 10, -8, 30, 25]

        assert calc.calculate_win_rate(pnls) == Decimal("0.7")

    def test_profit_factor(self):
        """Profit factor = gross profits / gross losses."""
        calc = MetricsCalculator()

        # Profits: 10 + 20 + 15 + 5 + 10 + 30 + 25 = 115
        # Losses: 5 + 10 + 8 = 23
        pnls = [10, -5, 20, 15, -10, 5, 10, -8, 30, 25]

        assert calc.calculate_profit_factor(pnls) == Decimal("5")

    def test_profit_factor_no_losses(self):
        """Profit factor is infinite when nothing was lost."""
        calc = MetricsCalculator()

        pf = calc.calculate_profit_factor([10, 20, 15, 5])

        assert pf == Decimal("Infinity")

    def test_handles_empty_data(self):
        """Should handle empty data gracefully."""
        calc = MetricsCalculator()

        assert calc.calculate_sharpe([]) == 0.0
        assert calc.calculate_max_drawdown([]) == 0
        assert calc.calculate_win_rate([]) == 0
        assert calc.calculate_profit_factor([]) == 0

    def test_handles_single_data_point(self):
        """Should handle single data point."""
        calc = MetricsCalculator()

        assert calc.calculate_sharpe([0.01]) == 0.0  # Can't calc std
        assert calc.calculate_max_drawdown([100]) == 0


class TestCalculate:
    """Tests for the full metrics reduction."""

    def test_no_trades_gives_empty_metrics(self, base_time):
        calc = MetricsCalculator()

        metrics = calc.calculate([], [EquityPoint(base_time, Decimal("10000"))], Decimal("10000"))

        assert metrics == PerformanceMetrics.empty(Decimal("10000"))
        assert metrics.total_trades == 0
        assert metrics.final_equity == Decimal("10000")

    def test_returns_and_trade_statistics(self, base_time):
        calc = MetricsCalculator()
        trades = [
            _trade(base_time + timedelta(days=1), 300),
            _trade(base_time + timedelta(days=2), -100),
            _trade(base_time + timedelta(days=3), 300),
        ]

        metrics = calc.calculate(trades, [], Decimal("10000"))

        assert metrics.total_pnl == Decimal("500")
        assert metrics.total_return == Decimal("0.05")
        assert metrics.final_equity == Decimal("10500")
        assert metrics.total_trades == 3
        assert metrics.winning_trades == 2
        assert metrics.losing_trades == 1
        assert metrics.avg_win == Decimal("300")
        assert metrics.avg_loss == Decimal("-100")
        assert metrics.profit_factor == Decimal("6")
        assert metrics.start_date == base_time + timedelta(days=1)
        assert metrics.end_date == base_time + timedelta(days=3)

    def test_drawdown_from_equity_curve(self, base_time):
        calc = MetricsCalculator()
        values = [100, 110, 120, 100, 90, 95, 100, 120, 130]
        curve = [EquityPoint(base_time + timedelta(days=i), Decimal(v)) for i, v in enumerate(values)]

        metrics = calc.calculate([_trade(base_time, 30)], curve, Decimal("100"))

        assert metrics.max_drawdown == Decimal("0.25")
        # Peak on day 2, recovered on day 7
        assert metrics.max_drawdown_duration == pytest.approx(5.0)

    def test_input_order_does_not_matter(self, base_time):
        """Pooled trades arrive unsorted; the result must match the sorted input."""
        calc = MetricsCalculator()
        rng = random.Random(3)
        trades = [
            _trade(base_time + timedelta(days=i, hours=rng.randrange(24)), rng.randint(-200, 300))
            for i in range(40)
        ]
        curve = [EquityPoint(base_time + timedelta(days=i), Decimal(10000 + 10 * i)) for i in range(40)]

        shuffled_trades = trades[:]
        shuffled_curve = curve[:]
        rng.shuffle(shuffled_trades)
        rng.shuffle(shuffled_curve)

        assert calc(shuffled_trades, shuffled_curve, Decimal("10000")) == \
            calc.calculate(trades, curve, Decimal("10000"))

    def test_ratios_are_decimal(self, base_time):
        calc = MetricsCalculator()
        trades = [_trade(base_time + timedelta(days=i), p) for i, p in enumerate([50, -20, 80, -10, 40])]

        metrics = calc.calculate(trades, [], Decimal("10000"))

        assert isinstance(metrics.sharpe_ratio, Decimal)
        assert isinstance(metrics.sortino_ratio, Decimal)
        assert metrics.sharpe_ratio > 0


class TestEquityFrame:
    def test_equity_to_dataframe(self, base_time):
        curve = [EquityPoint(base_time + timedelta(days=i), Decimal(v))
                 for i, v in enumerate([100, 120, 90])]

        df = equity_to_dataframe(curve)

        assert list(df.columns) == ["timestamp", "equity", "drawdown"]
        assert df["drawdown"].iloc[-1] == pytest.approx(0.25)

    def test_empty_curve(self):
        df = equity_to_dataframe([])
        assert df.empty
