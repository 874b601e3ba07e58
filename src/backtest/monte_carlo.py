"""
Monte-Carlo trade resampling.

Reorders (or bootstraps) a backtest's trade P&L sequence many times to
see how much of the result depends on the particular order trades
happened in. Reports percentile bands for final equity and drawdown,
plus probabilities of ruin and of doubling the account.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

import numpy as np

from src.events.schemas import to_decimal

from .config import MonteCarloConfig
from .schemas import Trade

logger = logging.getLogger(__name__)

PERCENTILES = (5, 25, 50, 75, 95)


@dataclass(frozen=True)
class MonteCarloResult:
    """Distribution of outcomes over resampled trade sequences."""
    num_simulations: int
    num_trades: int
    final_equity: dict[int, Decimal] = field(default_factory=dict)  # percentile -> equity
    max_drawdown: dict[int, Decimal] = field(default_factory=dict)  # percentile -> drawdown
    probability_of_ruin: Decimal = Decimal("0")
    probability_of_doubling: Decimal = Decimal("0")


class MonteCarloValidator:
    """
    Bootstrap / shuffle simulator over trade P&L.

    Usage:
        validator = MonteCarloValidator(MonteCarloConfig(num_simulations=5000))
        result = validator.run(trades, Decimal("10000"))
        print(result.final_equity[5])
    """

    def __init__(self, config: Optional[MonteCarloConfig] = None):
        self.config = config or MonteCarloConfig()

    def run(self, trades: Sequence[Trade], initial_capital: Decimal) -> MonteCarloResult:
        """
        Simulate `num_simulations` alternative trade orderings.

        Args:
            trades: Completed trades of one backtest
            initial_capital: Starting capital

        Returns:
            MonteCarloResult (zero simulations when there are no trades)
        """
        if not trades:
            return MonteCarloResult(num_simulations=0, num_trades=0)

        cfg = self.config
        capital = float(initial_capital)
        pnl = np.array([float(t.pnl) for t in trades])
        rng = np.random.default_rng(cfg.seed)

        logger.info(f"Monte-Carlo: {cfg.num_simulations} simulations over {len(pnl)} trades")

        if cfg.with_replacement:
            samples = rng.choice(pnl, size=(cfg.num_simulations, len(pnl)), replace=True)
        else:
            samples = np.array([rng.permutation(pnl) for _ in range(cfg.num_simulations)])

        equity = capital + np.cumsum(samples, axis=1)
        equity = np.hstack([np.full((cfg.num_simulations, 1), capital), equity])

        peaks = np.maximum.accumulate(equity, axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            drawdowns = np.where(peaks > 0, (peaks - equity) / peaks, 0.0)
        max_drawdowns = drawdowns.max(axis=1)
        finals = equity[:, -1]

        return MonteCarloResult(
            num_simulations=cfg.num_simulations,
            num_trades=len(pnl),
            final_equity=self._percentiles(finals),
            max_drawdown=self._percentiles(max_drawdowns),
            probability_of_ruin=self._share(finals < capital * cfg.ruin_fraction),
            probability_of_doubling=self._share(finals >= capital * 2),
        )

    def _percentiles(self, values: np.ndarray) -> dict[int, Decimal]:
        return {
            p: to_decimal(round(float(np.percentile(values, p)), 6))
            for p in PERCENTILES
        }

    def _share(self, mask: np.ndarray) -> Decimal:
        return Decimal(int(mask.sum())) / Decimal(len(mask))
