"""
Collaborator contracts for backtest orchestration.

The walk-forward analyzer only talks to these interfaces, so it can be
tested against stubs without running a real simulation.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Sequence

from src.events.schemas import Event, FillEvent

from .config import BacktestConfig
from .context import RunContext
from .schemas import BacktestResult, EquityPoint, PerformanceMetrics, Trade


class BaseDataLoader(ABC):
    """Source of historical events."""

    @abstractmethod
    def load_events(self, start: datetime, end: datetime) -> Iterable[Event]:
        """Events with start <= timestamp < end."""
        pass


class BaseSlippageModel(ABC):
    """Adjusts fill prices for execution costs."""

    @abstractmethod
    def adjust_price(self, fill: FillEvent) -> Decimal:
        """Effective price of the fill after slippage."""
        pass

    def slippage_cost(self, fill: FillEvent) -> Decimal:
        """Cost of slippage for the fill, in account currency."""
        return abs(self.adjust_price(fill) - fill.price) * fill.quantity


class BaseEngine(ABC):
    """
    Runs one backtest over config.start_date..config.end_date.

    Engines are built fresh for every run and must not share state with
    earlier instances. Nested validation must be skipped when the
    config's walk_forward / monte_carlo flags are off.
    """

    def __init__(
        self,
        logger: logging.Logger,
        data_loader: BaseDataLoader,
        slippage_model: BaseSlippageModel,
    ):
        self.logger = logger
        self.data_loader = data_loader
        self.slippage_model = slippage_model

    @abstractmethod
    def run(self, context: RunContext, config: BacktestConfig) -> BacktestResult:
        """Run the backtest; raise on failure."""
        pass


EngineFactory = Callable[[logging.Logger, BaseDataLoader, BaseSlippageModel], BaseEngine]

MetricsFunction = Callable[[Sequence[Trade], Sequence[EquityPoint], Decimal], PerformanceMetrics]
