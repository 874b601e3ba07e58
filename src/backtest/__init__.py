"""
Backtest Module.

Walk-forward validation on top of an event-replay backtest.

Components:
- BacktestConfig: Time range, capital, validation settings
- BaseEngine / BaseDataLoader / BaseSlippageModel: Collaborator contracts
- ReplayEngine: Reference event-replay engine
- MetricsCalculator: Performance metrics (Sharpe, drawdown, etc.)
- WalkForwardAnalyzer: Rolling in-sample/out-of-sample validation
- MonteCarloValidator: Trade-order resampling
- WalkForwardReport: JSON/CSV report generation

Usage:
    from src.backtest import (
        BacktestConfig, WalkForwardConfig, WalkForwardAnalyzer,
        ReplayEngine, ParquetDataLoader, NoSlippage, RunContext,
    )

    config = BacktestConfig(
        start_date=datetime(2024, 1, 1),
        end_date=datetime(2024, 4, 1),
        walk_forward=WalkForwardConfig(enabled=True),
    )

    analyzer = WalkForwardAnalyzer(ReplayEngine, ParquetDataLoader("data/raw"), NoSlippage())
    result = analyzer.run(RunContext(), config)

    print(result.summary())
    print(f"OOS return: {result.overall_metrics.total_return:.2%}")
"""

from .config import BacktestConfig, MonteCarloConfig, WalkForwardConfig, load_config
from .context import RunContext
from .errors import (
    BacktestCancelled,
    BacktestError,
    ConfigurationError,
    EngineError,
    NoWindowsError,
)
from .schemas import BacktestResult, EquityPoint, PerformanceMetrics, Trade
from .interfaces import BaseDataLoader, BaseEngine, BaseSlippageModel, EngineFactory
from .metrics import MetricsCalculator, equity_to_dataframe
from .slippage import FixedBpsSlippage, NoSlippage, create_slippage_model
from .data_loader import InMemoryDataLoader, ParquetDataLoader
from .walk_forward import (
    WalkForwardAnalyzer,
    WalkForwardResult,
    WalkForwardWindow,
    WindowFailure,
    WindowResult,
    calculate_robustness,
    generate_windows,
)
from .monte_carlo import MonteCarloResult, MonteCarloValidator
from .replay_engine import ReplayEngine
from .report import WalkForwardReport

__all__ = [
    # Config
    "BacktestConfig",
    "WalkForwardConfig",
    "MonteCarloConfig",
    "load_config",
    "RunContext",
    # Errors
    "BacktestError",
    "ConfigurationError",
    "NoWindowsError",
    "EngineError",
    "BacktestCancelled",
    # Schemas
    "Trade",
    "EquityPoint",
    "PerformanceMetrics",
    "BacktestResult",
    # Contracts
    "BaseEngine",
    "BaseDataLoader",
    "BaseSlippageModel",
    "EngineFactory",
    # Metrics
    "MetricsCalculator",
    "equity_to_dataframe",
    # Collaborators
    "NoSlippage",
    "FixedBpsSlippage",
    "create_slippage_model",
    "InMemoryDataLoader",
    "ParquetDataLoader",
    "ReplayEngine",
    # Walk-forward
    "WalkForwardAnalyzer",
    "WalkForwardResult",
    "WalkForwardWindow",
    "WindowResult",
    "WindowFailure",
    "generate_windows",
    "calculate_robustness",
    # Monte-Carlo
    "MonteCarloValidator",
    "MonteCarloResult",
    # Report
    "WalkForwardReport",
]
