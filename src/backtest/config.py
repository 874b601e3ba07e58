"""Backtest module configuration."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import yaml

from src.events.schemas import to_decimal

from .errors import ConfigurationError

DEFAULT_WINDOW_SIZE = 30
DEFAULT_STEP_SIZE = 7


@dataclass
class WalkForwardConfig:
    """
    Walk-forward validation settings.

    Window and step sizes are counted in periods (one day by default).
    Non-positive sizes fall back to the defaults (30 and 7).
    """

    enabled: bool = False
    window_size: int = DEFAULT_WINDOW_SIZE
    step_size: int = DEFAULT_STEP_SIZE
    period: timedelta = field(default_factory=lambda: timedelta(days=1))

    # Share of each window used in-sample; the rest is out-of-sample
    in_sample_ratio: float = 0.8

    # Evaluate a clipped final window instead of dropping it
    include_partial_window: bool = False

    # >1 evaluates windows on a thread pool
    max_workers: int = 1

    def __post_init__(self):
        if not 0 < self.in_sample_ratio < 1:
            raise ConfigurationError(
                f"in_sample_ratio must be between 0 and 1, got {self.in_sample_ratio}"
            )
        if self.period <= timedelta(0):
            raise ConfigurationError(f"period must be positive, got {self.period}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")

    def effective_window_size(self) -> int:
        return self.window_size if self.window_size > 0 else DEFAULT_WINDOW_SIZE

    def effective_step_size(self) -> int:
        return self.step_size if self.step_size > 0 else DEFAULT_STEP_SIZE

    @property
    def window_length(self) -> timedelta:
        return self.period * self.effective_window_size()

    @property
    def step_length(self) -> timedelta:
        return self.period * self.effective_step_size()


@dataclass
class MonteCarloConfig:
    """Monte-Carlo trade resampling settings."""

    enabled: bool = False
    num_simulations: int = 1000
    seed: Optional[int] = 42
    with_replacement: bool = True

    # Final equity below this share of initial capital counts as ruin
    ruin_fraction: float = 0.5

    def __post_init__(self):
        if self.num_simulations < 1:
            raise ConfigurationError(
                f"num_simulations must be at least 1, got {self.num_simulations}"
            )


@dataclass
class BacktestConfig:
    """
    Configuration for backtesting.

    Controls the time range, capital, data source, slippage and the
    nested validation runs (walk-forward, Monte-Carlo).
    """

    # Time range (end exclusive)
    start_date: datetime = field(default_factory=lambda: datetime(2024, 1, 1))
    end_date: datetime = field(default_factory=lambda: datetime(2024, 4, 1))

    # Capital
    initial_capital: Decimal = Decimal("10000")

    # Data settings
    data_dir: str = "data/raw"

    # Slippage model
    slippage_model: str = "none"  # "none", "fixed_bps"
    slippage_bps: Decimal = Decimal("0")

    # Validation
    walk_forward: WalkForwardConfig = field(default_factory=WalkForwardConfig)
    monte_carlo: MonteCarloConfig = field(default_factory=MonteCarloConfig)

    def __post_init__(self):
        self.initial_capital = to_decimal(self.initial_capital)
        self.slippage_bps = to_decimal(self.slippage_bps)

        if self.end_date < self.start_date:
            raise ConfigurationError(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )
        if self.initial_capital <= 0:
            raise ConfigurationError(
                f"initial_capital must be positive, got {self.initial_capital}"
            )

    def for_period(self, start: datetime, end: datetime) -> "BacktestConfig":
        """Copy of this config covering [start, end)."""
        return replace(self, start_date=start, end_date=end)

    def without_validation(self) -> "BacktestConfig":
        """Copy with nested walk-forward and Monte-Carlo runs switched off."""
        return replace(
            self,
            walk_forward=replace(self.walk_forward, enabled=False),
            monte_carlo=replace(self.monte_carlo, enabled=False),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestConfig":
        """
        Build config from a parsed YAML mapping.

        Nested `walk_forward` and `monte_carlo` sections map onto their
        dataclasses; `walk_forward.period_days` sets the period length.
        """
        data = dict(data or {})

        wf_data = dict(data.pop("walk_forward", None) or {})
        if "period_days" in wf_data:
            wf_data["period"] = timedelta(days=wf_data.pop("period_days"))
        mc_data = dict(data.pop("monte_carlo", None) or {})

        for key in ("start_date", "end_date"):
            if key in data:
                data[key] = _parse_datetime(data[key])

        try:
            return cls(
                walk_forward=WalkForwardConfig(**wf_data),
                monte_carlo=MonteCarloConfig(**mc_data),
                **data,
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid backtest config: {e}") from e


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if hasattr(value, "year"):  # datetime.date from YAML
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ConfigurationError(f"Invalid date: {value!r}") from e


def load_config(path: str | Path) -> BacktestConfig:
    """Load BacktestConfig from a YAML file (top-level or under `backtest:`)."""
    with open(path) as f:
        cfg = yaml.safe_load(f) or {}

    if "backtest" in cfg:
        cfg = cfg["backtest"]

    return BacktestConfig.from_dict(cfg)
