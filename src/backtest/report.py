"""
Walk-Forward Report Generation.

Creates JSON and CSV reports from walk-forward results for analysis.
"""

import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from .config import BacktestConfig
from .schemas import PerformanceMetrics
from .walk_forward import WalkForwardResult


class WalkForwardReport:
    """
    Generates walk-forward reports.

    Formats:
    - JSON: Machine-readable, full detail
    - CSV: One row per evaluated window

    Usage:
        report = WalkForwardReport(result, config)
        report.save_json("walk_forward.json")
        report.save_csv("windows.csv")
    """

    def __init__(self, result: WalkForwardResult, config: Optional[BacktestConfig] = None):
        """
        Initialize report generator.

        Args:
            result: Walk-forward result to report on
            config: Config the result was produced with (optional)
        """
        self.result = result
        self.config = config

    def to_dict(self) -> dict:
        """Convert result to dictionary."""
        data: dict[str, Any] = {
            "summary": {
                "windows_generated": self.result.windows_generated,
                "windows_evaluated": self.result.windows_evaluated,
                "windows_dropped": len(self.result.failures),
                "robustness": self.result.robustness,
                "consistency": self.result.consistency,
                "avg_out_of_sample_sharpe": self.result.avg_out_of_sample_sharpe,
            },
            "overall_metrics": _metrics_dict(self.result.overall_metrics),
            "windows": [
                {
                    "window": r.window.index,
                    "in_sample_start": r.in_sample_start,
                    "in_sample_end": r.in_sample_end,
                    "out_of_sample_start": r.out_of_sample_start,
                    "out_of_sample_end": r.out_of_sample_end,
                    "partial": r.window.is_partial,
                    "in_sample": _metrics_dict(r.in_sample),
                    "out_of_sample": _metrics_dict(r.out_of_sample),
                }
                for r in self.result.windows
            ],
            "failures": [
                {
                    "window": f.window.index,
                    "leg": f.leg,
                    "error": f.error,
                }
                for f in self.result.failures
            ],
        }

        if self.config is not None:
            wf = self.config.walk_forward
            data["config"] = {
                "start_date": self.config.start_date,
                "end_date": self.config.end_date,
                "initial_capital": self.config.initial_capital,
                "window_size": wf.effective_window_size(),
                "step_size": wf.effective_step_size(),
                "period_seconds": wf.period.total_seconds(),
                "in_sample_ratio": wf.in_sample_ratio,
                "include_partial_window": wf.include_partial_window,
            }

        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=_json_default)

    def save_json(self, path: str | Path):
        """Save report as JSON."""
        Path(path).write_text(self.to_json())

    def save_csv(self, path: str | Path):
        """Save per-window table as CSV."""
        self.result.to_dataframe().to_csv(path, index=False)


def _metrics_dict(metrics: PerformanceMetrics) -> dict:
    return {
        "total_pnl": metrics.total_pnl,
        "total_return": metrics.total_return,
        "annualized_return": metrics.annualized_return,
        "sharpe_ratio": metrics.sharpe_ratio,
        "sortino_ratio": metrics.sortino_ratio,
        "max_drawdown": metrics.max_drawdown,
        "max_drawdown_duration": metrics.max_drawdown_duration,
        "total_trades": metrics.total_trades,
        "win_rate": metrics.win_rate,
        "profit_factor": metrics.profit_factor,
        "final_equity": metrics.final_equity,
    }


def _json_default(value: Any):
    if isinstance(value, Decimal):
        # Decimals are emitted as strings to keep full precision
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
