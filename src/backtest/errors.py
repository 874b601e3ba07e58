"""
Backtest error taxonomy.

- ConfigurationError: the request cannot be run as given (fatal to the call)
- EngineError: a single backtest run failed (walk-forward drops the window)
- BacktestCancelled: cooperative shutdown observed at a window boundary
"""

from datetime import datetime, timedelta
from typing import Optional


class BacktestError(Exception):
    """Base class for backtest errors."""


class ConfigurationError(BacktestError):
    """Invalid or unusable backtest configuration."""


class NoWindowsError(ConfigurationError):
    """The date range is too short to hold a single walk-forward window."""

    def __init__(self, start: datetime, end: datetime, window_length: timedelta):
        self.start = start
        self.end = end
        self.window_length = window_length
        super().__init__(
            f"No walk-forward windows fit between {start} and {end} "
            f"with window length {window_length}"
        )


class EngineError(BacktestError):
    """A backtest engine run failed."""


class BacktestCancelled(BacktestError):
    """Run cancelled by the caller."""

    def __init__(self, windows_completed: int = 0, reason: Optional[str] = None):
        self.windows_completed = windows_completed
        self.reason = reason
        message = f"Backtest cancelled after {windows_completed} windows"
        if reason:
            message += f": {reason}"
        super().__init__(message)
