"""Cancellation context passed through backtest runs."""

import threading
import time
from typing import Optional

from .errors import BacktestCancelled


class RunContext:
    """
    Cooperative cancellation signal.

    Long-running operations poll it at safe points (walk-forward checks it
    once per window boundary). Safe to cancel from another thread.

    Usage:
        context = RunContext(timeout=600)
        result = analyzer.run(context, config)

        # elsewhere
        context.cancel("user requested stop")
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds after which the context counts as cancelled
        """
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: Optional[str] = None):
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self, windows_completed: int = 0):
        """Raise BacktestCancelled if the context has been cancelled."""
        if self.cancelled:
            raise BacktestCancelled(windows_completed, self._reason)
