"""
Walk-Forward Analysis.

Validates that in-sample profitability generalizes:
1. Slide a window through the date range by a fixed step
2. Backtest the first part of each window (in-sample)
3. Backtest the rest, immediately following it (out-of-sample)
4. Pool the out-of-sample legs into headline metrics
5. Score robustness as pooled OOS return / pooled IS return, clamped to [0, 2]

A low robustness score means the strategy did well only on the data it
was tuned against.

Every leg runs on a freshly built engine and windows are folded in
generation order, so results do not depend on scheduling.
"""

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence

import pandas as pd

from .config import BacktestConfig
from .context import RunContext
from .errors import BacktestCancelled, ConfigurationError, NoWindowsError
from .interfaces import BaseDataLoader, BaseSlippageModel, EngineFactory, MetricsFunction
from .metrics import MetricsCalculator
from .schemas import ZERO, BacktestResult, EquityPoint, PerformanceMetrics, Trade

logger = logging.getLogger(__name__)

MIN_ROBUSTNESS = Decimal("0")
MAX_ROBUSTNESS = Decimal("2")

IN_SAMPLE = "in_sample"
OUT_OF_SAMPLE = "out_of_sample"


@dataclass(frozen=True)
class WalkForwardWindow:
    """One in-sample span followed directly by its out-of-sample span."""
    index: int
    in_sample_start: datetime
    in_sample_end: datetime
    out_of_sample_start: datetime
    out_of_sample_end: datetime
    is_partial: bool = False  # Clipped at the end of the range

    @property
    def in_sample_span(self) -> timedelta:
        return self.in_sample_end - self.in_sample_start

    @property
    def out_of_sample_span(self) -> timedelta:
        return self.out_of_sample_end - self.out_of_sample_start

    @property
    def length(self) -> timedelta:
        return self.out_of_sample_end - self.in_sample_start


@dataclass(frozen=True)
class WindowResult:
    """Metrics of both legs of one successfully evaluated window."""
    window: WalkForwardWindow
    in_sample: PerformanceMetrics
    out_of_sample: PerformanceMetrics

    @property
    def in_sample_start(self) -> datetime:
        return self.window.in_sample_start

    @property
    def in_sample_end(self) -> datetime:
        return self.window.in_sample_end

    @property
    def out_of_sample_start(self) -> datetime:
        return self.window.out_of_sample_start

    @property
    def out_of_sample_end(self) -> datetime:
        return self.window.out_of_sample_end

    @property
    def in_sample_return(self) -> Decimal:
        return self.in_sample.total_return

    @property
    def out_of_sample_return(self) -> Decimal:
        return self.out_of_sample.total_return

    @property
    def degradation(self) -> Decimal:
        """Drop from in-sample to out-of-sample return."""
        return self.in_sample_return - self.out_of_sample_return


@dataclass(frozen=True)
class WindowFailure:
    """A window dropped because one of its legs failed."""
    window: WalkForwardWindow
    leg: str  # "in_sample" or "out_of_sample"
    error: str


@dataclass(frozen=True)
class WalkForwardResult:
    """Result of a walk-forward run."""
    windows: tuple[WindowResult, ...]
    overall_metrics: PerformanceMetrics
    robustness: Decimal
    windows_generated: int
    failures: tuple[WindowFailure, ...] = ()

    # Share of evaluated windows with a positive out-of-sample return
    consistency: Decimal = ZERO
    avg_out_of_sample_sharpe: Decimal = ZERO

    @property
    def windows_evaluated(self) -> int:
        return len(self.windows)

    @property
    def is_partial(self) -> bool:
        """True when some generated windows were dropped."""
        return self.windows_evaluated < self.windows_generated

    def summary(self) -> str:
        text = (f"{self.windows_evaluated}/{self.windows_generated} windows evaluated, "
                f"robustness {self.robustness:.2f}, consistency {self.consistency:.0%}")
        if self.is_partial:
            text += f" ({len(self.failures)} windows dropped)"
        return text

    def to_dataframe(self) -> pd.DataFrame:
        """Per-window table."""
        return pd.DataFrame([
            {
                "window": r.window.index,
                "in_sample_start": r.in_sample_start,
                "in_sample_end": r.in_sample_end,
                "out_of_sample_start": r.out_of_sample_start,
                "out_of_sample_end": r.out_of_sample_end,
                "in_sample_return": float(r.in_sample_return),
                "out_of_sample_return": float(r.out_of_sample_return),
                "in_sample_sharpe": float(r.in_sample.sharpe_ratio),
                "out_of_sample_sharpe": float(r.out_of_sample.sharpe_ratio),
                "out_of_sample_trades": r.out_of_sample.total_trades,
            }
            for r in self.windows
        ])

    @classmethod
    def empty(cls, initial_capital: Decimal = ZERO) -> "WalkForwardResult":
        """Result of a run with walk-forward disabled."""
        return cls(
            windows=(),
            overall_metrics=PerformanceMetrics.empty(initial_capital),
            robustness=ZERO,
            windows_generated=0,
        )


@dataclass
class _WindowOutcome:
    window: WalkForwardWindow
    result: Optional[WindowResult] = None
    out_of_sample: Optional[BacktestResult] = None
    failure: Optional[WindowFailure] = None


def generate_windows(
    start: datetime,
    end: datetime,
    window_length: timedelta,
    step: timedelta,
    in_sample_ratio: float = 0.8,
    include_partial: bool = False,
) -> list[WalkForwardWindow]:
    """
    Generate sliding walk-forward windows over [start, end].

    A window is emitted for every cursor position (start, start + step, ...)
    where the full window fits before `end`. The in-sample span is the first
    `in_sample_ratio` of the window, the out-of-sample span the rest.

    A trailing period too short for a full window is dropped unless
    `include_partial` is set, in which case one extra window starting at the
    next cursor position is clipped at `end` and split by the same ratio.
    """
    if window_length <= timedelta(0) or step <= timedelta(0):
        raise ConfigurationError(
            f"Window length and step must be positive, got {window_length} and {step}"
        )
    if not 0 < in_sample_ratio < 1:
        raise ConfigurationError(f"in_sample_ratio must be between 0 and 1, got {in_sample_ratio}")

    in_sample_span = window_length * in_sample_ratio
    windows: list[WalkForwardWindow] = []
    cursor = start

    while cursor + window_length <= end:
        split = cursor + in_sample_span
        windows.append(WalkForwardWindow(
            index=len(windows),
            in_sample_start=cursor,
            in_sample_end=split,
            out_of_sample_start=split,
            out_of_sample_end=cursor + window_length,
        ))
        cursor += step

    if include_partial:
        covered_until = windows[-1].out_of_sample_end if windows else start
        if cursor < end and covered_until < end:
            split = cursor + (end - cursor) * in_sample_ratio
            if cursor < split < end:
                windows.append(WalkForwardWindow(
                    index=len(windows),
                    in_sample_start=cursor,
                    in_sample_end=split,
                    out_of_sample_start=split,
                    out_of_sample_end=end,
                    is_partial=True,
                ))

    return windows


def calculate_robustness(window_results: Sequence[WindowResult]) -> Decimal:
    """
    Pooled out-of-sample return / pooled in-sample return, clamped to [0, 2].

    Zero when there are no windows or the in-sample returns sum to zero.
    """
    if not window_results:
        return ZERO

    in_sample_sum = sum((r.in_sample_return for r in window_results), ZERO)
    out_of_sample_sum = sum((r.out_of_sample_return for r in window_results), ZERO)

    if in_sample_sum == 0:
        return ZERO

    ratio = out_of_sample_sum / in_sample_sum
    return max(MIN_ROBUSTNESS, min(MAX_ROBUSTNESS, ratio))


class WalkForwardAnalyzer:
    """
    Walk-forward analyzer with rolling in-sample/out-of-sample windows.

    Each leg of each window runs on a new engine built by `engine_factory`
    from the same logger, data loader and slippage model. Leg configs have
    nested walk-forward and Monte-Carlo validation forced off.

    A window whose engine construction or either leg run raises is logged and
    dropped; the remaining windows still count. Cancellation is checked
    between windows only.

    Usage:
        analyzer = WalkForwardAnalyzer(ReplayEngine, loader, NoSlippage())
        result = analyzer.run(RunContext(), config)
        print(result.summary())
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        data_loader: BaseDataLoader,
        slippage_model: BaseSlippageModel,
        metrics_calculator: Optional[MetricsFunction] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize walk-forward analyzer.

        Args:
            engine_factory: Builds an engine from (logger, data_loader, slippage_model)
            data_loader: Passed through to every engine
            slippage_model: Passed through to every engine
            metrics_calculator: Reduces pooled OOS trades/equity to metrics
            logger: Logger for the analyzer and the engines it builds
        """
        self.engine_factory = engine_factory
        self.data_loader = data_loader
        self.slippage_model = slippage_model
        self.metrics_calculator = metrics_calculator or MetricsCalculator()
        self.logger = logger or logging.getLogger(__name__)

    def run(self, context: RunContext, config: BacktestConfig) -> WalkForwardResult:
        """
        Run walk-forward analysis over config.start_date..config.end_date.

        Returns:
            WalkForwardResult (empty when walk-forward is disabled)

        Raises:
            NoWindowsError: the range cannot hold a single window
            BacktestCancelled: the context was cancelled between windows
        """
        wf = config.walk_forward
        if not wf.enabled:
            return WalkForwardResult.empty(config.initial_capital)

        windows = generate_windows(
            config.start_date,
            config.end_date,
            wf.window_length,
            wf.step_length,
            in_sample_ratio=wf.in_sample_ratio,
            include_partial=wf.include_partial_window,
        )
        if not windows:
            raise NoWindowsError(config.start_date, config.end_date, wf.window_length)

        self.logger.info(f"Walk-forward: {len(windows)} windows, "
                         f"window={wf.effective_window_size()} x {wf.period}, "
                         f"step={wf.effective_step_size()} x {wf.period}")

        leg_config = config.without_validation()
        if wf.max_workers > 1:
            outcomes = self._run_parallel(context, leg_config, windows, wf.max_workers)
        else:
            outcomes = self._run_sequential(context, leg_config, windows)

        result = self._aggregate(config, windows, outcomes)
        self.logger.info(f"Walk-forward complete: {result.summary()}")
        return result

    def _run_sequential(
        self,
        context: RunContext,
        leg_config: BacktestConfig,
        windows: Sequence[WalkForwardWindow],
    ) -> list[_WindowOutcome]:
        outcomes: list[_WindowOutcome] = []
        for window in windows:
            self._check_cancelled(context, len(outcomes))
            outcomes.append(self._evaluate_window(context, leg_config, window))
        return outcomes

    def _run_parallel(
        self,
        context: RunContext,
        leg_config: BacktestConfig,
        windows: Sequence[WalkForwardWindow],
        max_workers: int,
    ) -> list[_WindowOutcome]:
        """
        Evaluate windows on a bounded thread pool.

        At most `max_workers` windows are in flight, and cancellation is
        checked before each submission. Outcomes come back in window order.
        """
        futures: list[Future] = []
        pending: set[Future] = set()
        completed = 0

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="walk-forward") as pool:
            for window in windows:
                while len(pending) >= max_workers:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    completed += len(done)
                self._check_cancelled(context, completed)

                future = pool.submit(self._evaluate_window, context, leg_config, window)
                futures.append(future)
                pending.add(future)

        return [f.result() for f in futures]

    def _check_cancelled(self, context: RunContext, windows_completed: int):
        if context.cancelled:
            self.logger.warning(f"Walk-forward cancelled after {windows_completed} windows")
            context.raise_if_cancelled(windows_completed)

    def _evaluate_window(
        self,
        context: RunContext,
        leg_config: BacktestConfig,
        window: WalkForwardWindow,
    ) -> _WindowOutcome:
        """Run both legs of a window, each on a fresh engine."""
        self.logger.info(
            f"Window {window.index + 1}: in-sample {window.in_sample_start} to {window.in_sample_end}, "
            f"out-of-sample {window.out_of_sample_start} to {window.out_of_sample_end}",
            extra={"window": window.index},
        )

        legs = (
            (IN_SAMPLE, window.in_sample_start, window.in_sample_end),
            (OUT_OF_SAMPLE, window.out_of_sample_start, window.out_of_sample_end),
        )
        results: dict[str, BacktestResult] = {}

        for leg, start, end in legs:
            try:
                engine = self.engine_factory(self.logger, self.data_loader, self.slippage_model)
                results[leg] = engine.run(context, leg_config.for_period(start, end))
            except BacktestCancelled:
                raise
            except Exception as e:
                self.logger.warning(
                    f"  Window {window.index + 1} {leg} run failed, skipping window: {e}",
                    extra={"window": window.index, "leg": leg},
                )
                return _WindowOutcome(
                    window=window,
                    failure=WindowFailure(window=window, leg=leg, error=str(e)),
                )

            self.logger.debug(
                f"  Window {window.index + 1} {leg}: "
                f"return={results[leg].metrics.total_return:.4f}, "
                f"trades={results[leg].metrics.total_trades}",
                extra={"window": window.index, "leg": leg},
            )

        window_result = WindowResult(
            window=window,
            in_sample=results[IN_SAMPLE].metrics,
            out_of_sample=results[OUT_OF_SAMPLE].metrics,
        )
        self.logger.info(
            f"  IS return={window_result.in_sample_return:.4f}, "
            f"OOS return={window_result.out_of_sample_return:.4f}",
            extra={"window": window.index},
        )
        return _WindowOutcome(
            window=window,
            result=window_result,
            out_of_sample=results[OUT_OF_SAMPLE],
        )

    def _aggregate(
        self,
        config: BacktestConfig,
        windows: Sequence[WalkForwardWindow],
        outcomes: Sequence[_WindowOutcome],
    ) -> WalkForwardResult:
        """Fold outcomes in window order into the final result."""
        evaluated = [o for o in outcomes if o.result is not None]
        window_results = [o.result for o in evaluated]
        failures = [o.failure for o in outcomes if o.failure is not None]

        oos_trades: list[Trade] = []
        oos_equity: list[EquityPoint] = []
        for outcome in evaluated:
            oos_trades.extend(outcome.out_of_sample.trades)
            oos_equity.extend(outcome.out_of_sample.equity_curve)

        overall = self.metrics_calculator(oos_trades, oos_equity, config.initial_capital)

        consistency = ZERO
        avg_sharpe = ZERO
        if window_results:
            profitable = sum(1 for r in window_results if r.out_of_sample_return > 0)
            consistency = Decimal(profitable) / Decimal(len(window_results))

            sharpes = [r.out_of_sample.sharpe_ratio for r in window_results
                       if r.out_of_sample.sharpe_ratio.is_finite()]
            if sharpes:
                avg_sharpe = sum(sharpes, ZERO) / len(sharpes)

        if failures:
            self.logger.warning(f"Walk-forward dropped {len(failures)} of {len(windows)} windows")

        return WalkForwardResult(
            windows=tuple(window_results),
            overall_metrics=overall,
            robustness=calculate_robustness(window_results),
            windows_generated=len(windows),
            failures=tuple(failures),
            consistency=consistency,
            avg_out_of_sample_sharpe=avg_sharpe,
        )
