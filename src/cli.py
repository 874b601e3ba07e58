"""
CLI entry point for backtest validation.

Usage:
    python -m src.cli backtest --config backtest.yaml --data-dir data/raw
    python -m src.cli walk-forward --config backtest.yaml --data-dir data/raw --output report.json
"""

import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load(config: Optional[str], data_dir: Optional[str]):
    """Build config, loader and slippage model from CLI options."""
    from src.backtest import BacktestConfig, ParquetDataLoader, create_slippage_model, load_config

    backtest_config = load_config(config) if config else BacktestConfig()
    loader = ParquetDataLoader(Path(data_dir) if data_dir else Path(backtest_config.data_dir))

    slippage_kwargs = {}
    if backtest_config.slippage_model == "fixed_bps":
        slippage_kwargs["bps"] = backtest_config.slippage_bps
    slippage = create_slippage_model(backtest_config.slippage_model, **slippage_kwargs)

    return backtest_config, loader, slippage


def _install_cancel_handler(context):
    def handle_shutdown(sig, frame):
        console.print("\n[yellow]Cancelling after the current window...[/yellow]")
        context.cancel("interrupted")

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)


@click.group()
@click.version_option(version="0.1.0", prog_name="backtest-validate")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose: bool):
    """Event-ordered backtesting with walk-forward validation."""
    _setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--data-dir", "-d", type=click.Path(exists=True), help="Data directory")
def backtest(config: Optional[str], data_dir: Optional[str]):
    """Run a single backtest over the configured range."""
    from src.backtest import BacktestError, ReplayEngine, RunContext

    backtest_config, loader, slippage = _load(config, data_dir)
    console.print("[bold green]Running Backtest[/bold green]")
    console.print(f"Period: {backtest_config.start_date} to {backtest_config.end_date}")

    context = RunContext()
    _install_cancel_handler(context)

    engine = ReplayEngine(logging.getLogger("src.backtest.replay_engine"), loader, slippage)
    try:
        result = engine.run(context, backtest_config)
    except BacktestError as e:
        console.print(f"[bold red]Backtest failed:[/bold red] {e}")
        sys.exit(1)

    m = result.metrics
    table = Table(title="Backtest Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Total Return", f"{m.total_return:.2%}")
    table.add_row("Total P&L", f"{m.total_pnl:.2f}")
    table.add_row("Sharpe Ratio", f"{m.sharpe_ratio:.2f}")
    table.add_row("Max Drawdown", f"{m.max_drawdown:.2%}")
    table.add_row("Win Rate", f"{m.win_rate:.2%}")
    table.add_row("Profit Factor", f"{m.profit_factor:.2f}")
    table.add_row("Total Trades", f"{m.total_trades}")
    table.add_row("Events Processed", f"{result.events_processed}")

    console.print(table)

    if result.walk_forward is not None:
        console.print(f"Walk-forward: {result.walk_forward.summary()}")
    if result.monte_carlo is not None and result.monte_carlo.num_simulations:
        mc = result.monte_carlo
        console.print(f"Monte-Carlo: 5th pct final equity {mc.final_equity[5]:.2f}, "
                      f"P(ruin) {mc.probability_of_ruin:.1%}")


@cli.command("walk-forward")
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--data-dir", "-d", type=click.Path(exists=True), help="Data directory")
@click.option("--output", "-o", type=click.Path(), help="Write JSON report here")
@click.option("--csv", "csv_path", type=click.Path(), help="Write per-window CSV here")
@click.option("--workers", "-w", type=int, default=None, help="Evaluate windows in parallel")
def walk_forward(
    config: Optional[str],
    data_dir: Optional[str],
    output: Optional[str],
    csv_path: Optional[str],
    workers: Optional[int],
):
    """Run walk-forward validation over the configured range."""
    from dataclasses import replace

    from src.backtest import (
        BacktestCancelled,
        BacktestError,
        ReplayEngine,
        RunContext,
        WalkForwardAnalyzer,
        WalkForwardReport,
    )

    backtest_config, loader, slippage = _load(config, data_dir)

    wf = replace(backtest_config.walk_forward, enabled=True)
    if workers:
        wf = replace(wf, max_workers=workers)
    backtest_config = replace(backtest_config, walk_forward=wf)

    console.print("[bold green]Running Walk-Forward Analysis[/bold green]")
    console.print(f"Period: {backtest_config.start_date} to {backtest_config.end_date}")
    console.print(f"Window: {wf.effective_window_size()} periods, step {wf.effective_step_size()} periods")

    context = RunContext()
    _install_cancel_handler(context)

    analyzer = WalkForwardAnalyzer(ReplayEngine, loader, slippage)
    try:
        result = analyzer.run(context, backtest_config)
    except BacktestCancelled as e:
        console.print(f"[yellow]{e}[/yellow]")
        sys.exit(130)
    except BacktestError as e:
        console.print(f"[bold red]Walk-forward failed:[/bold red] {e}")
        sys.exit(1)

    table = Table(title="Walk-Forward Windows")
    table.add_column("#", justify="right")
    table.add_column("In-Sample", style="cyan")
    table.add_column("Out-of-Sample", style="cyan")
    table.add_column("IS Return", justify="right")
    table.add_column("OOS Return", justify="right", style="green")
    table.add_column("OOS Trades", justify="right")

    for r in result.windows:
        table.add_row(
            str(r.window.index + 1),
            f"{r.in_sample_start:%Y-%m-%d} - {r.in_sample_end:%Y-%m-%d}",
            f"{r.out_of_sample_start:%Y-%m-%d} - {r.out_of_sample_end:%Y-%m-%d}",
            f"{r.in_sample_return:.2%}",
            f"{r.out_of_sample_return:.2%}",
            str(r.out_of_sample.total_trades),
        )

    console.print(table)

    for failure in result.failures:
        console.print(f"[red]Window {failure.window.index + 1} dropped ({failure.leg}): {failure.error}[/red]")

    overall = result.overall_metrics
    console.print(f"Windows evaluated: {result.windows_evaluated}/{result.windows_generated}")
    console.print(f"Out-of-sample return: {overall.total_return:.2%}, "
                  f"Sharpe {overall.sharpe_ratio:.2f}, max drawdown {overall.max_drawdown:.2%}")
    console.print(f"[bold]Robustness: {result.robustness:.2f}[/bold]")

    report = WalkForwardReport(result, backtest_config)
    if output:
        report.save_json(output)
        console.print(f"Report written to {output}")
    if csv_path:
        report.save_csv(csv_path)
        console.print(f"Window table written to {csv_path}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
