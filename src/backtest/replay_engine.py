"""
Replay Engine - reference single-period backtest.

Replays recorded events through a private EventDispatcher:
- Market data marks positions to market and extends the equity curve
- Fills (after slippage) update positions and cash; closing fills record trades
- Cancels void later fills for the same order id
- A halting kill switch ends the replay early

Open positions are closed at the last known price when the replay ends.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from src.events import (
    CancelEvent,
    EventDispatcher,
    EventType,
    FillEvent,
    MarketDataEvent,
    Side,
)

from .config import BacktestConfig
from .context import RunContext
from .errors import EngineError
from .interfaces import BaseDataLoader, BaseEngine, BaseSlippageModel
from .metrics import MetricsCalculator
from .monte_carlo import MonteCarloValidator
from .schemas import ZERO, BacktestResult, EquityPoint, Trade
from .walk_forward import WalkForwardAnalyzer


@dataclass
class PositionState:
    """Current position in one symbol during a replay."""
    quantity: Decimal = ZERO  # Signed: long > 0, short < 0
    avg_entry: Decimal = ZERO
    last_price: Optional[Decimal] = None
    open_commission: Decimal = ZERO  # Paid on entry, charged to the closing trade


class ReplayEngine(BaseEngine):
    """
    Event-replay backtest engine.

    One instance runs one backtest. Build a new instance for every run;
    the walk-forward analyzer does exactly that for each window leg.

    Usage:
        engine = ReplayEngine(logger, ParquetDataLoader("data/raw"), NoSlippage())
        result = engine.run(RunContext(), config)
        print(f"Return: {result.metrics.total_return:.2%}")
    """

    def __init__(
        self,
        logger: logging.Logger,
        data_loader: BaseDataLoader,
        slippage_model: BaseSlippageModel,
    ):
        super().__init__(logger, data_loader, slippage_model)
        self.dispatcher = EventDispatcher()
        self.metrics = MetricsCalculator()

        # State tracking
        self._positions: dict[str, PositionState] = {}
        self._cancelled_orders: set[str] = set()
        self._trades: list[Trade] = []
        self._equity_curve: list[EquityPoint] = []
        self._cash: Decimal = ZERO
        self._has_run = False

    def run(self, context: RunContext, config: BacktestConfig) -> BacktestResult:
        """
        Run the backtest over config.start_date..config.end_date.

        Raises:
            EngineError: data could not be loaded, or the engine was reused
        """
        if self._has_run:
            raise EngineError("ReplayEngine instances are single-use; build a new engine")
        self._has_run = True

        self.logger.info(f"Starting backtest: {config.start_date} to {config.end_date}")
        self._cash = config.initial_capital

        try:
            events = self.data_loader.load_events(config.start_date, config.end_date)
        except EngineError:
            raise
        except Exception as e:
            raise EngineError(f"Failed to load events: {e}") from e

        self.dispatcher.add_events(events)

        # Register event handlers
        self.dispatcher.on(EventType.MARKET_DATA, self._handle_market_data)
        self.dispatcher.on(EventType.FILL, self._handle_fill)
        self.dispatcher.on(EventType.CANCEL, self._handle_cancel)

        for _ in self.dispatcher.run():
            pass

        self.logger.info(f"Backtest complete: {self.dispatcher.events_processed} events processed")

        # Close any open positions
        self._close_all_positions(self.dispatcher.current_time or config.start_date)

        result = BacktestResult(
            config=config,
            metrics=self.metrics.calculate(self._trades, self._equity_curve, config.initial_capital),
            trades=list(self._trades),
            equity_curve=list(self._equity_curve),
            events_processed=self.dispatcher.events_processed,
        )

        if config.walk_forward.enabled:
            analyzer = WalkForwardAnalyzer(
                type(self),
                self.data_loader,
                self.slippage_model,
                metrics_calculator=self.metrics,
                logger=self.logger,
            )
            result.walk_forward = analyzer.run(context, config)

        if config.monte_carlo.enabled:
            validator = MonteCarloValidator(config.monte_carlo)
            result.monte_carlo = validator.run(self._trades, config.initial_capital)

        return result

    @property
    def equity(self) -> Decimal:
        """Cash plus open positions marked at their last price."""
        marked = sum(
            (p.quantity * p.last_price for p in self._positions.values()
             if p.quantity and p.last_price is not None),
            ZERO,
        )
        return self._cash + marked

    def _handle_market_data(self, event: MarketDataEvent):
        """Mark to market and record equity."""
        state = self._positions.setdefault(event.symbol, PositionState())
        state.last_price = event.close
        self._equity_curve.append(EquityPoint(event.timestamp, self.equity))

    def _handle_cancel(self, event: CancelEvent):
        self._cancelled_orders.add(event.order_id)

    def _handle_fill(self, event: FillEvent):
        """
        Apply a fill to positions and cash.

        Only fills that reduce or close a position record a Trade. Entry
        commission is carried on the position and charged to the trade
        that closes it.
        """
        if event.order_id in self._cancelled_orders:
            self.logger.debug(f"Ignoring fill for cancelled order {event.order_id}")
            return

        price = self.slippage_model.adjust_price(event)
        slippage_cost = self.slippage_model.slippage_cost(event)
        state = self._positions.setdefault(event.symbol, PositionState())

        old_pos = state.quantity
        signed_qty = event.quantity if event.side == Side.BUY else -event.quantity
        new_pos = old_pos + signed_qty

        # Cash moves by notional and commission
        self._cash -= signed_qty * price + event.commission

        closing = old_pos != 0 and (old_pos > 0) != (signed_qty > 0)
        if not closing:
            # Opening or adding to a position
            if old_pos == 0:
                state.avg_entry = price
            else:
                total_cost = state.avg_entry * abs(old_pos) + price * event.quantity
                state.avg_entry = total_cost / abs(new_pos)
            state.open_commission += event.commission
            state.quantity = new_pos
            state.last_price = price
            return

        close_qty = min(abs(old_pos), event.quantity)
        if old_pos > 0:
            pnl = (price - state.avg_entry) * close_qty
        else:
            pnl = (state.avg_entry - price) * close_qty

        # Entry commission for the closed quantity; all of it on a full close
        if close_qty == abs(old_pos):
            entry_commission = state.open_commission
        else:
            entry_commission = state.open_commission * close_qty / abs(old_pos)
        commission = entry_commission + event.commission

        self._trades.append(Trade(
            timestamp=event.timestamp,
            symbol=event.symbol,
            side=event.side,
            quantity=close_qty,
            entry_price=state.avg_entry,
            exit_price=price,
            pnl=pnl - commission,
            commission=commission,
            slippage=slippage_cost + event.slippage,
        ))

        state.open_commission -= entry_commission
        if new_pos == 0:
            state.avg_entry = ZERO
        elif (new_pos > 0) != (old_pos > 0):
            # Flipped through flat; the remainder opens at this price
            state.avg_entry = price
        state.quantity = new_pos
        state.last_price = price

    def _close_all_positions(self, timestamp: datetime):
        """Close all open positions at their last known price."""
        closed = False
        for symbol, state in self._positions.items():
            if state.quantity == 0 or state.last_price is None:
                continue

            price = state.last_price
            if state.quantity > 0:
                pnl = (price - state.avg_entry) * state.quantity
            else:
                pnl = (state.avg_entry - price) * abs(state.quantity)

            self._trades.append(Trade(
                timestamp=timestamp,
                symbol=symbol,
                side=Side.SELL if state.quantity > 0 else Side.BUY,
                quantity=abs(state.quantity),
                entry_price=state.avg_entry,
                exit_price=price,
                pnl=pnl - state.open_commission,
                commission=state.open_commission,
            ))

            self._cash += state.quantity * price
            state.quantity = ZERO
            state.avg_entry = ZERO
            state.open_commission = ZERO
            closed = True

        if closed:
            self._equity_curve.append(EquityPoint(timestamp, self.equity))
