"""
Unit tests for the event model.
"""

import pytest
from decimal import Decimal

from src.events.schemas import (
    DEFAULT_PRIORITIES,
    CancelEvent,
    ChainBlockEvent,
    Event,
    EventType,
    FillEvent,
    KillSwitchEvent,
    MarketDataEvent,
    MEVType,
    MempoolTransactionEvent,
    OrderEvent,
    PortfolioEvent,
    RiskEvent,
    Side,
    SignalEvent,
)


class TestEventKinds:
    """Every concrete event carries exactly one fixed kind."""

    def test_kind_matches_payload(self, base_time):
        events = {
            EventType.MARKET_DATA: MarketDataEvent(base_time, "X", 1, 1, 1, 1),
            EventType.SIGNAL: SignalEvent(base_time, "X", Side.BUY),
            EventType.ORDER: OrderEvent(base_time, "o1", "X", Side.BUY, 1),
            EventType.FILL: FillEvent(base_time, "o1", "X", Side.BUY, 1, 1),
            EventType.CANCEL: CancelEvent(base_time, "o1"),
            EventType.PORTFOLIO: PortfolioEvent(base_time, equity=100, cash=100),
            EventType.RISK: RiskEvent(base_time, rule="exposure"),
            EventType.CHAIN_BLOCK: ChainBlockEvent(base_time, "ethereum", 19_000_000, "0xabc"),
            EventType.MEMPOOL_TX: MempoolTransactionEvent(
                base_time, "0x1", "0xa", "0xb", value=0, gas_limit=21000, gas_price=30,
            ),
            EventType.KILL_SWITCH: KillSwitchEvent(base_time, reason="stop"),
        }

        for kind, event in events.items():
            assert event.event_type == kind

        assert set(events) == set(EventType)

    def test_kind_is_read_only(self, sample_bar):
        with pytest.raises(AttributeError):
            sample_bar.event_type = EventType.FILL

    def test_kind_tag_cannot_be_reassigned(self, sample_bar):
        with pytest.raises(AttributeError):
            sample_bar._event_type = EventType.FILL

        assert sample_bar.event_type == EventType.MARKET_DATA
        assert MarketDataEvent._event_type == EventType.MARKET_DATA

    def test_base_event_not_instantiable(self, base_time):
        with pytest.raises(TypeError):
            Event(base_time)

    def test_default_priority_from_kind(self, base_time):
        kill = KillSwitchEvent(base_time, reason="stop")
        fill = FillEvent(base_time, "o1", "X", Side.SELL, 1, 1)

        assert kill.priority == DEFAULT_PRIORITIES[EventType.KILL_SWITCH] == 0
        assert fill.priority == DEFAULT_PRIORITIES[EventType.FILL]
        assert kill.sort_key < fill.sort_key

    def test_explicit_priority_overrides_default(self, base_time):
        fill = FillEvent(base_time, "o1", "X", Side.SELL, 1, 1, priority=0)
        assert fill.priority == 0

    def test_every_kind_has_default_priority(self):
        assert set(DEFAULT_PRIORITIES) == set(EventType)


class TestPayloads:
    """Numeric payload fields are Decimal."""

    def test_float_coerced_without_binary_noise(self, base_time):
        fill = FillEvent(base_time, "o1", "X", Side.BUY, quantity=0.1, price=0.3)

        assert fill.quantity == Decimal("0.1")
        assert fill.price == Decimal("0.3")
        assert isinstance(fill.commission, Decimal)

    def test_fill_notional(self, sample_fill):
        assert sample_fill.notional == Decimal("0.5") * Decimal("42251")

    def test_mid_price_uses_quote(self, sample_bar):
        assert sample_bar.mid_price == Decimal("42250")

    def test_mid_price_falls_back_to_close(self, base_time):
        bar = MarketDataEvent(base_time, "X", 10, 12, 9, 11)
        assert bar.bid is None
        assert bar.mid_price == Decimal("11")

    def test_mempool_mev_flag(self, base_time):
        plain = MempoolTransactionEvent(base_time, "0x1", "0xa", "0xb", 0, 21000, 30)
        sandwich = MempoolTransactionEvent(
            base_time, "0x2", "0xa", "0xb", 0, 21000, 30, mev_type=MEVType.SANDWICH,
        )

        assert not plain.is_mev
        assert sandwich.is_mev

    def test_portfolio_positions_coerced(self, base_time):
        snapshot = PortfolioEvent(base_time, equity=1000.5, cash=500, positions={"X": 2.5})
        assert snapshot.positions["X"] == Decimal("2.5")
        assert snapshot.equity == Decimal("1000.5")

    def test_kill_switch_halts_by_default(self, base_time):
        assert KillSwitchEvent(base_time, reason="stop").halt_trading is True
