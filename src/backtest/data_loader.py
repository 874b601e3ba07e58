"""
Historical event loaders.

- InMemoryDataLoader: events already in memory (tests, notebooks)
- ParquetDataLoader: market data and fills recorded to Parquet or CSV
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from src.events.schemas import Event, FillEvent, MarketDataEvent, Side

from .errors import EngineError
from .interfaces import BaseDataLoader

logger = logging.getLogger(__name__)


class InMemoryDataLoader(BaseDataLoader):
    """Serves a fixed list of events, filtered by time range."""

    def __init__(self, events: Iterable[Event]):
        self._events = list(events)

    def load_events(self, start: datetime, end: datetime) -> list[Event]:
        return [e for e in self._events if start <= e.timestamp < end]


class ParquetDataLoader(BaseDataLoader):
    """
    Loads recorded market data and fills.

    Expected files in data_dir (Parquet preferred, CSV accepted):
    - market_data.{parquet,csv}: timestamp, symbol, open, high, low, close,
      volume, optional bid / ask
    - fills.{parquet,csv}: timestamp, order_id, symbol, side, quantity,
      price, optional commission / slippage

    Files are read on every call; loaders are not shared between runs.
    """

    def __init__(self, data_dir: str | Path = "data/raw"):
        self.data_dir = Path(data_dir)

    def load_events(self, start: datetime, end: datetime) -> list[Event]:
        events: list[Event] = []

        market_df = self._load_range("market_data", start, end)
        for _, row in market_df.iterrows():
            events.append(MarketDataEvent(
                row["timestamp"].to_pydatetime(),
                symbol=row["symbol"],
                open=row["open"],
                high=row["high"],
                low=row["low"],
                close=row["close"],
                volume=_optional(row.get("volume")) or 0,
                bid=_optional(row.get("bid")),
                ask=_optional(row.get("ask")),
            ))

        fill_df = self._load_range("fills", start, end)
        for _, row in fill_df.iterrows():
            events.append(FillEvent(
                row["timestamp"].to_pydatetime(),
                order_id=str(row["order_id"]),
                symbol=row["symbol"],
                side=Side(str(row["side"]).lower()),
                quantity=row["quantity"],
                price=row["price"],
                commission=_optional(row.get("commission")) or 0,
                slippage=_optional(row.get("slippage")) or 0,
            ))

        logger.debug(f"Loaded {len(market_df)} bars and {len(fill_df)} fills "
                     f"for {start} to {end}")
        return events

    def _load_range(self, name: str, start: datetime, end: datetime) -> pd.DataFrame:
        """Load one dataset and keep rows with start <= timestamp < end."""
        path = self._find_file(name)
        if path is None:
            return pd.DataFrame()

        try:
            if path.suffix == ".parquet":
                df = pd.read_parquet(path)
            else:
                df = pd.read_csv(path)
        except (OSError, ValueError) as e:
            raise EngineError(f"Failed to read {path}: {e}") from e

        if df.empty:
            return df

        df["timestamp"] = pd.to_datetime(df["timestamp"])
        mask = (df["timestamp"] >= pd.Timestamp(start)) & (df["timestamp"] < pd.Timestamp(end))
        return df[mask].sort_values("timestamp", kind="stable")

    def _find_file(self, name: str) -> Optional[Path]:
        for suffix in (".parquet", ".csv"):
            path = self.data_dir / f"{name}{suffix}"
            if path.exists():
                return path
        return None


def _optional(value):
    if value is None or pd.isna(value):
        return None
    return value
