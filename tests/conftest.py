from __future__ import annotations

from typing import Any

import pytest

from candle_fetch.candle_fetch import Config


class FakeExchange:
    """Stands in for ccxt.bybit: records calls and replays canned OHLCV rows."""

    def __init__(self, records: Any = None, error: Exception | None = None) -> None:
        self.records = [] if records is None else records
        self.error = error
        self.load_markets_calls = 0
        self.fetch_calls: list[tuple[str, dict[str, Any]]] = []

    def load_markets(self) -> dict[str, Any]:
        self.load_markets_calls += 1
        return {}

    def fetch_ohlcv(self, symbol: str, **kwargs: Any) -> Any:
        self.fetch_calls.append((symbol, kwargs))
        if self.error is not None:
            raise self.error
        return self.records


class RecordingFactory:
    """Exchange factory that hands out one FakeExchange and remembers its arguments."""

    def __init__(self, exchange: FakeExchange) -> None:
        self.exchange = exchange
        self.calls: list[tuple[Config, str]] = []

    def __call__(self, config: Config, default_type: str) -> FakeExchange:
        self.calls.append((config, default_type))
        return self.exchange


@pytest.fixture()
def sample_records() -> list[list[float]]:
    """Three consecutive 1m candles starting 2024-05-01T00:00:00Z."""
    return [
        [1714521600000, 60321.5, 60400.0, 60210.1, 60388.2, 12.345],
        [1714521660000, 60388.2, 60390.0, 60300.0, 60301.0, 3.0],
        [1714521720000, 60301.0, 60350.5, 60290.0, 60333.3, 0.0001],
    ]


@pytest.fixture()
def config() -> Config:
    return Config(api_key="key", api_secret="secret")
