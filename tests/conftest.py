"""Pytest configuration and shared fixtures."""

import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from kraken_backfill.config.settings import KrakenConfig
from kraken_backfill.models import Liquidity, Side, Trade, TradePage

# 2023-11-14 22:13:00 UTC, a whole minute
BASE_SECONDS = 1_699_999_980
NS = 1_000_000_000


def make_trade(trade_id: int, offset_seconds: float, price: str = "100.0", volume: str = "1.0",
               side: Side = Side.BUY) -> Trade:
    """Trade ``offset_seconds`` after BASE_SECONDS."""
    return Trade(
        id=trade_id,
        price=Decimal(price),
        volume=Decimal(volume),
        side=side,
        liquidity=Liquidity.LIMIT,
        timestamp_ns=BASE_SECONDS * NS + int(offset_seconds * NS),
    )


def make_page(trades: List[Trade], next_cursor: int, pair: str = "XBTUSD") -> TradePage:
    return TradePage(pair=pair, trades=list(trades), next_cursor=next_cursor)


def raw_trade(trade_id: int, time_text: str, price: str = "37500.10000", volume: str = "0.01500000",
              side: str = "b", order_type: str = "l") -> List[Any]:
    return [price, volume, time_text, side, order_type, "", trade_id]


class FakeResponse:
    """Stands in for the object yielded by ``aiohttp.ClientSession.get``."""

    def __init__(self, status: int = 200, body: Optional[Any] = None, text: Optional[str] = None,
                 raw: Optional[bytes] = None):
        self.status = status
        if raw is None:
            raw = (text if text is not None else json.dumps(body if body is not None else {})).encode('utf-8')
        self._raw = raw

    async def read(self) -> bytes:
        return self._raw

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def trades_body(pair: str, raw_trades: List[List[Any]], last: str) -> Dict[str, Any]:
    return {"error": [], "result": {pair: raw_trades, "last": last}}


@pytest.fixture
def kraken_config() -> KrakenConfig:
    return KrakenConfig(rest_base_url="https://api.kraken.test", page_size=1000, request_timeout_seconds=5)


@pytest.fixture
def frozen_clock():
    """Mutable wall clock in nanoseconds, far after the test trades by default."""
    class Clock:
        def __init__(self):
            self.now_ns = (BASE_SECONDS + 86_400) * NS

        def __call__(self) -> int:
            return self.now_ns

    return Clock()
