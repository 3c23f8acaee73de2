"""Data structures shared by the fetcher, aggregator and scheduler."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Sequence

NANOS_PER_SECOND = 1_000_000_000


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class Liquidity(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


@dataclass(frozen=True)
class Trade:
    """A single decoded trade.

    Timestamps are kept as integer nanoseconds since the epoch because
    ``datetime`` stops at microseconds.
    """
    id: int
    price: Decimal
    volume: Decimal
    side: Side
    liquidity: Liquidity
    timestamp_ns: int

    @property
    def seconds(self) -> int:
        return self.timestamp_ns // NANOS_PER_SECOND

    @property
    def nanos(self) -> int:
        return self.timestamp_ns % NANOS_PER_SECOND

    @property
    def is_buy(self) -> bool:
        return self.side is Side.BUY

    @property
    def is_market(self) -> bool:
        return self.liquidity is Liquidity.MARKET

    @property
    def datetime(self) -> datetime:
        return datetime_from_ns(self.timestamp_ns)


@dataclass
class TradePage:
    """One page of trade history plus the cursor for the following request."""
    pair: str
    trades: List[Trade]
    next_cursor: int

    def __len__(self) -> int:
        return len(self.trades)


@dataclass
class Candle:
    """OHLCV summary of one emitted cluster."""
    pair: str
    bucket_start_ns: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    num_trades: int
    buy_volume: Decimal = Decimal(0)
    sell_volume: Decimal = Decimal(0)
    first_trade_id: int = 0
    last_trade_id: int = 0

    @classmethod
    def from_trades(cls, pair: str, trades: Sequence[Trade], bucket_width: timedelta) -> "Candle":
        """Build a candle from a non-empty cluster ordered by trade id."""
        if not trades:
            raise ValueError("cannot build a candle from an empty cluster")

        prices = [t.price for t in trades]
        buy_volume = sum((t.volume for t in trades if t.is_buy), Decimal(0))
        sell_volume = sum((t.volume for t in trades if not t.is_buy), Decimal(0))

        return cls(
            pair=pair,
            bucket_start_ns=truncate_ns(trades[0].timestamp_ns, bucket_width),
            open=trades[0].price,
            high=max(prices),
            low=min(prices),
            close=trades[-1].price,
            volume=buy_volume + sell_volume,
            num_trades=len(trades),
            buy_volume=buy_volume,
            sell_volume=sell_volume,
            first_trade_id=trades[0].id,
            last_trade_id=trades[-1].id,
        )

    @property
    def time(self) -> datetime:
        return datetime_from_ns(self.bucket_start_ns)


def width_to_ns(width: timedelta) -> int:
    """Convert a bucket width to whole nanoseconds."""
    width_ns = (width.days * 86_400 + width.seconds) * NANOS_PER_SECOND + width.microseconds * 1_000
    if width_ns <= 0:
        raise ValueError(f"bucket width must be positive, got {width}")
    return width_ns


def truncate_ns(timestamp_ns: int, width: timedelta) -> int:
    """Round a nanosecond timestamp down to a multiple of ``width``."""
    width_ns = width_to_ns(width)
    return timestamp_ns - timestamp_ns % width_ns


def datetime_from_ns(timestamp_ns: int) -> datetime:
    """UTC datetime for a nanosecond timestamp (sub-microsecond digits dropped)."""
    seconds, nanos = divmod(timestamp_ns, NANOS_PER_SECOND)
    return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(microseconds=nanos // 1_000)


def cursor_from_datetime(moment: datetime) -> int:
    """Nanosecond cursor for a datetime; naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * NANOS_PER_SECOND + delta.microseconds * 1_000
