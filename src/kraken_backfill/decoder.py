"""Decoding of raw Kraken trade history entries.

A trade entry is a positional array::

    [price, volume, time, side, order_type, misc, trade_id]

Prices and volumes are decimal strings, ``time`` is fixed-point seconds and
``trade_id`` is an integer. Everything is decoded without going through
``float`` so no precision is lost.
"""

import re
from decimal import Decimal
from typing import Any, Sequence

from .exceptions import DecodeError
from .models import NANOS_PER_SECOND, Liquidity, Side, Trade

PRICE_INDEX = 0
VOLUME_INDEX = 1
TIME_INDEX = 2
SIDE_INDEX = 3
LIQUIDITY_INDEX = 4
TRADE_ID_INDEX = 6

NANO_DIGITS = 9

# plain ASCII digits as the wire format writes them; no sign, exponent or underscores
FIXED_POINT = re.compile(r"[0-9]+(?:\.[0-9]+)?")
DIGITS = re.compile(r"[0-9]+")


def decode_trade(raw: Any) -> Trade:
    """Convert one raw trade entry to a Trade, raising DecodeError on bad input."""
    if not isinstance(raw, (list, tuple)):
        raise DecodeError(f"trade entry must be an array, got {type(raw).__name__}")
    if len(raw) <= TRADE_ID_INDEX:
        raise DecodeError(f"trade entry has {len(raw)} fields, expected at least {TRADE_ID_INDEX + 1}")

    return Trade(
        id=_decode_trade_id(raw[TRADE_ID_INDEX]),
        price=_decode_decimal(raw, PRICE_INDEX, "price"),
        volume=_decode_decimal(raw, VOLUME_INDEX, "volume"),
        side=Side.BUY if _decode_marker(raw, SIDE_INDEX, "side") == "b" else Side.SELL,
        liquidity=Liquidity.MARKET if _decode_marker(raw, LIQUIDITY_INDEX, "order type") == "m" else Liquidity.LIMIT,
        timestamp_ns=decode_timestamp(raw[TIME_INDEX]),
    )


def decode_timestamp(value: Any) -> int:
    """Decode fixed-point seconds to integer nanoseconds by splitting the text.

    ``"1688669448.2745"`` becomes ``1688669448_274500000``; digits past the
    ninth decimal place are truncated.
    """
    text = _numeric_text(value, "time")

    if not FIXED_POINT.fullmatch(text):
        raise DecodeError(f"invalid trade time: {text!r}")

    whole, _, fraction = text.partition(".")
    nanos = int(fraction[:NANO_DIGITS].ljust(NANO_DIGITS, "0")) if fraction else 0
    return int(whole) * NANOS_PER_SECOND + nanos


def decode_cursor(value: Any) -> int:
    """Decode the ``last`` marker, a nanosecond timestamp, to a cursor."""
    text = _numeric_text(value, "last")
    if not DIGITS.fullmatch(text):
        raise DecodeError(f"invalid cursor: {text!r}")
    return int(text)


def _numeric_text(value: Any, name: str) -> str:
    if isinstance(value, bool):
        raise DecodeError(f"{name} must be numeric, got bool")
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise DecodeError(f"{name} must be finite, got {value}")
        # fixed-point form, never scientific notation
        return format(value, "f")
    if isinstance(value, float):
        # repr is the shortest text that reproduces the parsed JSON literal
        return _numeric_text(Decimal(repr(value)), name)
    raise DecodeError(f"{name} has unexpected type {type(value).__name__}")


def _decode_decimal(raw: Sequence[Any], index: int, name: str) -> Decimal:
    value = raw[index]
    if not isinstance(value, str):
        raise DecodeError(f"{name} must be a string, got {type(value).__name__}")
    if not FIXED_POINT.fullmatch(value):
        raise DecodeError(f"invalid {name}: {value!r}")
    return Decimal(value)


def _decode_marker(raw: Sequence[Any], index: int, name: str) -> str:
    value = raw[index]
    if not isinstance(value, str):
        raise DecodeError(f"{name} marker must be a string, got {type(value).__name__}")
    return value


def _decode_trade_id(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise DecodeError(f"trade id must be an integer, got {type(value).__name__}")
    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise DecodeError(f"trade id must be an integer, got {value}")
        value = int(value)
    if value < 0:
        raise DecodeError(f"trade id must not be negative, got {value}")
    return value
