"""Kraken REST API client for historical trade backfill."""

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp

from ..config.settings import KrakenConfig
from ..decoder import decode_cursor, decode_trade
from ..exceptions import (
    DecodeError,
    KrakenError,
    TransportError,
    error_for_payload,
    error_for_status,
)
from ..models import Trade, TradePage

logger = logging.getLogger(__name__)


class KrakenRESTClient:
    """Kraken public REST API client.

    Use as an async context manager; the underlying session is opened on
    entry and closed on exit. One client may serve several pollers at once.
    """

    TRADES_ENDPOINT = '/0/public/Trades'

    def __init__(self, config: KrakenConfig):
        self.config = config
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
            headers={'Content-Type': 'application/json'}
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch_trades(self, pair: str, since: int) -> TradePage:
        """Fetch one page of trades for ``pair`` starting at cursor ``since``.

        Raises a KrakenError subclass on transport, status, payload or decode
        failure. A page is either decoded completely or not at all.
        """
        pair = pair.upper()
        params = {
            'pair': pair,
            'since': str(since),
            'count': str(self.config.page_size)
        }

        logger.debug(f"Fetching trades for {pair}: {params}")

        try:
            body = await self._make_request(self.TRADES_ENDPOINT, params)
            page = self._parse_trades(pair, body)
        except KrakenError as e:
            e.pair = pair
            e.cursor = since
            raise

        logger.info(f"Retrieved {len(page)} trades for {pair}, next cursor {page.next_cursor}")
        return page

    async def _make_request(self, endpoint: str, params: Dict[str, str]) -> Dict[str, Any]:
        """Issue a GET request and return the decoded JSON body."""
        if not self.session:
            raise RuntimeError("Client not initialized. Use async context manager.")

        url = f"{self.config.rest_base_url.rstrip('/')}{endpoint}"

        try:
            async with self.session.get(url, params=params) as response:
                error_class = error_for_status(response.status)
                if error_class is not None:
                    raise error_class(
                        f"{error_class.description} (HTTP {response.status})",
                        status=response.status
                    )
                raw = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"request to {url} failed: {e!r}") from e

        try:
            body = json.loads(raw.decode('utf-8'), parse_float=Decimal)
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too
            raise DecodeError(f"response body is not valid JSON: {e}") from e

        if not isinstance(body, dict):
            raise DecodeError(f"response body must be an object, got {type(body).__name__}")

        errors = body.get('error') or []
        if errors:
            message = "; ".join(str(err) for err in errors)
            logger.warning(f"Kraken returned errors: {message}")
            error_class = error_for_payload(str(errors[0]))
            raise error_class(message)

        return body

    def _parse_trades(self, pair: str, body: Dict[str, Any]) -> TradePage:
        """Decode the ``result`` object of a trades response."""
        result = body.get('result')
        if not isinstance(result, dict):
            raise DecodeError("response has no result object")

        if 'last' not in result:
            raise DecodeError("result has no last cursor")
        next_cursor = decode_cursor(result['last'])

        raw_trades = self._trade_array(pair, result)

        trades: List[Trade] = [decode_trade(raw) for raw in raw_trades]
        return TradePage(pair=pair, trades=trades, next_cursor=next_cursor)

    @staticmethod
    def _trade_array(pair: str, result: Dict[str, Any]) -> List[Any]:
        if pair in result:
            raw_trades = result[pair]
        else:
            # Kraken answers under its canonical name, e.g. XXBTZUSD for XBTUSD
            keys = [key for key in result if key != 'last']
            if len(keys) != 1:
                raise DecodeError(f"result has no trades for {pair} (keys: {sorted(keys)})")
            logger.debug(f"Using result key {keys[0]} for {pair}")
            raw_trades = result[keys[0]]

        if not isinstance(raw_trades, list):
            raise DecodeError(f"trades for {pair} must be an array, got {type(raw_trades).__name__}")
        return raw_trades
