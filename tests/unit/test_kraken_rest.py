"""Tests for the Kraken REST client with the HTTP session faked out."""

import asyncio
from decimal import Decimal
from unittest.mock import Mock

import aiohttp
import pytest

from kraken_backfill.clients.kraken_rest import KrakenRESTClient
from kraken_backfill.exceptions import (
    BadRequestError,
    DecodeError,
    ForbiddenError,
    InternalServerError,
    NotFoundError,
    RateLimitedError,
    ServiceUnavailableError,
    TransportError,
    UnauthorizedError,
)

from conftest import FakeResponse, raw_trade, trades_body


@pytest.fixture
def client(kraken_config):
    client = KrakenRESTClient(kraken_config)
    client.session = Mock()
    return client


def respond(client, response):
    client.session.get = Mock(return_value=response)


class TestFetchTrades:
    """Test KrakenRESTClient.fetch_trades."""

    @pytest.mark.asyncio
    async def test_builds_request(self, client):
        respond(client, FakeResponse(body=trades_body("XBTUSD", [], "1688671969993919830")))

        await client.fetch_trades("xbtusd", 1688669448000000000)

        client.session.get.assert_called_once_with(
            "https://api.kraken.test/0/public/Trades",
            params={"pair": "XBTUSD", "since": "1688669448000000000", "count": "1000"}
        )

    @pytest.mark.asyncio
    async def test_page_size_is_configurable(self, kraken_config):
        kraken_config.page_size = 10
        client = KrakenRESTClient(kraken_config)
        client.session = Mock()
        respond(client, FakeResponse(body=trades_body("XBTUSD", [], "1")))

        await client.fetch_trades("XBTUSD", 0)

        assert client.session.get.call_args.kwargs["params"]["count"] == "10"

    @pytest.mark.asyncio
    async def test_decodes_trades_and_cursor(self, client):
        body = trades_body("XBTUSD", [
            raw_trade(5, "1688669448.2745", side="s", order_type="m"),
            raw_trade(4, "1688669447.1"),
        ], "1688669448274500000")
        respond(client, FakeResponse(body=body))

        page = await client.fetch_trades("XBTUSD", 0)

        assert page.pair == "XBTUSD"
        assert page.next_cursor == 1688669448274500000
        # order is left as received
        assert [t.id for t in page.trades] == [5, 4]
        assert page.trades[0].price == Decimal("37500.10000")

    @pytest.mark.asyncio
    async def test_numeric_time_keeps_precision(self, client):
        text = '{"error":[],"result":{"XBTUSD":[["1.0","2.0",1688669448.123456789,"b","l","",9]],"last":"1"}}'
        respond(client, FakeResponse(text=text))

        page = await client.fetch_trades("XBTUSD", 0)

        assert page.trades[0].timestamp_ns == 1688669448_123456789

    @pytest.mark.asyncio
    async def test_empty_page(self, client):
        respond(client, FakeResponse(body=trades_body("XBTUSD", [], "1688671969993919830")))

        page = await client.fetch_trades("XBTUSD", 5)

        assert page.trades == []
        assert page.next_cursor == 1688671969993919830

    @pytest.mark.asyncio
    async def test_canonical_pair_key(self, client):
        respond(client, FakeResponse(body=trades_body("XXBTZUSD", [raw_trade(1, "1.5")], "2")))

        page = await client.fetch_trades("XBTUSD", 0)

        assert [t.id for t in page.trades] == [1]

    @pytest.mark.asyncio
    async def test_ambiguous_result_keys(self, client):
        body = {"error": [], "result": {"A": [], "B": [], "last": "1"}}
        respond(client, FakeResponse(body=body))

        with pytest.raises(DecodeError):
            await client.fetch_trades("XBTUSD", 0)

    @pytest.mark.asyncio
    async def test_bad_entry_aborts_page(self, client):
        body = trades_body("XBTUSD", [raw_trade(1, "1.5"), ["bad"]], "2")
        respond(client, FakeResponse(body=body))

        with pytest.raises(DecodeError) as exc_info:
            await client.fetch_trades("XBTUSD", 77)

        assert exc_info.value.pair == "XBTUSD"
        assert exc_info.value.cursor == 77

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"error": []},
        {"error": [], "result": []},
        {"error": [], "result": {"XBTUSD": []}},
        {"error": [], "result": {"XBTUSD": {}, "last": "1"}},
        {"error": [], "result": {"XBTUSD": [], "last": "soon"}},
        [],
    ])
    async def test_malformed_body(self, client, body):
        respond(client, FakeResponse(body=body))

        with pytest.raises(DecodeError):
            await client.fetch_trades("XBTUSD", 0)

    @pytest.mark.asyncio
    async def test_invalid_json(self, client):
        respond(client, FakeResponse(text="<html>oops</html>"))

        with pytest.raises(DecodeError):
            await client.fetch_trades("XBTUSD", 0)

    @pytest.mark.asyncio
    async def test_invalid_utf8_body(self, client):
        respond(client, FakeResponse(raw=b'{"error":[],"result":{"XBTUSD":[],"last":"\xff\xfe"}}'))

        with pytest.raises(DecodeError) as exc_info:
            await client.fetch_trades("XBTUSD", 21)

        assert exc_info.value.pair == "XBTUSD"
        assert exc_info.value.cursor == 21

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error_class", [
        (400, BadRequestError),
        (401, UnauthorizedError),
        (403, ForbiddenError),
        (404, NotFoundError),
        (429, RateLimitedError),
        (500, InternalServerError),
        (502, InternalServerError),
        (503, ServiceUnavailableError),
        (418, InternalServerError),
    ])
    async def test_status_codes(self, client, status, error_class):
        # body would decode fine; the status must win
        respond(client, FakeResponse(status=status, body=trades_body("XBTUSD", [raw_trade(1, "1.0")], "2")))

        with pytest.raises(error_class) as exc_info:
            await client.fetch_trades("XBTUSD", 12)

        assert exc_info.value.status == status
        assert exc_info.value.cursor == 12

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,error_class", [
        ("EAPI:Rate limit exceeded", RateLimitedError),
        ("EService:Unavailable", ServiceUnavailableError),
        ("EQuery:Unknown asset pair", BadRequestError),
        ("EGeneral:Invalid arguments", BadRequestError),
        ("EGeneral:Internal error", InternalServerError),
    ])
    async def test_error_payload(self, client, message, error_class):
        respond(client, FakeResponse(body={"error": [message], "result": {}}))

        with pytest.raises(error_class, match=message):
            await client.fetch_trades("XBTUSD", 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        aiohttp.ClientConnectionError("connection refused"),
        asyncio.TimeoutError(),
    ])
    async def test_transport_errors(self, client, error):
        client.session.get = Mock(side_effect=error)

        with pytest.raises(TransportError) as exc_info:
            await client.fetch_trades("XBTUSD", 3)

        assert exc_info.value.cursor == 3
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_requires_context_manager(self, kraken_config):
        client = KrakenRESTClient(kraken_config)

        with pytest.raises(RuntimeError):
            await client.fetch_trades("XBTUSD", 0)

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes_session(self, kraken_config):
        async with KrakenRESTClient(kraken_config) as client:
            session = client.session
            assert isinstance(session, aiohttp.ClientSession)

        assert session.closed
        assert client.session is None
