"""
Socket Tests.

============================================================
PURPOSE
============================================================
Tests for DeltaExchangeSocket message shapes and dispatch.

============================================================
"""

import asyncio
import json

import aiohttp
import pytest

from delta_exchange import (
    AuthenticationRequired,
    ConnectionState,
    DeltaExchangeSocket,
    SocketConfig,
    sign_message,
)


class FakeWebSocket:
    """Queue-backed stand-in for ClientWebSocketResponse."""

    def __init__(self):
        self.closed = False
        self.sent = []
        self._incoming = asyncio.Queue()

    async def send_str(self, data):
        self.sent.append(data)

    async def close(self):
        self.closed = True
        await self._incoming.put(None)

    def feed(self, payload):
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self._incoming.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, data, None))

    def exception(self):
        return None

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._incoming.get()
        if msg is None:
            raise StopAsyncIteration
        return msg

    def sent_json(self):
        return [json.loads(data) for data in self.sent]


class FakeSession:
    """Fails the first `failures` connects, then hands out the socket."""

    def __init__(self, ws=None, error=None, failures=None):
        self.closed = False
        self.ws = ws or FakeWebSocket()
        self._error = error
        self._failures = failures
        self.attempts = 0

    async def ws_connect(self, url, heartbeat=None):
        self.attempts += 1
        if self._error is not None and (self._failures is None or self.attempts <= self._failures):
            raise self._error
        return self.ws


def make_socket(session=None, api_key="test_key", api_secret="test_secret"):
    return DeltaExchangeSocket(
        api_key,
        api_secret,
        config=SocketConfig(reconnect=False),
        session=session or FakeSession(),
    )


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


# ============================================================
# CONNECTION TESTS
# ============================================================

class TestConnection:
    """Tests for connect / close."""

    @pytest.mark.asyncio
    async def test_connect_and_close(self):
        session = FakeSession()
        socket = make_socket(session)

        await socket.connect()
        assert socket.is_connected
        assert socket.url == "wss://socket.delta.exchange"

        await socket.close()
        assert socket.state == ConnectionState.DISCONNECTED
        assert session.ws.closed

    @pytest.mark.asyncio
    async def test_connect_twice_is_noop(self):
        socket = make_socket()

        await socket.connect()
        await socket.connect()

        assert socket.state == ConnectionState.CONNECTED
        await socket.close()

    @pytest.mark.asyncio
    async def test_connect_failure_without_reconnect(self):
        socket = make_socket(FakeSession(error=aiohttp.ClientConnectionError("refused")))

        with pytest.raises(ConnectionError):
            await socket.connect()

        assert socket.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_send_requires_connection(self):
        socket = make_socket()

        with pytest.raises(ConnectionError):
            await socket.send_message({"type": "ping"})

    @pytest.mark.asyncio
    async def test_connect_raises_when_reconnects_exhausted(self):
        """Test that connect fails loudly once every attempt failed."""
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        socket = DeltaExchangeSocket(
            config=SocketConfig(
                url="ws://127.0.0.1:9",
                reconnect=True,
                max_reconnect_attempts=1,
                reconnect_interval_ms=1,
            ),
            session=session,
        )

        with pytest.raises(ConnectionError):
            await socket.connect()

        assert session.attempts == 2
        assert socket.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_succeeds_after_retry(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"), failures=2)
        socket = DeltaExchangeSocket(
            config=SocketConfig(reconnect=True, max_reconnect_attempts=3, reconnect_interval_ms=1),
            session=session,
        )

        await socket.connect()

        assert socket.is_connected
        assert session.attempts == 3
        await socket.close()


# ============================================================
# SUBSCRIPTION TESTS
# ============================================================

class TestSubscriptions:
    """Tests for subscription message shapes."""

    @pytest.mark.asyncio
    async def test_subscribe_message(self):
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()

        await socket.subscribe("ticker", "BTCUSD", "ETHUSD")

        assert session.ws.sent_json() == [{
            "type": "subscribe",
            "payload": {"channels": [{"name": "ticker", "symbols": ["BTCUSD", "ETHUSD"]}]},
        }]
        await socket.close()

    @pytest.mark.asyncio
    async def test_channel_without_symbols(self):
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()

        await socket.subscribe_to_announcements()

        assert session.ws.sent_json()[0]["payload"]["channels"] == [
            {"name": "announcements", "symbols": []},
        ]
        await socket.close()

    @pytest.mark.asyncio
    async def test_helper_channels(self):
        """Test channel names and symbol rewriting of helpers."""
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()

        await socket.subscribe_to_tickers_v2("BTCUSD")
        await socket.subscribe_to_mark_prices("BTCUSD")
        await socket.subscribe_to_spot_prices("BTCUSDT", "ETHUSDT")
        await socket.subscribe_to_candlesticks("5m", "BTCUSD")
        await socket.subscribe_to_fills("BTCUSD")

        channels = [msg["payload"]["channels"][0] for msg in session.ws.sent_json()]
        assert channels == [
            {"name": "v2/ticker", "symbols": ["BTCUSD"]},
            {"name": "mark_price", "symbols": ["MARK:BTCUSD"]},
            {"name": "spot_price", "symbols": [".DEXBTUSDT", ".DEETHUSDT"]},
            {"name": "candlestick_5m", "symbols": ["BTCUSD"]},
            {"name": "user_trades", "symbols": ["BTCUSD"]},
        ]
        await socket.close()

    @pytest.mark.asyncio
    async def test_composite_helpers(self):
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()

        await socket.subscribe_to_price_movements("BTCUSD")
        await socket.subscribe_to_trading_activity("BTCUSD")

        names = [msg["payload"]["channels"][0]["name"] for msg in session.ws.sent_json()]
        assert names == [
            "spot_price", "mark_price", "l2_orderbook", "ticker",
            "user_trades", "orders", "positions", "margins",
        ]
        await socket.close()

    @pytest.mark.asyncio
    async def test_subscriptions_sent_on_connect(self):
        """Test that subscriptions made offline are sent on connect."""
        session = FakeSession()
        socket = make_socket(session)

        await socket.subscribe_to_order_books("BTCUSD")
        await socket.subscribe_to_order_books("ETHUSD")
        assert session.ws.sent == []

        await socket.connect()

        assert session.ws.sent_json() == [{
            "type": "subscribe",
            "payload": {"channels": [{"name": "l2_orderbook", "symbols": ["BTCUSD", "ETHUSD"]}]},
        }]
        await socket.close()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()
        await socket.subscribe("ticker", "BTCUSD", "ETHUSD")

        await socket.unsubscribe("ticker", "BTCUSD")

        assert session.ws.sent_json()[-1] == {
            "type": "unsubscribe",
            "payload": {"channels": [{"name": "ticker", "symbols": ["BTCUSD"]}]},
        }
        assert socket.subscriptions == {"ticker": ["ETHUSD"]}
        await socket.close()


# ============================================================
# AUTH TESTS
# ============================================================

class TestAuthentication:
    """Tests for the auth handshake."""

    @pytest.mark.asyncio
    async def test_auth_message(self):
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()

        await socket.authenticate()

        message = session.ws.sent_json()[0]
        payload = message["payload"]
        assert message["type"] == "auth"
        assert payload["api-key"] == "test_key"
        assert payload["signature"] == sign_message(
            "test_secret", "GET" + str(payload["timestamp"]) + "/live",
        )
        await socket.close()

    @pytest.mark.asyncio
    async def test_auth_requires_credentials(self):
        socket = make_socket(api_key="", api_secret="")
        await socket.connect()

        with pytest.raises(AuthenticationRequired):
            await socket.authenticate()
        await socket.close()

    @pytest.mark.asyncio
    async def test_failed_offline_auth_not_replayed(self):
        """Test that an auth attempt while disconnected is not sent on connect."""
        session = FakeSession()
        socket = make_socket(session)

        with pytest.raises(ConnectionError):
            await socket.authenticate()
        await socket.connect()

        assert session.ws.sent == []
        await socket.close()

    @pytest.mark.asyncio
    async def test_auth_replayed_on_reconnect(self):
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()
        await socket.authenticate()
        await socket.close()

        session.ws = FakeWebSocket()
        await socket.connect()

        assert [m["type"] for m in session.ws.sent_json()] == ["auth"]
        await socket.close()


# ============================================================
# MESSAGE TESTS
# ============================================================

class TestMessages:
    """Tests for message dispatch and sending."""

    @pytest.mark.asyncio
    async def test_handlers_receive_parsed_messages(self):
        session = FakeSession()
        socket = make_socket(session)
        received = []
        routed = []

        async def on_ticker(message):
            routed.append(message)

        socket.on_message(received.append)
        socket.on_channel("v2/ticker", on_ticker)
        await socket.connect()

        session.ws.feed({"type": "v2/ticker", "symbol": "BTCUSD", "mark_price": "90000"})
        session.ws.feed({"type": "l2_orderbook", "symbol": "BTCUSD"})
        session.ws.feed("not json")
        await settle()

        assert [m["type"] for m in received] == ["v2/ticker", "l2_orderbook"]
        assert [m["type"] for m in routed] == ["v2/ticker"]
        await socket.close()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_dispatch(self):
        session = FakeSession()
        socket = make_socket(session)
        received = []

        def broken(message):
            raise ValueError("bad handler")

        socket.on_message(broken)
        socket.on_message(received.append)
        await socket.connect()

        session.ws.feed({"type": "ticker"})
        await settle()

        assert received == [{"type": "ticker"}]
        await socket.close()

    @pytest.mark.asyncio
    async def test_send_message(self):
        """Test that strings are sent verbatim and dicts as JSON."""
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()

        await socket.send_message('{"type":"enable_heartbeat"}')
        await socket.send_message({"type": "disable_heartbeat"})

        assert session.ws.sent[0] == '{"type":"enable_heartbeat"}'
        assert json.loads(session.ws.sent[1]) == {"type": "disable_heartbeat"}
        await socket.close()

    @pytest.mark.asyncio
    async def test_server_close_marks_disconnected(self):
        session = FakeSession()
        socket = make_socket(session)
        await socket.connect()

        await session.ws.close()
        await settle()

        assert socket.state == ConnectionState.DISCONNECTED
        await socket.close()
