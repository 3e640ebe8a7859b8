"""
Delta Exchange Client - Real-time Socket.

============================================================
PURPOSE
============================================================
Subscription-based real-time feed over a persistent socket.

FEATURES:
- Persistent connection management
- Automatic reconnection with backoff
- Heartbeat and message timeout handling
- Channel subscriptions replayed after reconnect
- Auth handshake replayed after reconnect

============================================================
USAGE
============================================================
```python
socket = DeltaExchangeSocket(api_key, api_secret)
socket.on_message(print)
await socket.connect()
await socket.subscribe_to_tickers("BTCUSD", "ETHUSD")
```

============================================================
MESSAGE FORMAT
============================================================
    {"type": "subscribe",
     "payload": {"channels": [{"name": "ticker", "symbols": ["BTCUSD"]}]}}

    {"type": "auth",
     "payload": {"api-key": ..., "signature": ..., "timestamp": ...}}

============================================================
"""

import asyncio
import inspect
import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp

from .config import SocketConfig
from .constants import SOCKET_AUTH_PATH
from .signing import sign_request


logger = logging.getLogger(__name__)


MessageHandler = Callable[[Dict[str, Any]], Any]


# ============================================================
# CONNECTION STATE
# ============================================================

class ConnectionState(Enum):
    """Socket connection states."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    CLOSING = "CLOSING"


# ============================================================
# WEBSOCKET BASE
# ============================================================

class WebSocketBase:
    """
    Connection lifecycle for a JSON websocket.

    Provides:
    - Connect / reconnect with exponential backoff
    - Receive loop dispatching parsed messages
    - Message timeout detection
    """

    def __init__(
        self,
        url: str,
        config: SocketConfig = None,
        session: aiohttp.ClientSession = None,
    ):
        """
        Initialize websocket base.

        Args:
            url: Socket URL
            config: Connection configuration
            session: Externally managed aiohttp session
        """
        self._url = url
        self._config = config or SocketConfig(url=url)

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

        # Reconnection
        self._reconnect_count = 0

        # Tasks
        self._receive_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._last_message_time = 0.0

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._ws is not None

    @property
    def url(self) -> str:
        return self._url

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the socket and wait for the handshake.

        Returns immediately when already open. With reconnect on,
        failed attempts are retried with backoff first.

        Raises:
            ConnectionError: If no attempt succeeds
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return

        try:
            await self._open()
        except ConnectionError:
            if not self._config.reconnect:
                raise
            self._reconnect_count = 0
            await self._schedule_reconnect(raise_on_exhausted=True)

    async def _open(self) -> None:
        """Single connection attempt."""
        self._state = ConnectionState.CONNECTING

        try:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
                self._owns_session = True

            self._ws = await self._session.ws_connect(
                self._url,
                heartbeat=self._config.ping_interval_ms / 1000,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self._state = ConnectionState.DISCONNECTED
            logger.error(f"Socket connection failed: {e}")
            raise ConnectionError(f"Socket connection failed: {e}") from e

        self._state = ConnectionState.CONNECTED
        self._reconnect_count = 0
        self._last_message_time = time.time()

        logger.info(f"Socket connected: {self._url}")

        self._receive_task = asyncio.create_task(self._receive_loop())
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        await self._on_connect()

    async def disconnect(self) -> None:
        """Close the socket and stop background tasks."""
        self._state = ConnectionState.CLOSING

        for task in (self._receive_task, self._heartbeat_task):
            if task and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._receive_task = None
        self._heartbeat_task = None

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

        self._state = ConnectionState.DISCONNECTED
        logger.info("Socket disconnected")

    async def _schedule_reconnect(self, raise_on_exhausted: bool = False) -> None:
        """
        Reconnect with exponential backoff.

        Args:
            raise_on_exhausted: Raise ConnectionError once attempts run
                out (caller-initiated connects); background reconnects
                only log
        """
        if not self._config.reconnect:
            return

        last_error: Optional[ConnectionError] = None

        while self._reconnect_count < self._config.max_reconnect_attempts:
            self._state = ConnectionState.RECONNECTING
            self._reconnect_count += 1

            delay_ms = min(
                self._config.reconnect_interval_ms * (2 ** (self._reconnect_count - 1)),
                self._config.max_reconnect_interval_ms,
            )

            logger.info(f"Reconnecting in {delay_ms}ms (attempt {self._reconnect_count})")
            await asyncio.sleep(delay_ms / 1000)

            if self._state != ConnectionState.RECONNECTING:
                # Closed while waiting
                return

            try:
                await self._open()
                return
            except ConnectionError as e:
                last_error = e

        logger.error("Max reconnection attempts reached")
        self._state = ConnectionState.DISCONNECTED

        if raise_on_exhausted:
            raise ConnectionError(
                f"Socket connection failed after {self._reconnect_count} reconnect attempts"
            ) from last_error

    # --------------------------------------------------------
    # RECEIVING
    # --------------------------------------------------------

    async def _receive_loop(self) -> None:
        try:
            async for msg in self._ws:
                self._last_message_time = time.time()

                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_text(msg.data)

                elif msg.type == aiohttp.WSMsgType.CLOSE:
                    logger.warning(f"Socket closed by server: {msg.data}")
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"Socket error: {self._ws.exception()}")
                    break

        except asyncio.CancelledError:
            return

        finally:
            if self._state == ConnectionState.CONNECTED:
                self._state = ConnectionState.DISCONNECTED
                self._ws = None
                if self._config.reconnect:
                    await self._schedule_reconnect()

    async def _handle_text(self, data: str) -> None:
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Non-JSON message: {data[:100]}")
            return

        await self._on_message(parsed)

    async def _heartbeat_loop(self) -> None:
        """Drop the connection when nothing arrives for too long."""
        timeout_s = self._config.message_timeout_ms / 1000

        while self._state == ConnectionState.CONNECTED:
            try:
                await asyncio.sleep(self._config.ping_interval_ms / 1000)
            except asyncio.CancelledError:
                break

            if not self.is_connected:
                break

            if time.time() - self._last_message_time > timeout_s:
                logger.warning("Message timeout, dropping connection")
                # Closing ends the receive loop, which reconnects
                await self._ws.close()
                break

    # --------------------------------------------------------
    # SENDING
    # --------------------------------------------------------

    async def send_raw(self, data: str) -> None:
        if not self.is_connected:
            raise ConnectionError("Not connected")
        await self._ws.send_str(data)

    async def send(self, message: Dict[str, Any]) -> None:
        await self.send_raw(json.dumps(message))

    # --------------------------------------------------------
    # HOOKS
    # --------------------------------------------------------

    async def _on_connect(self) -> None:
        pass

    async def _on_message(self, data: Any) -> None:
        pass


# ============================================================
# DELTA SOCKET
# ============================================================

class DeltaExchangeSocket(WebSocketBase):
    """
    Delta Exchange real-time socket.

    Channels:
    - ticker, v2/ticker: Tickers
    - l2_orderbook: Order book
    - mark_price: Mark price (MARK:<symbol>)
    - spot_price: Spot index (.DE<symbol>)
    - candlestick_<resolution>: Candles
    - product_updates, announcements: Exchange feeds
    - positions, margins, orders, user_trades: Private (auth)
    """

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        url: str = None,
        config: SocketConfig = None,
        session: aiohttp.ClientSession = None,
    ):
        config = config or SocketConfig()
        super().__init__(url or config.url, config, session)

        self._api_key = api_key or ""
        self._api_secret = api_secret or ""
        self._auth_requested = False

        # channel -> symbols, in subscription order
        self._subscriptions: Dict[str, List[str]] = {}

        self._handlers: List[MessageHandler] = []
        self._channel_handlers: Dict[str, List[MessageHandler]] = {}

    @property
    def subscriptions(self) -> Dict[str, List[str]]:
        return {name: list(symbols) for name, symbols in self._subscriptions.items()}

    # --------------------------------------------------------
    # AUTH
    # --------------------------------------------------------

    async def authenticate(self) -> None:
        """
        Send the auth handshake.

        The signature covers "GET" + timestamp + "/live". Once sent,
        the handshake is repeated after every reconnect.

        Raises:
            AuthenticationRequired: If key or secret is missing
            ConnectionError: If the socket is not connected
        """
        signed = sign_request(
            self._api_key,
            self._api_secret,
            "GET",
            SOCKET_AUTH_PATH,
        )

        await self.send({
            "type": "auth",
            "payload": {
                "api-key": signed.api_key,
                "signature": signed.signature,
                "timestamp": signed.timestamp,
            },
        })
        self._auth_requested = True

    async def _on_connect(self) -> None:
        if self._auth_requested:
            await self.authenticate()

        for channel, symbols in self._subscriptions.items():
            await self.send(self._channel_message("subscribe", channel, symbols))

    # --------------------------------------------------------
    # SUBSCRIPTIONS
    # --------------------------------------------------------

    @staticmethod
    def _channel_message(kind: str, channel: str, symbols: List[str]) -> Dict[str, Any]:
        return {
            "type": kind,
            "payload": {
                "channels": [
                    {"name": channel, "symbols": list(symbols)},
                ],
            },
        }

    async def subscribe(self, channel: str, *symbols: str) -> None:
        """
        Subscribe to a channel.

        Subscriptions made while disconnected are sent on connect.
        """
        known = self._subscriptions.setdefault(channel, [])
        for symbol in symbols:
            if symbol not in known:
                known.append(symbol)

        if self.is_connected:
            await self.send(self._channel_message("subscribe", channel, list(symbols)))

    async def unsubscribe(self, channel: str, *symbols: str) -> None:
        """Unsubscribe from a channel, or from some of its symbols."""
        if symbols:
            remaining = [s for s in self._subscriptions.get(channel, []) if s not in symbols]
            if remaining:
                self._subscriptions[channel] = remaining
            else:
                self._subscriptions.pop(channel, None)
        else:
            self._subscriptions.pop(channel, None)

        if self.is_connected:
            await self.send(self._channel_message("unsubscribe", channel, list(symbols)))

    async def subscribe_to_tickers(self, *symbols: str) -> None:
        await self.subscribe("ticker", *symbols)

    async def subscribe_to_tickers_v2(self, *symbols: str) -> None:
        await self.subscribe("v2/ticker", *symbols)

    async def subscribe_to_order_books(self, *symbols: str) -> None:
        await self.subscribe("l2_orderbook", *symbols)

    async def subscribe_to_mark_prices(self, *symbols: str) -> None:
        await self.subscribe("mark_price", *(f"MARK:{s}" for s in symbols))

    async def subscribe_to_spot_prices(self, *symbols: str) -> None:
        await self.subscribe("spot_price", *(spot_index_symbol(s) for s in symbols))

    async def subscribe_to_price_movements(self, *symbols: str) -> None:
        """Spot, mark, order book and ticker channels for each symbol."""
        await self.subscribe_to_spot_prices(*symbols)
        await self.subscribe_to_mark_prices(*symbols)
        await self.subscribe_to_order_books(*symbols)
        await self.subscribe_to_tickers(*symbols)

    async def subscribe_to_candlesticks(self, resolution: str, *symbols: str) -> None:
        resolution = getattr(resolution, "value", resolution)
        await self.subscribe(f"candlestick_{resolution}", *symbols)

    async def subscribe_to_product_updates(self) -> None:
        await self.subscribe("product_updates")

    async def subscribe_to_announcements(self) -> None:
        await self.subscribe("announcements")

    async def subscribe_to_positions(self, *symbols: str) -> None:
        await self.subscribe("positions", *symbols)

    async def subscribe_to_margins(self) -> None:
        await self.subscribe("margins")

    async def subscribe_to_orders(self, *symbols: str) -> None:
        await self.subscribe("orders", *symbols)

    async def subscribe_to_fills(self, *symbols: str) -> None:
        await self.subscribe("user_trades", *symbols)

    async def subscribe_to_trading_activity(self, *symbols: str) -> None:
        """Fills, orders, positions and margins."""
        await self.subscribe_to_fills(*symbols)
        await self.subscribe_to_orders(*symbols)
        await self.subscribe_to_positions(*symbols)
        await self.subscribe_to_margins()

    # --------------------------------------------------------
    # MESSAGES
    # --------------------------------------------------------

    def on_message(self, handler: MessageHandler) -> None:
        """Register a handler for every parsed message (sync or async)."""
        self._handlers.append(handler)

    def on_channel(self, channel: str, handler: MessageHandler) -> None:
        """Register a handler for messages whose "type" is channel."""
        self._channel_handlers.setdefault(channel, []).append(handler)

    async def _on_message(self, data: Any) -> None:
        handlers = list(self._handlers)
        if isinstance(data, dict):
            handlers.extend(self._channel_handlers.get(data.get("type"), []))

        for handler in handlers:
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Message handler error: {e}", exc_info=True)

    async def send_message(self, message: Union[str, Dict[str, Any]]) -> None:
        """Send a string verbatim or anything else as JSON."""
        if isinstance(message, str):
            await self.send_raw(message)
        else:
            await self.send(message)

    async def close(self) -> None:
        await self.disconnect()


def spot_index_symbol(symbol: str) -> str:
    """Spot index name for a symbol (.DEXBTUSDT for BTCUSDT)."""
    if symbol.upper() == "BTCUSDT":
        return ".DEXBTUSDT"
    return f".DE{symbol}"
