"""
Delta Exchange REST Client.

============================================================
PURPOSE
============================================================
Async client for the Delta Exchange REST API.

EXCHANGE SPECIFICS:
- HMAC-SHA256 signing (api-key, timestamp, signature headers)
- Timestamp in whole seconds
- Query strings signed exactly as sent
- Options listed via /v2/tickers by contract type

ERRORS:
- Missing credentials: AuthenticationRequired
- {"success": false} or HTTP >= 400: ExchangeException
- aiohttp / timeout errors: re-raised unmodified

============================================================
API DOCUMENTATION
============================================================
https://docs.delta.exchange

============================================================
"""

import asyncio
import json
import logging
import time
from typing import Optional, Dict, Any, List, Sequence

import aiohttp

from .cache import OptionCache
from .config import DeltaClientConfig
from .constants import (
    CALL_OPTIONS,
    CLIENT_VERSION,
    PUT_OPTIONS,
    USER_AGENT_PREFIX,
    Side,
    StopOrderType,
)
from .errors import ExchangeException, map_delta_error
from .logging_utils import AdapterLogger
from .metrics import AdapterMetrics, get_global_aggregator
from .options import (
    build_option_chain,
    build_option_chains,
    filter_options,
    normalize_tickers,
    parse_numeric,
)
from .signing import build_query, get_timestamp, sign_request
from .types import Option, OptionChain, OptionChains, Query
from .websocket import DeltaExchangeSocket


logger = logging.getLogger(__name__)


def serialize_payload(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Serialize a request body once, for both signing and sending.

    None values are dropped and separators are compact.
    """
    if not payload:
        return None
    body = {k: v for k, v in payload.items() if v is not None}
    return json.dumps(body, separators=(",", ":"), default=str)


def negate_amount(value: Any) -> Any:
    """
    Negate a trail amount, keeping its wire form.

    Strings come back as strings, numbers as numbers. Values that
    are missing, zero or not numeric are returned unchanged.
    """
    number = parse_numeric(value)
    if number is None or number == 0:
        return value
    if isinstance(value, str):
        return str(-number)
    return -value


# ============================================================
# DELTA CLIENT
# ============================================================

class DeltaExchangeClient:
    """
    Delta Exchange REST client.

    Public endpoints work without credentials. Authenticated
    endpoints raise AuthenticationRequired when key or secret
    is missing.
    """

    def __init__(
        self,
        api_key: str = None,
        api_secret: str = None,
        base_url: str = None,
        config: DeltaClientConfig = None,
        session: aiohttp.ClientSession = None,
        option_cache: OptionCache = None,
    ):
        """
        Initialize Delta client.

        Args:
            api_key: API key (overrides config)
            api_secret: API secret (overrides config)
            base_url: REST base URL (overrides config)
            config: Client configuration
            session: Externally managed aiohttp session
            option_cache: Cache for the unfiltered option list
        """
        self._config = config or DeltaClientConfig()

        self._api_key = api_key or self._config.api_key or ""
        self._api_secret = api_secret or self._config.api_secret or ""
        self._authenticated = bool(self._api_key and self._api_secret)

        self._base_url = base_url or self._config.base_url
        self._timeout = self._config.timeout_seconds

        # Session
        self._session = session
        self._owns_session = session is None

        self._option_cache = option_cache or OptionCache(
            ttl_ms=self._config.option_cache_ttl_ms,
        )

        # Metrics and logging
        self._metrics = AdapterMetrics("delta")
        self._logger = AdapterLogger("delta")
        get_global_aggregator().register("delta", self._metrics)

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def version(self) -> str:
        return CLIENT_VERSION

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def option_cache(self) -> OptionCache:
        return self._option_cache

    @property
    def metrics(self) -> AdapterMetrics:
        return self._metrics

    def is_authenticated(self) -> bool:
        """Whether both key and secret were supplied."""
        return self._authenticated

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
            self._logger.debug("HTTP session opened")

    async def disconnect(self) -> None:
        """Close the HTTP session if this client opened it."""
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._logger.debug("HTTP session closed")

    async def __aenter__(self) -> "DeltaExchangeClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # --------------------------------------------------------
    # SIGNING
    # --------------------------------------------------------

    def signed_headers(
        self,
        method: str,
        path: str,
        query_string: str = "",
        json_body: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> Dict[str, str]:
        """
        Auth headers for one request.

        Raises:
            AuthenticationRequired: If key or secret is missing
        """
        return sign_request(
            self._api_key,
            self._api_secret,
            method,
            path,
            query_string,
            json_body,
            timestamp if timestamp is not None else get_timestamp(),
        ).as_dict()

    # --------------------------------------------------------
    # REQUEST HANDLING
    # --------------------------------------------------------

    async def request(
        self,
        path: str,
        method: str = "GET",
        payload: Dict[str, Any] = None,
        queries: Sequence[Query] = None,
        auth: bool = False,
        base_url: str = None,
        headers: Dict[str, str] = None,
    ) -> Any:
        """
        Make a request to the Delta API.

        Args:
            path: API path, e.g. /v2/orders
            method: HTTP method
            payload: JSON body (ignored for GET)
            queries: Ordered query parameters
            auth: Sign the request
            base_url: Override the base URL
            headers: Extra headers

        Returns:
            Parsed JSON response
        """
        method = method.upper()
        query_string = build_query(queries)
        url = f"{base_url or self._base_url}{path}{query_string}"
        body = None if method == "GET" else serialize_payload(payload)

        request_headers = dict(headers or {})
        request_headers["Content-Type"] = "application/json"
        request_headers["Accept"] = "application/json"

        if auth:
            request_headers.update(
                self.signed_headers(method, path, query_string, body)
            )

        request_headers["User-Agent"] = USER_AGENT_PREFIX + self.version

        await self.connect()

        request_id = self._logger.log_request(
            method=method,
            path=path,
            query=query_string,
            headers=request_headers,
            body=body,
        )

        start_time = time.time()

        try:
            async with self._session.request(
                method, url, headers=request_headers, data=body,
            ) as resp:
                return await self._handle_response(resp, request_id, path, start_time)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            latency_ms = (time.time() - start_time) * 1000
            error_code = "TIMEOUT" if isinstance(e, asyncio.TimeoutError) else "NETWORK_ERROR"
            self._metrics.record_request(
                path=path,
                latency_ms=latency_ms,
                success=False,
                error_code=error_code,
            )
            self._logger.warning(f"{method} {path} failed: {e!r}")
            raise

    async def _handle_response(
        self,
        response: aiohttp.ClientResponse,
        request_id: str,
        path: str,
        start_time: float,
    ) -> Any:
        """Parse response, raising ExchangeException on API errors."""
        data = await response.json(content_type=None)
        latency_ms = (time.time() - start_time) * 1000

        failed = response.status >= 400 or (
            isinstance(data, dict) and data.get("success") is False
        )

        if failed:
            error_info = data.get("error") if isinstance(data, dict) else None
            if isinstance(error_info, dict):
                code = error_info.get("code")
                context = error_info.get("context")
                message = json.dumps(context, default=str) if context else str(code)
            else:
                code = error_info
                message = str(error_info or f"HTTP {response.status}")

            error = map_delta_error(code, message, response.status)
            error.operation = path

            self._metrics.record_request(
                path=path,
                latency_ms=latency_ms,
                success=False,
                status_code=response.status,
                error_code=error.code,
            )
            self._logger.log_response(
                path=path,
                request_id=request_id,
                status_code=response.status,
                latency_ms=latency_ms,
                success=False,
                error_code=error.code,
                error_message=message,
            )
            raise ExchangeException(error)

        self._metrics.record_request(
            path=path,
            latency_ms=latency_ms,
            success=True,
            status_code=response.status,
        )
        self._logger.log_response(
            path=path,
            request_id=request_id,
            status_code=response.status,
            latency_ms=latency_ms,
            success=True,
            response_body=data,
        )
        return data

    @staticmethod
    def _result(data: Any) -> Any:
        return data.get("result") if isinstance(data, dict) else None

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def get_assets(self) -> Any:
        return await self.request("/assets")

    async def get_balances(self, asset_id: int = None) -> Dict[str, Any]:
        """
        Wallet balances.

        Args:
            asset_id: Return only this asset's balance when found

        Returns:
            Balance of asset_id, or balances keyed by asset symbol
        """
        data = await self.request("/v2/wallet/balances", auth=True)
        balances = self._result(data) or []

        if asset_id:
            for asset in balances:
                if asset.get("asset_id") == asset_id:
                    return asset

        return {asset.get("asset_symbol"): asset for asset in balances}

    async def set_leverage(self, product_id: Any, leverage: Any) -> Any:
        return await self.request(
            f"/v2/products/{product_id}/orders/leverage",
            "POST",
            {"leverage": leverage},
            auth=True,
        )

    async def get_order_history(
        self,
        queries: Sequence[Query] = None,
        page_size: int = 10,
        after: str = None,
    ) -> Any:
        """Order history, paginated with the `after` cursor."""
        return await self.request(
            "/v2/orders/history",
            queries=self._paginate(queries, page_size, after),
            auth=True,
        )

    async def get_fill_history(
        self,
        queries: Sequence[Query] = None,
        page_size: int = 10,
        after: str = None,
    ) -> Any:
        """Fill history, paginated with the `after` cursor."""
        return await self.request(
            "/v2/fills",
            queries=self._paginate(queries, page_size, after),
            auth=True,
        )

    @staticmethod
    def _paginate(
        queries: Optional[Sequence[Query]],
        page_size: Optional[int],
        after: Optional[str],
    ) -> List[Query]:
        paged = list(queries or [])
        if after:
            paged.append(Query("after", str(after)))
        if page_size:
            paged.append(Query("page_size", str(page_size)))
        return paged

    async def change_position_margin(self, product_id: Any, delta_margin: Any) -> Any:
        return await self.request(
            "/v2/positions/change_margin",
            "POST",
            {"product_id": product_id, "delta_margin": delta_margin},
            auth=True,
        )

    async def get_positions(self, product_ids: Sequence[Any]) -> Optional[List[Dict[str, Any]]]:
        data = await self.request(
            "/v2/positions/margined",
            queries=[Query("product_id", ",".join(str(p) for p in product_ids))],
            auth=True,
        )
        return self._result(data)

    async def get_all_positions(self) -> List[Dict[str, Any]]:
        data = await self.request("/v2/positions/margined", auth=True)
        return self._result(data) or []

    async def get_active_orders(self, page_size: int = None) -> Optional[List[Dict[str, Any]]]:
        data = await self.request(
            "/v2/orders",
            queries=[Query("page_size", str(page_size) if page_size else "100")],
            auth=True,
        )
        return self._result(data)

    # --------------------------------------------------------
    # OPTIONS
    # --------------------------------------------------------

    async def fetch_tickers(self, contract_type: str) -> List[Dict[str, Any]]:
        """
        Raw tickers for one contract type.

        Args:
            contract_type: "call_options" or "put_options"
        """
        data = await self.request(
            "/v2/tickers",
            queries=[Query("contract_types", contract_type)],
        )
        return self._result(data) or []

    async def _fetch_options(
        self,
        symbol: Optional[str] = None,
        expiry: Optional[str] = None,
        turnover_symbol: Optional[str] = None,
    ) -> List[Option]:
        calls, puts = await asyncio.gather(
            self.fetch_tickers(CALL_OPTIONS),
            self.fetch_tickers(PUT_OPTIONS),
        )
        return normalize_tickers([*calls, *puts], symbol, expiry, turnover_symbol)

    async def get_options(
        self,
        symbol: str = None,
        expiry: str = None,
        turnover_symbol: str = None,
    ) -> List[Option]:
        """
        Normalized option tickers.

        Without a symbol, the full option list is served from the
        option cache and the remaining filters are applied to it.

        Args:
            symbol: Underlying, e.g. BTC
            expiry: Expiry token, e.g. 310125
            turnover_symbol: Settlement asset, e.g. USD
        """
        if symbol:
            return await self._fetch_options(symbol, expiry, turnover_symbol)

        misses = self._option_cache.misses
        options = await self._option_cache.get_or_fetch(self._fetch_options)

        if self._option_cache.misses == misses:
            self._metrics.record_cache_hit()
        else:
            self._metrics.record_cache_miss()

        return filter_options(options, expiry=expiry, turnover_symbol=turnover_symbol)

    async def get_option_chains(
        self,
        symbol: str,
        turnover_symbol: str = None,
    ) -> OptionChains:
        """Option chains for an underlying, keyed by expiry then strike."""
        options = await self.get_options(symbol, None, turnover_symbol)
        return build_option_chains(options)

    async def get_option_chain(
        self,
        symbol: str,
        expiry: str,
        turnover_symbol: str = None,
    ) -> Optional[OptionChain]:
        """Option chain for one expiry, or None if it has no options."""
        options = await self.get_options(symbol, None, turnover_symbol)
        return build_option_chain(options, expiry)

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    async def get_ticker_details(self, symbol: str) -> Optional[Dict[str, Any]]:
        return self._result(await self.request(f"/v2/tickers/{symbol}"))

    async def get_orderbook(self, symbol: str) -> Any:
        return await self.request(f"/v2/l2orderbook/{symbol}")

    async def get_sparklines(self, symbol: str) -> Any:
        return await self.request("/v2/sparklines", queries=[Query("symbol", symbol)])

    async def get_ohlc(
        self,
        symbol: str,
        resolution: str,
        start: int,
        end: int,
    ) -> Optional[List[Dict[str, Any]]]:
        """
        Candles for a symbol.

        Args:
            symbol: Product symbol
            resolution: Candle resolution (see Resolution)
            start: Start, epoch milliseconds
            end: End, epoch milliseconds
        """
        data = await self.request("/v2/history/candles", queries=[
            Query("symbol", symbol),
            Query("resolution", str(getattr(resolution, "value", resolution))),
            Query("start", str(int(start) // 1000)),
            Query("end", str(int(end) // 1000)),
        ])
        return self._result(data)

    async def get_mark_ohlc(
        self,
        symbol: str,
        resolution: str,
        start: int,
        end: int,
    ) -> Optional[List[Dict[str, Any]]]:
        """Mark price candles."""
        return await self.get_ohlc(f"MARK:{symbol}", resolution, start, end)

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def create_order(
        self,
        product_id: int,
        side: str,
        size: Any,
        order_type: str,
        limit_price: Any = None,
        bracket_order: bool = None,
        bracket_stop_loss_trigger_price: Any = None,
        bracket_stop_loss_limit_price: Any = None,
        bracket_take_profit_trigger_price: Any = None,
        bracket_take_profit_limit_price: Any = None,
        bracket_trail_amount: Any = None,
        stop_order_type: str = None,
        stop_price: Any = None,
        stop_trigger_method: str = None,
        trail_amount: Any = None,
        close_on_trigger: bool = None,
        client_order_id: str = None,
        time_in_force: str = None,
        reduce_only: bool = None,
        post_only: bool = None,
    ) -> Any:
        """
        Place an order.

        Fields are passed through as given; trail amounts on buy
        orders are sent negated.
        """
        is_buy = side == Side.BUY

        payload = {
            "bracket_order": bracket_order,
            "bracket_stop_loss_limit_price": bracket_stop_loss_limit_price,
            "bracket_stop_loss_price": bracket_stop_loss_trigger_price,
            "bracket_take_profit_limit_price": bracket_take_profit_limit_price,
            "bracket_take_profit_price": bracket_take_profit_trigger_price,
            "bracket_trail_amount": negate_amount(bracket_trail_amount) if is_buy else bracket_trail_amount,
            "client_order_id": client_order_id,
            "close_on_trigger": close_on_trigger,
            "limit_price": limit_price,
            "order_type": order_type,
            "product_id": product_id,
            "reduce_only": reduce_only,
            "side": side,
            "size": size,
            "stop_order_type": stop_order_type,
            "stop_price": stop_price,
            "stop_trigger_method": stop_trigger_method,
            "time_in_force": time_in_force,
            "trail_amount": negate_amount(trail_amount) if is_buy else trail_amount,
            "post_only": post_only,
        }

        data = await self.request("/v2/orders", "POST", payload, auth=True)

        self._metrics.record_order_submitted()
        self._logger.info(
            f"Order submitted: product={product_id} side={side} size={size} type={order_type}"
        )
        return data

    async def create_bracket_order(
        self,
        product_id: int,
        side: str,
        size: Any,
        order_type: str,
        limit_price: Any = None,
        bracket_stop_loss_limit_price: Any = None,
        bracket_stop_loss_price: Any = None,
        bracket_take_profit_limit_price: Any = None,
        bracket_take_profit_price: Any = None,
        bracket_trail_amount: Any = None,
        stop_trigger_method: str = None,
        close_on_trigger: bool = None,
        client_order_id: str = None,
        time_in_force: str = None,
        reduce_only: bool = None,
        post_only: bool = None,
    ) -> Any:
        """Order with attached stop loss / take profit."""
        return await self.create_order(
            product_id, side, size, order_type, limit_price,
            bracket_order=True,
            bracket_stop_loss_trigger_price=bracket_stop_loss_price,
            bracket_stop_loss_limit_price=bracket_stop_loss_limit_price,
            bracket_take_profit_trigger_price=bracket_take_profit_price,
            bracket_take_profit_limit_price=bracket_take_profit_limit_price,
            bracket_trail_amount=bracket_trail_amount,
            stop_trigger_method=stop_trigger_method,
            close_on_trigger=close_on_trigger,
            client_order_id=client_order_id,
            time_in_force=time_in_force,
            reduce_only=reduce_only,
            post_only=post_only,
        )

    async def create_stop_only_order(
        self,
        product_id: int,
        side: str,
        size: Any,
        order_type: str,
        stop_price: Any,
        limit_price: Any = None,
        trail_amount: Any = None,
        stop_trigger_method: str = None,
        close_on_trigger: bool = None,
        post_only: bool = None,
        client_order_id: str = None,
        time_in_force: str = None,
    ) -> Any:
        """Reduce-only stop loss order."""
        return await self.create_order(
            product_id, side, size, order_type, limit_price,
            stop_order_type=StopOrderType.STOP_LOSS,
            stop_price=stop_price,
            stop_trigger_method=stop_trigger_method,
            trail_amount=trail_amount,
            close_on_trigger=close_on_trigger,
            client_order_id=client_order_id,
            time_in_force=time_in_force,
            reduce_only=True,
            post_only=post_only,
        )

    async def create_limit_order(
        self,
        product_id: int,
        side: str,
        size: Any,
        order_type: str,
        limit_price: Any = None,
        stop_order_type: str = None,
        stop_price: Any = None,
        stop_trigger_method: str = None,
        trail_amount: Any = None,
        close_on_trigger: bool = None,
        client_order_id: str = None,
        time_in_force: str = None,
        reduce_only: bool = None,
        post_only: bool = None,
    ) -> Any:
        """Order without bracket legs."""
        return await self.create_order(
            product_id, side, size, order_type, limit_price,
            stop_order_type=stop_order_type,
            stop_price=stop_price,
            stop_trigger_method=stop_trigger_method,
            trail_amount=trail_amount,
            close_on_trigger=close_on_trigger,
            client_order_id=client_order_id,
            time_in_force=time_in_force,
            reduce_only=reduce_only,
            post_only=post_only,
        )

    # --------------------------------------------------------
    # WEBSOCKET
    # --------------------------------------------------------

    def create_socket(self) -> DeltaExchangeSocket:
        """Real-time socket sharing this client's credentials."""
        return DeltaExchangeSocket(
            self._api_key,
            self._api_secret,
            config=self._config.socket,
        )
