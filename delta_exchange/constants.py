"""
Delta Exchange Client - Constants.

============================================================
PURPOSE
============================================================
Endpoints and exchange vocabulary shared by the REST client
and the socket: order sides, order types, stop order types,
trigger methods, time in force and candle resolutions.

============================================================
"""

from enum import Enum


# ============================================================
# ENDPOINTS
# ============================================================

DELTA_REST_URL = "https://api.delta.exchange"
DELTA_SOCKET_URL = "wss://socket.delta.exchange"

CLIENT_VERSION = "0.1.0"
USER_AGENT_PREFIX = "delta-exchange-rest-client-"

# Path signed by the socket auth handshake
SOCKET_AUTH_PATH = "/live"

# Ticker contract types
CALL_OPTIONS = "call_options"
PUT_OPTIONS = "put_options"

# Option cache window
OPTION_CACHE_TTL_MS = 30000


# ============================================================
# ORDER VOCABULARY
# ============================================================

class Side(str, Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    """Order type."""

    MARKET = "market_order"
    LIMIT = "limit_order"


class StopOrderType(str, Enum):
    """Stop order type."""

    STOP_LOSS = "stop_loss_order"
    TAKE_PROFIT = "take_profit_order"


class StopTriggerMethod(str, Enum):
    """Price used to trigger stop orders."""

    MARK_PRICE = "mark_price"
    LAST_TRADED_PRICE = "last_traded_price"
    SPOT_PRICE = "spot_price"


class TimeInForce(str, Enum):
    """Time in force."""

    FOK = "fok"
    IOC = "ioc"
    GTC = "gtc"


class OptionType(str, Enum):
    """Option contract type."""

    CALL = "call"
    PUT = "put"


# ============================================================
# CANDLE RESOLUTIONS
# ============================================================

class Resolution(str, Enum):
    """Candle resolutions accepted by /v2/history/candles."""

    M1 = "1m"
    M2 = "2m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H2 = "2h"
    H4 = "4h"
    H6 = "6h"
    H12 = "12h"
    D1 = "1d"
    D7 = "7d"
    W1 = "1w"
    W2 = "2w"
    D30 = "30d"


RESOLUTION_MINUTES = {
    Resolution.M1: 1,
    Resolution.M2: 2,
    Resolution.M3: 3,
    Resolution.M5: 5,
    Resolution.M15: 15,
    Resolution.M30: 30,
    Resolution.H1: 60,
    Resolution.H2: 120,
    Resolution.H4: 240,
    Resolution.H6: 360,
    Resolution.H12: 720,
    Resolution.D1: 1440,
    Resolution.D7: 10080,
    Resolution.W1: 10080,
    Resolution.W2: 20160,
    Resolution.D30: 43200,
}


def resolution_to_minutes(resolution: str) -> int:
    """
    Length of a candle resolution in minutes.

    Args:
        resolution: Resolution string (e.g. "15m") or Resolution

    Returns:
        Minutes, or -1 for an unknown resolution
    """
    try:
        return RESOLUTION_MINUTES[Resolution(resolution)]
    except ValueError:
        return -1
