"""
Delta Exchange Client.

============================================================
PURPOSE
============================================================
Async client for the Delta Exchange derivatives API.

COMPONENTS:
- DeltaExchangeClient: Signed REST client
- DeltaExchangeSocket: Real-time subscription socket
- OptionCache: Short-lived cache of the option universe

UTILITIES:
- Query encoding and HMAC signing
- Option symbol parsing and chain building
- AdapterMetrics / AdapterLogger

ERROR HANDLING:
- ExchangeError: Unified error representation
- AuthenticationRequired: Signed call without credentials

============================================================
"""

from .constants import (
    CLIENT_VERSION,
    DELTA_REST_URL,
    DELTA_SOCKET_URL,
    OrderType,
    OptionType,
    Resolution,
    Side,
    StopOrderType,
    StopTriggerMethod,
    TimeInForce,
    resolution_to_minutes,
)

# Types
from .types import (
    Query,
    Option,
    OptionChain,
    OptionChainEntry,
    OptionChains,
)

# Config
from .config import DeltaClientConfig, SocketConfig

# Errors
from .errors import (
    AuthenticationRequired,
    ErrorCategory,
    ExchangeError,
    ExchangeException,
    RetryEligibility,
    map_delta_error,
)

# Signing
from .signing import (
    build_query,
    get_timestamp,
    parse_query,
    quote,
    quote_plus,
    sign_message,
    sign_request,
)

# Options
from .options import (
    build_option_chain,
    build_option_chains,
    filter_options,
    normalize_ticker,
    normalize_tickers,
    parse_option_symbol,
)
from .cache import OptionCache

# Metrics / logging
from .metrics import AdapterMetrics, MetricsAggregator, get_global_aggregator
from .logging_utils import AdapterLogger, mask_headers, mask_params, mask_value

# Client
from .websocket import ConnectionState, DeltaExchangeSocket
from .client import DeltaExchangeClient


__version__ = CLIENT_VERSION


__all__ = [
    # Constants
    "CLIENT_VERSION",
    "DELTA_REST_URL",
    "DELTA_SOCKET_URL",
    "OrderType",
    "OptionType",
    "Resolution",
    "Side",
    "StopOrderType",
    "StopTriggerMethod",
    "TimeInForce",
    "resolution_to_minutes",
    # Types
    "Query",
    "Option",
    "OptionChain",
    "OptionChainEntry",
    "OptionChains",
    # Config
    "DeltaClientConfig",
    "SocketConfig",
    # Errors
    "AuthenticationRequired",
    "ErrorCategory",
    "ExchangeError",
    "ExchangeException",
    "RetryEligibility",
    "map_delta_error",
    # Signing
    "build_query",
    "get_timestamp",
    "parse_query",
    "quote",
    "quote_plus",
    "sign_message",
    "sign_request",
    # Options
    "build_option_chain",
    "build_option_chains",
    "filter_options",
    "normalize_ticker",
    "normalize_tickers",
    "parse_option_symbol",
    "OptionCache",
    # Metrics / logging
    "AdapterMetrics",
    "MetricsAggregator",
    "get_global_aggregator",
    "AdapterLogger",
    "mask_headers",
    "mask_params",
    "mask_value",
    # Client
    "ConnectionState",
    "DeltaExchangeSocket",
    "DeltaExchangeClient",
]
