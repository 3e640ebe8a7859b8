"""
Delta Exchange Client - Types.

============================================================
PURPOSE
============================================================
Value types shared across the client.

- Query: one ordered request parameter
- Option: normalized option ticker
- OptionChainEntry: call/put pair at one strike
- OptionChain / OptionChains: strike and expiry indexes

Numeric Option fields hold a Decimal when the raw value was
numeric-looking, otherwise the raw value unchanged.

============================================================
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional, Union


# Number when the raw value parsed, raw value otherwise
NumericOrRaw = Union[Decimal, Any]


@dataclass(frozen=True)
class Query:
    """One query parameter. Order is significant for signing."""

    key: str
    value: str


@dataclass
class Option:
    """Normalized option ticker."""

    id: NumericOrRaw
    """Product id."""

    symbol: str
    """Exchange symbol, e.g. C-BTC-90000-310125."""

    underlying: str
    """Underlying asset token."""

    expiry: str
    """Expiry token (4th symbol token)."""

    type: str
    """Option type: call or put."""

    strike_price: NumericOrRaw = None
    mark_price: NumericOrRaw = None
    best_bid: NumericOrRaw = None
    best_ask: NumericOrRaw = None
    bid_size: NumericOrRaw = None
    ask_size: NumericOrRaw = None
    open: NumericOrRaw = None
    close: NumericOrRaw = None
    high: NumericOrRaw = None
    low: NumericOrRaw = None
    volume: NumericOrRaw = None
    spot_price: NumericOrRaw = None
    price_min: NumericOrRaw = None
    price_max: NumericOrRaw = None

    timestamp: Any = None
    """Exchange timestamp, passed through."""

    turnover: Optional[str] = None
    """Turnover symbol."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class OptionChainEntry:
    """Call and put contract at one strike."""

    call: Optional[Option] = None
    put: Optional[Option] = None


# strike -> entry
OptionChain = Dict[Any, OptionChainEntry]

# expiry -> chain
OptionChains = Dict[str, OptionChain]
