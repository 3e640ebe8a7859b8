"""
Delta Exchange Client - Option Normalization and Chains.

============================================================
PURPOSE
============================================================
Turn raw /v2/tickers payloads into Option records and group
them into option chains.

SYMBOL FORMAT:
    C-BTC-90000-310125
    ^ ^   ^     ^
    | |   |     +-- expiry token
    | |   +-------- strike
    | +------------ underlying
    +-------------- C = call, anything else = put

Tickers whose symbol does not parse are dropped, not raised.

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from .constants import OptionType
from .types import Option, OptionChain, OptionChainEntry, OptionChains


logger = logging.getLogger(__name__)


SYMBOL_SEPARATOR = "-"
MIN_SYMBOL_TOKENS = 4


# ============================================================
# NUMERIC COERCION
# ============================================================

def parse_numeric(value: Any) -> Optional[Decimal]:
    """
    Parse a numeric-looking value.

    Args:
        value: Raw JSON value

    Returns:
        Decimal, or None if the value is not a number
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float, str)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    else:
        return None

    if number.is_nan():
        return None
    return number


def numeric_or_raw(value: Any) -> Any:
    """Decimal when value parses, the raw value otherwise."""
    number = parse_numeric(value)
    return value if number is None else number


def _id_or_raw(value: Any) -> Any:
    number = parse_numeric(value)
    if number is None:
        return value
    if number == number.to_integral_value():
        return int(number)
    return number


# ============================================================
# SYMBOL PARSING
# ============================================================

@dataclass(frozen=True)
class OptionSymbol:
    """Parsed option symbol."""

    option_type: str
    underlying: str
    strike: str
    expiry: str


def parse_option_symbol(symbol: Any) -> Optional[OptionSymbol]:
    """
    Parse a dash-delimited option symbol.

    Args:
        symbol: Raw symbol, e.g. "P-ETH-3000-310125"

    Returns:
        OptionSymbol, or None if the symbol is unusable
    """
    if not isinstance(symbol, str) or not symbol:
        return None

    tokens = symbol.split(SYMBOL_SEPARATOR)
    if len(tokens) < MIN_SYMBOL_TOKENS:
        return None

    return OptionSymbol(
        option_type=OptionType.CALL.value if tokens[0] == "C" else OptionType.PUT.value,
        underlying=tokens[1],
        strike=tokens[2],
        expiry=tokens[3],
    )


# ============================================================
# TICKER NORMALIZATION
# ============================================================

def normalize_ticker(
    raw: Dict[str, Any],
    symbol: Optional[str] = None,
    expiry: Optional[str] = None,
    turnover_symbol: Optional[str] = None,
) -> Optional[Option]:
    """
    Map a raw ticker to an Option.

    Args:
        raw: Ticker object from /v2/tickers
        symbol: Keep only this underlying
        expiry: Keep only this expiry token
        turnover_symbol: Keep only this turnover symbol

    Returns:
        Option, or None if the ticker is excluded
    """
    if not isinstance(raw, dict):
        return None

    parsed = parse_option_symbol(raw.get("symbol"))
    if parsed is None:
        return None

    if symbol and parsed.underlying != symbol:
        return None
    if expiry and parsed.expiry != expiry:
        return None
    if turnover_symbol and raw.get("turnover_symbol") != turnover_symbol:
        return None

    quotes = raw.get("quotes") or {}
    price_band = raw.get("price_band") or {}

    return Option(
        id=_id_or_raw(raw.get("product_id")),
        symbol=raw["symbol"],
        underlying=parsed.underlying,
        expiry=parsed.expiry,
        type=parsed.option_type,
        strike_price=numeric_or_raw(raw.get("strike_price")),
        mark_price=numeric_or_raw(raw.get("mark_price")),
        best_bid=numeric_or_raw(quotes.get("best_bid")),
        best_ask=numeric_or_raw(quotes.get("best_ask")),
        bid_size=numeric_or_raw(quotes.get("bid_size")),
        ask_size=numeric_or_raw(quotes.get("ask_size")),
        open=numeric_or_raw(raw.get("open")),
        close=numeric_or_raw(raw.get("close")),
        high=numeric_or_raw(raw.get("high")),
        low=numeric_or_raw(raw.get("low")),
        volume=numeric_or_raw(raw.get("volume")),
        spot_price=numeric_or_raw(raw.get("spot_price")),
        price_min=numeric_or_raw(price_band.get("lower_limit")),
        price_max=numeric_or_raw(price_band.get("upper_limit")),
        timestamp=raw.get("timestamp"),
        turnover=raw.get("turnover_symbol"),
    )


def normalize_tickers(
    raws: Iterable[Dict[str, Any]],
    symbol: Optional[str] = None,
    expiry: Optional[str] = None,
    turnover_symbol: Optional[str] = None,
) -> List[Option]:
    """Normalize a ticker list, dropping excluded tickers."""
    options = []
    for raw in raws or []:
        option = normalize_ticker(raw, symbol, expiry, turnover_symbol)
        if option is not None:
            options.append(option)
    return options


def filter_options(
    options: List[Option],
    symbol: Optional[str] = None,
    expiry: Optional[str] = None,
    turnover_symbol: Optional[str] = None,
) -> List[Option]:
    """
    Apply ticker filters to already normalized options.

    Returns the input list itself when no filter is given.
    """
    if not (symbol or expiry or turnover_symbol):
        return options
    return [
        option for option in options
        if (not symbol or option.underlying == symbol)
        and (not expiry or option.expiry == expiry)
        and (not turnover_symbol or option.turnover == turnover_symbol)
    ]


# ============================================================
# OPTION CHAINS
# ============================================================

def build_option_chains(options: Iterable[Option]) -> OptionChains:
    """
    Group options by expiry, then strike.

    Options whose type is neither call nor put are logged and
    skipped.
    """
    chains: OptionChains = {}

    for option in options:
        if option.type not in (OptionType.CALL, OptionType.PUT):
            logger.warning(f"Unknown option type: {option.type} ({option.symbol})")
            continue

        chain = chains.setdefault(option.expiry, {})
        entry = chain.setdefault(option.strike_price, OptionChainEntry())

        if option.type == OptionType.CALL:
            entry.call = option
        else:
            entry.put = option

    return chains


def build_option_chain(options: Iterable[Option], expiry: str) -> Optional[OptionChain]:
    """Chain for one expiry, or None when it has no options."""
    return build_option_chains(options).get(expiry)
