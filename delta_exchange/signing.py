"""
Delta Exchange Client - Request Signing.

============================================================
PURPOSE
============================================================
Canonical query encoding and HMAC request signatures.

SIGNATURE:
    HMAC-SHA256(secret, method + timestamp + path + query + body)

- Query string is exactly what build_query returns
- Body is omitted entirely when there is no payload
- Timestamp is computed once and reused for the header

============================================================
"""

import hmac
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote as _url_quote, quote_plus as _url_quote_plus, unquote_plus

from .errors import AuthenticationRequired
from .types import Query


logger = logging.getLogger(__name__)


# ============================================================
# QUERY ENCODING
# ============================================================

def quote(value: str) -> str:
    """
    Percent-encode a value the way the exchange expects.

    Only A-Z a-z 0-9 - _ . ~ and / are left literal.
    """
    return _url_quote(str(value), safe="/")


def quote_plus(value: str) -> str:
    """quote(), with spaces sent as '+'."""
    return _url_quote_plus(str(value), safe="/")


def build_query(queries: Optional[Sequence[Query]]) -> str:
    """
    Serialize queries into a query string, keeping their order.

    Args:
        queries: Ordered query parameters

    Returns:
        "?k=v&k2=v2", or "" when there are none
    """
    if not queries:
        return ""
    return "?" + "&".join(f"{q.key}={quote_plus(q.value)}" for q in queries)


def parse_query(query_string: str) -> List[Query]:
    """Inverse of build_query."""
    if query_string.startswith("?"):
        query_string = query_string[1:]
    if not query_string:
        return []

    queries = []
    for part in query_string.split("&"):
        key, _, value = part.partition("=")
        queries.append(Query(key=key, value=unquote_plus(value)))
    return queries


# ============================================================
# SIGNING
# ============================================================

@dataclass(frozen=True)
class SignedHeaders:
    """Authentication header values for one request."""

    api_key: str
    timestamp: int
    signature: str

    def as_dict(self) -> Dict[str, str]:
        """Header mapping merged into outbound requests."""
        return {
            "api-key": self.api_key,
            "timestamp": str(self.timestamp),
            "signature": self.signature,
        }


def get_timestamp() -> int:
    """Whole seconds since epoch."""
    return int(time.time())


def sign_message(secret: str, message: str) -> str:
    """
    HMAC-SHA256 of message keyed by secret.

    Returns:
        Lower-case hex digest
    """
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def canonical_message(
    method: str,
    timestamp: int,
    path: str,
    query_string: str = "",
    json_body: Optional[str] = None,
) -> str:
    """Concatenate the signed fields, without delimiters."""
    return f"{method}{timestamp}{path}{query_string}{json_body or ''}"


def sign_request(
    api_key: str,
    secret: str,
    method: str,
    path: str,
    query_string: str = "",
    json_body: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> SignedHeaders:
    """
    Produce the auth headers for a request.

    Args:
        api_key: API key sent in the api-key header
        secret: API secret used as HMAC key
        method: HTTP method
        path: Request path without host or query
        query_string: Output of build_query
        json_body: Serialized JSON body, or None
        timestamp: Epoch seconds; taken from the clock when omitted

    Returns:
        SignedHeaders

    Raises:
        AuthenticationRequired: If key or secret is empty
    """
    if not api_key or not secret:
        raise AuthenticationRequired(operation=f"{method} {path}")

    if timestamp is None:
        timestamp = get_timestamp()

    message = canonical_message(method, timestamp, path, query_string, json_body)
    return SignedHeaders(
        api_key=api_key,
        timestamp=timestamp,
        signature=sign_message(secret, message),
    )
