"""
Signing Tests.

============================================================
PURPOSE
============================================================
Tests for query encoding and HMAC request signatures.

TEST CATEGORIES:
- Quoting: reserved characters and spaces
- Query strings: order and round trip
- Signatures: determinism and input sensitivity
- Credentials: AuthenticationRequired

============================================================
"""

import hashlib
import hmac

import pytest

from delta_exchange import (
    AuthenticationRequired,
    ErrorCategory,
    Query,
    build_query,
    parse_query,
    quote,
    quote_plus,
    sign_message,
    sign_request,
)
from delta_exchange.signing import canonical_message


# ============================================================
# QUOTING TESTS
# ============================================================

class TestQuoting:
    """Tests for quote and quote_plus."""

    def test_unreserved_characters_literal(self):
        """Test that unreserved characters pass through."""
        assert quote("AZaz09-_.~") == "AZaz09-_.~"

    def test_slash_kept(self):
        """Test that slash is not encoded."""
        assert quote("a/b") == "a/b"

    def test_reserved_characters_encoded(self):
        """Test that sub-delimiters are percent-encoded."""
        assert quote("(a)*!'") == "%28a%29%2A%21%27"
        assert quote("a&b=c") == "a%26b%3Dc"

    def test_space_encoding(self):
        """Test space handling in both variants."""
        assert quote("a b") == "a%20b"
        assert quote_plus("a b") == "a+b"

    def test_plus_sign_encoded(self):
        """Test that a literal plus is not confused with space."""
        assert quote_plus("1+1") == "1%2B1"


# ============================================================
# QUERY STRING TESTS
# ============================================================

class TestBuildQuery:
    """Tests for build_query / parse_query."""

    def test_empty(self):
        """Test that no queries give an empty string."""
        assert build_query([]) == ""
        assert build_query(None) == ""

    def test_order_preserved(self):
        """Test that parameters keep their order."""
        queries = [
            Query("page_size", "10"),
            Query("after", "abc"),
            Query("contract_types", "call_options"),
        ]

        assert build_query(queries) == "?page_size=10&after=abc&contract_types=call_options"

    def test_values_encoded(self):
        """Test that values are quote_plus encoded."""
        assert build_query([Query("symbol", "MARK:BTC USD")]) == "?symbol=MARK%3ABTC+USD"

    def test_round_trip(self):
        """Test that parse_query inverts build_query."""
        queries = [
            Query("product_id", "1,2,3"),
            Query("note", "a b&c=d+e/f"),
            Query("empty", ""),
            Query("product_id", "4"),
        ]

        assert parse_query(build_query(queries)) == queries

    def test_parse_empty(self):
        """Test parsing an empty query string."""
        assert parse_query("") == []
        assert parse_query("?") == []


# ============================================================
# SIGNATURE TESTS
# ============================================================

SECRET = "test_secret"
BASE_INPUTS = {
    "method": "POST",
    "timestamp": 1700000000,
    "path": "/v2/orders",
    "query_string": "?page_size=10",
    "json_body": '{"product_id":27,"size":1}',
}


def _sign(secret=SECRET, **overrides):
    inputs = dict(BASE_INPUTS, **overrides)
    return sign_request(
        "test_key",
        secret,
        inputs["method"],
        inputs["path"],
        inputs["query_string"],
        inputs["json_body"],
        inputs["timestamp"],
    )


class TestSignature:
    """Tests for HMAC signatures."""

    def test_sign_message_matches_hmac(self):
        """Test that sign_message is hex HMAC-SHA256."""
        expected = hmac.new(b"secret", b"message", hashlib.sha256).hexdigest()

        assert sign_message("secret", "message") == expected

    def test_canonical_message(self):
        """Test concatenation without delimiters."""
        message = canonical_message("GET", 1700000000, "/v2/orders", "?page_size=10")

        assert message == "GET1700000000/v2/orders?page_size=10"

    def test_canonical_message_with_body(self):
        """Test that the body is appended verbatim."""
        message = canonical_message("POST", 1, "/v2/orders", "", '{"a":1}')

        assert message == 'POST1/v2/orders{"a":1}'

    def test_deterministic(self):
        """Test that identical inputs give identical signatures."""
        assert _sign().signature == _sign().signature

    def test_signature_is_over_canonical_message(self):
        """Test the signature against the canonical message."""
        message = (
            'POST1700000000/v2/orders?page_size=10{"product_id":27,"size":1}'
        )

        assert _sign().signature == sign_message(SECRET, message)

    @pytest.mark.parametrize("field,value", [
        ("method", "PUT"),
        ("timestamp", 1700000001),
        ("path", "/v2/orderz"),
        ("query_string", "?page_size=11"),
        ("json_body", '{"product_id":28,"size":1}'),
    ])
    def test_any_input_change_changes_signature(self, field, value):
        """Test that changing one input changes the signature."""
        assert _sign(**{field: value}).signature != _sign().signature

    def test_secret_change_changes_signature(self):
        """Test that the secret is part of the signature."""
        assert _sign(secret="test_secreT").signature != _sign().signature

    def test_headers(self):
        """Test header mapping."""
        headers = _sign().as_dict()

        assert headers["api-key"] == "test_key"
        assert headers["timestamp"] == "1700000000"
        assert len(headers["signature"]) == 64

    def test_timestamp_defaults_to_clock(self):
        """Test that an omitted timestamp is taken from the clock."""
        signed = sign_request("key", "secret", "GET", "/v2/orders")

        assert signed.timestamp > 1600000000


class TestCredentials:
    """Tests for missing credentials."""

    @pytest.mark.parametrize("api_key,secret", [
        ("", "secret"),
        ("key", ""),
        (None, None),
    ])
    def test_missing_credentials_raise(self, api_key, secret):
        """Test that signing without credentials raises."""
        with pytest.raises(AuthenticationRequired) as exc_info:
            sign_request(api_key, secret, "GET", "/v2/orders")

        assert exc_info.value.error.category == ErrorCategory.AUTHENTICATION
        assert exc_info.value.error.message == "Authentication required!"
        assert not exc_info.value.error.is_retryable()
