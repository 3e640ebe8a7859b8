"""
Delta Exchange Client - Error Handling and Mapping.

============================================================
PURPOSE
============================================================
Standardized error handling for the Delta Exchange client:
- Unified error taxonomy
- Delta error code mapping
- Retry eligibility classification

============================================================
PROPAGATION POLICY
============================================================
- Missing credentials raise AuthenticationRequired immediately
- API error envelopes raise ExchangeException
- Transport failures (aiohttp, timeouts) propagate unmodified
- Symbol parsing anomalies are filtered, never raised

============================================================
"""

import logging
from enum import Enum
from typing import Optional, Dict, Any, Tuple
from dataclasses import dataclass


logger = logging.getLogger(__name__)


EXCHANGE_ID = "delta"


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Standardized error categories."""

    NETWORK = "NETWORK"
    RATE_LIMIT = "RATE_LIMIT"
    AUTHENTICATION = "AUTHENTICATION"
    INVALID_ORDER = "INVALID_ORDER"
    INSUFFICIENT_MARGIN = "INSUFFICIENT_MARGIN"
    EXCHANGE_ERROR = "EXCHANGE_ERROR"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    SYMBOL_NOT_FOUND = "SYMBOL_NOT_FOUND"
    POSITION_NOT_FOUND = "POSITION_NOT_FOUND"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    MAX_POSITION = "MAX_POSITION"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class RetryEligibility(Enum):
    """Whether error is eligible for retry."""

    RETRY = "RETRY"           # Safe to retry
    NO_RETRY = "NO_RETRY"     # Should not retry
    BACKOFF = "BACKOFF"       # Retry with exponential backoff


# ============================================================
# EXCHANGE ERROR
# ============================================================

@dataclass
class ExchangeError:
    """
    Standardized exchange error.

    Keeps the original Delta error code next to the normalized one.
    """

    # Core fields
    category: ErrorCategory
    code: str               # Normalized error code
    message: str            # Human-readable message

    # Retry info
    retry_eligible: RetryEligibility

    # Original error info
    exchange_code: Optional[str] = None
    exchange_message: Optional[str] = None
    http_status: Optional[int] = None

    # Context
    exchange_id: Optional[str] = EXCHANGE_ID
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "retry_eligible": self.retry_eligible.value,
            "exchange_code": self.exchange_code,
            "exchange_message": self.exchange_message,
            "http_status": self.http_status,
            "exchange_id": self.exchange_id,
            "operation": self.operation,
        }

    def is_retryable(self) -> bool:
        """Check if error is retryable."""
        return self.retry_eligible in (RetryEligibility.RETRY, RetryEligibility.BACKOFF)

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.code}: {self.message}"


class ExchangeException(Exception):
    """Exception wrapper for ExchangeError."""

    def __init__(self, error: ExchangeError):
        self.error = error
        super().__init__(str(error))


class AuthenticationRequired(ExchangeException):
    """Raised when an authenticated call is made without key and secret."""

    def __init__(self, operation: str = None):
        super().__init__(ExchangeError(
            category=ErrorCategory.AUTHENTICATION,
            code="DELTA_AUTHENTICATION_REQUIRED",
            message="Authentication required!",
            retry_eligible=RetryEligibility.NO_RETRY,
            operation=operation,
        ))


# ============================================================
# DELTA ERROR MAPPING
# ============================================================

# Delta error codes (error.code in the response envelope)
DELTA_ERROR_MAP: Dict[str, Tuple[ErrorCategory, RetryEligibility]] = {
    # Rate limiting
    "rate_limit_exceeded": (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),
    "too_many_requests": (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),

    # Authentication
    "invalid_api_key": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "unauthorized": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "unauthorized_api_access": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "signature_mismatch": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "ip_not_whitelisted_for_api_key": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    # Clock drift; a fresh timestamp may succeed
    "expired_signature": (ErrorCategory.AUTHENTICATION, RetryEligibility.RETRY),

    # Order validation
    "invalid_order": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "immediate_execution_post_only": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "immediate_execution_post_only_order": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "order_leverage_not_set": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "self_matching_post_only_mode": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "invalid_bracket_order": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "bracket_order_position_exists": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "order_size_exceed_available": (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    "order_exceeds_size_limit": (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    "open_order_not_found": (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    "invalid_product": (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),
    "invalid_contract": (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Margin / position
    "insufficient_margin": (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),
    "immediate_liquidation": (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),
    "immediate_liquidation_order": (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),
    "risk_limits_breached": (ErrorCategory.MAX_POSITION, RetryEligibility.NO_RETRY),
    "position_not_set": (ErrorCategory.POSITION_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Exchange internal
    "internal_server_error": (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    "service_unavailable": (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
}


def _normalize_code(code: Any) -> str:
    """Normalize CamelCase / spaced codes to snake_case."""
    text = str(code).strip()
    out = []
    for i, ch in enumerate(text):
        if ch.isupper() and i > 0 and text[i - 1].islower():
            out.append("_")
        out.append(ch.lower() if ch != " " else "_")
    return "".join(out)


def map_delta_error(
    code: Any,
    message: str,
    http_status: int = None,
) -> ExchangeError:
    """
    Map Delta error to unified format.

    Args:
        code: Delta error code (e.g. "insufficient_margin", "InsufficientMargin")
        message: Error message or context
        http_status: HTTP status code

    Returns:
        Unified ExchangeError
    """
    normalized = _normalize_code(code) if code is not None else ""

    if normalized in DELTA_ERROR_MAP:
        category, retry = DELTA_ERROR_MAP[normalized]
    elif http_status == 429:
        category = ErrorCategory.RATE_LIMIT
        retry = RetryEligibility.BACKOFF
    elif http_status == 403 or http_status == 401:
        category = ErrorCategory.AUTHENTICATION
        retry = RetryEligibility.NO_RETRY
    elif http_status and http_status >= 500:
        category = ErrorCategory.EXCHANGE_ERROR
        retry = RetryEligibility.RETRY
    else:
        category = ErrorCategory.UNKNOWN
        retry = RetryEligibility.NO_RETRY

    return ExchangeError(
        category=category,
        code=f"DELTA_{normalized.upper() or 'UNKNOWN'}",
        message=message,
        retry_eligible=retry,
        exchange_code=None if code is None else str(code),
        exchange_message=message,
        http_status=http_status,
    )

