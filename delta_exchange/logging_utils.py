"""
Delta Exchange Client - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Structured request/response logging with credential masking.

SECURITY REQUIREMENTS
1. NEVER log raw API keys, secrets or signatures
2. Mask the api-key and signature headers
3. Log a hash of request bodies and a masked preview

============================================================
"""

import logging
import json
import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA
# ============================================================

# Header names that should be masked
SENSITIVE_HEADERS = {
    "authorization",
    "api-key",
    "signature",
}

# Parameter / payload keys that should be masked
SENSITIVE_PARAMS = {
    "api-key",
    "api_key",
    "apikey",
    "secret",
    "api_secret",
    "signature",
    "password",
    "token",
}


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """Mask sensitive headers."""
    if not headers:
        return {}

    masked = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = mask_value(str(value))
        else:
            masked[key] = value
    return masked


def mask_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Mask sensitive parameters, recursing into nested dicts."""
    if not params:
        return {}

    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        elif isinstance(value, dict):
            masked[key] = mask_params(value)
        else:
            masked[key] = value
    return masked


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# LOG ENTRY STRUCTURES
# ============================================================

@dataclass
class RequestLogEntry:
    """Structured log entry for requests."""

    timestamp: str
    exchange_id: str
    method: str
    path: str
    request_id: str

    # Request details (masked)
    query: str = None
    headers: Dict[str, Any] = None
    body_hash: str = None
    body_preview: str = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


@dataclass
class ResponseLogEntry:
    """Structured log entry for responses."""

    timestamp: str
    exchange_id: str
    path: str
    request_id: str

    status_code: int
    latency_ms: float
    success: bool

    error_code: str = None
    error_message: str = None

    # Response preview (truncated)
    response_preview: str = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


# ============================================================
# ADAPTER LOGGER
# ============================================================

class AdapterLogger:
    """
    Secure logger for client operations.

    Provides structured logging with automatic credential masking.
    """

    def __init__(self, exchange_id: str = "delta", logger_name: str = None):
        """
        Initialize adapter logger.

        Args:
            exchange_id: Exchange identifier
            logger_name: Logger name (default: delta_exchange.<exchange_id>)
        """
        self._exchange_id = exchange_id
        self._logger = logging.getLogger(logger_name or f"delta_exchange.{exchange_id}")

        # Request counter for unique IDs
        self._request_counter = 0

    def _generate_request_id(self) -> str:
        self._request_counter += 1
        return f"{self._exchange_id}-{self._request_counter}"

    def _hash_body(self, body: Optional[str]) -> Optional[str]:
        if not body:
            return None
        return hashlib.sha256(body.encode("utf-8")).hexdigest()[:16]

    def _preview_body(self, body: Optional[str]) -> Optional[str]:
        """Masked, truncated view of a JSON object body."""
        if not body:
            return None
        try:
            payload = json.loads(body)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        return json.dumps(mask_params(payload), default=str)[:200]

    def log_request(
        self,
        method: str,
        path: str,
        query: str = None,
        headers: Dict[str, Any] = None,
        body: str = None,
    ) -> str:
        """
        Log outgoing request.

        Returns:
            Request ID for correlation
        """
        request_id = self._generate_request_id()

        entry = RequestLogEntry(
            timestamp=_utcnow(),
            exchange_id=self._exchange_id,
            method=method,
            path=path,
            request_id=request_id,
            query=query or None,
            headers=mask_headers(headers) if headers else None,
            body_hash=self._hash_body(body),
            body_preview=self._preview_body(body),
        )

        self._logger.debug(f"REQUEST: {entry.to_json()}")
        return request_id

    def log_response(
        self,
        path: str,
        request_id: str,
        status_code: int,
        latency_ms: float,
        success: bool,
        error_code: str = None,
        error_message: str = None,
        response_body: Any = None,
    ) -> None:
        """Log incoming response."""
        preview = None
        if response_body is not None:
            try:
                preview = json.dumps(response_body, default=str)[:200]
            except (TypeError, ValueError):
                preview = "<unserializable>"

        entry = ResponseLogEntry(
            timestamp=_utcnow(),
            exchange_id=self._exchange_id,
            path=path,
            request_id=request_id,
            status_code=status_code,
            latency_ms=latency_ms,
            success=success,
            error_code=error_code,
            error_message=error_message[:200] if error_message else None,
            response_preview=preview,
        )

        if success:
            self._logger.debug(f"RESPONSE: {entry.to_json()}")
        else:
            self._logger.warning(f"RESPONSE_ERROR: {entry.to_json()}")

    def info(self, message: str, **kwargs) -> None:
        self._logger.info(f"[{self._exchange_id}] {message}", extra=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._logger.warning(f"[{self._exchange_id}] {message}", extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        self._logger.error(
            f"[{self._exchange_id}] {message}",
            exc_info=exc_info,
            extra=kwargs,
        )

    def debug(self, message: str, **kwargs) -> None:
        self._logger.debug(f"[{self._exchange_id}] {message}", extra=kwargs)
