"""
Delta Exchange Client - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the Delta Exchange client.

Credentials and endpoints can be given explicitly or read from
the environment (a local .env file is loaded first):

    DELTA_API_KEY
    DELTA_API_SECRET
    DELTA_BASE_URL
    DELTA_WS_URL

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .constants import DELTA_REST_URL, DELTA_SOCKET_URL, OPTION_CACHE_TTL_MS


# ============================================================
# SOCKET CONFIGURATION
# ============================================================

@dataclass
class SocketConfig:
    """
    Real-time socket configuration.
    """

    url: str = DELTA_SOCKET_URL
    """Socket URL."""

    reconnect: bool = True
    """Whether to reconnect after the connection drops."""

    max_reconnect_attempts: int = 10
    """Reconnect attempts before giving up."""

    reconnect_interval_ms: int = 1000
    """Initial reconnect delay."""

    max_reconnect_interval_ms: int = 30000
    """Upper bound for the reconnect delay."""

    ping_interval_ms: int = 20000
    """Heartbeat interval."""

    message_timeout_ms: int = 60000
    """Reconnect when nothing arrives for this long."""


# ============================================================
# CLIENT CONFIGURATION
# ============================================================

@dataclass
class DeltaClientConfig:
    """
    Master configuration for the Delta Exchange client.
    """

    api_key: Optional[str] = None
    """API key (None for public-only access)."""

    api_secret: Optional[str] = None
    """API secret."""

    base_url: str = DELTA_REST_URL
    """REST API base URL."""

    timeout_seconds: float = 30.0
    """Total timeout applied to each HTTP request."""

    option_cache_ttl_ms: int = OPTION_CACHE_TTL_MS
    """Window for reusing the unfiltered option list."""

    socket: SocketConfig = field(default_factory=SocketConfig)
    """Socket configuration."""

    @property
    def has_credentials(self) -> bool:
        """Whether both key and secret are set."""
        return bool(self.api_key and self.api_secret)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "DeltaClientConfig":
        """
        Create config from environment variables.

        Args:
            dotenv_path: Explicit .env file (default: search upwards)

        Returns:
            DeltaClientConfig
        """
        load_dotenv(dotenv_path)

        return cls(
            api_key=os.environ.get("DELTA_API_KEY"),
            api_secret=os.environ.get("DELTA_API_SECRET"),
            base_url=os.environ.get("DELTA_BASE_URL", DELTA_REST_URL),
            socket=SocketConfig(url=os.environ.get("DELTA_WS_URL", DELTA_SOCKET_URL)),
        )

    @classmethod
    def for_testing(cls) -> "DeltaClientConfig":
        """Get configuration for testing."""
        return cls(
            api_key="test_key",
            api_secret="test_secret",
            timeout_seconds=5.0,
            socket=SocketConfig(reconnect=False),
        )
