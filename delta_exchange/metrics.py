"""
Delta Exchange Client - Metrics.

============================================================
PURPOSE
============================================================
Request and cache metrics for the Delta Exchange client.

METRICS TRACKED:
- Request latency (overall and by path)
- Request success/failure counts
- Rate limit, timeout and connection errors
- Option cache hits/misses
- Orders submitted

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List
from dataclasses import dataclass
from collections import defaultdict
from enum import Enum


logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics."""

    REQUEST_SUCCESS = "request_success"
    REQUEST_FAILURE = "request_failure"
    RATE_LIMIT_HIT = "rate_limit_hit"
    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    OPTION_CACHE_HIT = "option_cache_hit"
    OPTION_CACHE_MISS = "option_cache_miss"
    ORDER_SUBMITTED = "order_submitted"


@dataclass
class LatencyStats:
    """Latency statistics."""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count > 0 else 0.0

    def record(self, latency_ms: float) -> None:
        self.count += 1
        self.total_ms += latency_ms
        self.min_ms = min(self.min_ms, latency_ms)
        self.max_ms = max(self.max_ms, latency_ms)

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg_ms": self.avg_ms,
            "min_ms": self.min_ms if self.min_ms != float("inf") else 0,
            "max_ms": self.max_ms,
        }


# ============================================================
# ADAPTER METRICS
# ============================================================

class AdapterMetrics:
    """
    Metrics collector for one client instance.
    """

    def __init__(self, exchange_id: str = "delta"):
        self._exchange_id = exchange_id
        self._start_time = datetime.now(timezone.utc)

        self._latency: Dict[str, LatencyStats] = defaultdict(LatencyStats)
        self._counters: Dict[MetricType, int] = {mt: 0 for mt in MetricType}
        self._error_codes: Dict[str, int] = defaultdict(int)

        # Last N requests for debugging
        self._recent_requests: List[Dict[str, Any]] = []
        self._max_recent = 100

    # --------------------------------------------------------
    # RECORDING
    # --------------------------------------------------------

    def record_request(
        self,
        path: str,
        latency_ms: float,
        success: bool,
        status_code: int = None,
        error_code: str = None,
    ) -> None:
        """
        Record a request.

        Args:
            path: API path
            latency_ms: Request latency in ms
            success: Whether request succeeded
            status_code: HTTP status code
            error_code: Error code if failed
        """
        self._latency[path].record(latency_ms)
        self._latency["_all"].record(latency_ms)

        if success:
            self._counters[MetricType.REQUEST_SUCCESS] += 1
        else:
            self._counters[MetricType.REQUEST_FAILURE] += 1

            if error_code:
                self._error_codes[error_code] += 1

                code = error_code.upper()
                if "RATE" in code:
                    self._counters[MetricType.RATE_LIMIT_HIT] += 1
                elif "TIMEOUT" in code:
                    self._counters[MetricType.TIMEOUT] += 1
                elif "NET" in code or "CONN" in code:
                    self._counters[MetricType.CONNECTION_ERROR] += 1

        self._recent_requests.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "path": path,
            "latency_ms": latency_ms,
            "success": success,
            "status_code": status_code,
            "error_code": error_code,
        })

        if len(self._recent_requests) > self._max_recent:
            self._recent_requests.pop(0)

    def record_cache_hit(self) -> None:
        self._counters[MetricType.OPTION_CACHE_HIT] += 1

    def record_cache_miss(self) -> None:
        self._counters[MetricType.OPTION_CACHE_MISS] += 1

    def record_order_submitted(self) -> None:
        self._counters[MetricType.ORDER_SUBMITTED] += 1

    # --------------------------------------------------------
    # REPORTING
    # --------------------------------------------------------

    def get_summary(self) -> Dict[str, Any]:
        """
        Get metrics summary.

        Returns:
            Dict with all metrics
        """
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()

        success = self._counters[MetricType.REQUEST_SUCCESS]
        failure = self._counters[MetricType.REQUEST_FAILURE]
        total = success + failure

        return {
            "exchange_id": self._exchange_id,
            "uptime_seconds": uptime,
            "requests": {
                "total": total,
                "success": success,
                "failure": failure,
                "success_rate": success / total if total > 0 else 1.0,
            },
            "latency": self._latency["_all"].to_dict() if "_all" in self._latency else LatencyStats().to_dict(),
            "option_cache": {
                "hits": self._counters[MetricType.OPTION_CACHE_HIT],
                "misses": self._counters[MetricType.OPTION_CACHE_MISS],
            },
            "orders": {
                "submitted": self._counters[MetricType.ORDER_SUBMITTED],
            },
            "errors": {
                "rate_limit_hits": self._counters[MetricType.RATE_LIMIT_HIT],
                "timeouts": self._counters[MetricType.TIMEOUT],
                "connection_errors": self._counters[MetricType.CONNECTION_ERROR],
                "by_code": dict(self._error_codes),
            },
        }

    def get_latency_by_path(self) -> Dict[str, Dict[str, float]]:
        """Get latency stats by path."""
        return {
            path: stats.to_dict()
            for path, stats in self._latency.items()
            if path != "_all"
        }

    def get_recent_requests(self, limit: int = 20) -> List[Dict[str, Any]]:
        return self._recent_requests[-limit:]

    def reset(self) -> None:
        """Reset all metrics."""
        self._start_time = datetime.now(timezone.utc)
        self._latency.clear()
        self._counters = {mt: 0 for mt in MetricType}
        self._error_codes.clear()
        self._recent_requests.clear()


# ============================================================
# METRICS AGGREGATOR
# ============================================================

class MetricsAggregator:
    """
    Aggregates metrics from multiple clients.
    """

    def __init__(self):
        self._clients: Dict[str, AdapterMetrics] = {}

    def register(self, name: str, metrics: AdapterMetrics) -> None:
        self._clients[name] = metrics

    def unregister(self, name: str) -> None:
        self._clients.pop(name, None)

    def get_all_summaries(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: metrics.get_summary()
            for name, metrics in self._clients.items()
        }


# Global aggregator instance
_global_aggregator = MetricsAggregator()


def get_global_aggregator() -> MetricsAggregator:
    """Get global metrics aggregator."""
    return _global_aggregator
