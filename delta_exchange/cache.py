"""
Delta Exchange Client - Option Cache.

============================================================
PURPOSE
============================================================
Short-lived, single-slot cache for the unfiltered option
universe.

RULES:
- Holds one (fetched_at_ms, options) entry per client
- Served while younger than ttl_ms and non-empty
- Invalidated by elapsed time only
- Check-and-populate runs under an asyncio.Lock, so
  concurrent callers share one upstream fetch

KNOWN WEAKNESS:
    Placing orders does not invalidate the cache. Reads may
    be up to ttl_ms stale.

============================================================
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from .constants import OPTION_CACHE_TTL_MS
from .types import Option


logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class OptionCache:
    """
    Time-windowed cache for the full option list.

    Args:
        ttl_ms: Window during which the last fetch is reused
        clock: Callable returning epoch milliseconds
    """

    def __init__(
        self,
        ttl_ms: int = OPTION_CACHE_TTL_MS,
        clock: Callable[[], int] = None,
    ):
        self._ttl_ms = ttl_ms
        self._clock = clock or _now_ms
        self._lock = asyncio.Lock()

        self._fetched_at_ms = 0
        self._options: List[Option] = []

        self._hits = 0
        self._misses = 0

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @property
    def fetched_at_ms(self) -> int:
        """When the stored options were fetched (0 if never)."""
        return self._fetched_at_ms

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    def is_fresh(self) -> bool:
        """Whether the stored options would be served."""
        if not self._options:
            return False
        return self._fetched_at_ms + self._ttl_ms > self._clock()

    def peek(self) -> Optional[List[Option]]:
        """Stored options if fresh, without fetching."""
        return self._options if self.is_fresh() else None

    # --------------------------------------------------------
    # LOOKUP
    # --------------------------------------------------------

    async def get_or_fetch(
        self,
        fetch: Callable[[], Awaitable[List[Option]]],
    ) -> List[Option]:
        """
        Return cached options, or fetch and store them.

        Args:
            fetch: Coroutine function producing the unfiltered options

        Returns:
            The stored list (same object on every hit)

        Raises:
            Whatever fetch raises; the previous entry is kept
        """
        async with self._lock:
            if self.is_fresh():
                self._hits += 1
                logger.debug(f"Option cache hit ({len(self._options)} options)")
                return self._options

            self._misses += 1
            options = await fetch()

            self._fetched_at_ms = self._clock()
            self._options = options
            logger.debug(f"Option cache refreshed ({len(options)} options)")
            return options
