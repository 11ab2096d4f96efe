"""
Rate limiting implementation for outbound search and directory requests.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Any


class RateLimiter:
    """
    Simple rate limiter that enforces minimum time intervals between requests.

    This implementation uses a simple timing-based approach where it tracks
    the last request time and sleeps if necessary to maintain the desired
    request rate. Used by the synchronous search client.
    """

    def __init__(self, rate_limit: float):
        """
        Initialize the rate limiter.

        Args:
            rate_limit: Maximum requests per second (0.0 = no limit)
        """
        self.rate_limit = max(0.0, rate_limit)
        self.min_interval = 1.0 / self.rate_limit if self.rate_limit > 0 else 0.0
        self._last_request_time = 0.0

    def wait_if_needed(self) -> None:
        """
        Wait if necessary to maintain the rate limit.

        This method should be called before each request.
        """
        if self.rate_limit <= 0:
            return

        current_time = time.time()
        time_since_last = current_time - self._last_request_time

        if time_since_last < self.min_interval:
            time.sleep(self.min_interval - time_since_last)

        self._last_request_time = time.time()

    def update_rate(self, new_rate: float) -> None:
        """
        Update the rate limit dynamically.

        Args:
            new_rate: New maximum requests per second
        """
        self.rate_limit = max(0.0, new_rate)
        self.min_interval = 1.0 / self.rate_limit if self.rate_limit > 0 else 0.0


@dataclass
class SourceState:
    """Bookkeeping for one named source."""
    next_slot: float
    current_delay: float
    consecutive_failures: int = 0
    requests: int = 0


class AdaptiveRateLimiter:
    """
    Per-source adaptive throttle with exponential backoff on failure
    and gradual speedup on success.

    Shared process-wide: slots are reserved under a lock so concurrent
    callers for the same source are spaced by the current delay. A caller
    never waits longer than max_wait; after that it proceeds at its own risk.
    """

    def __init__(self, min_delay: float = 1.5, max_delay: float = 30.0, backoff_factor: float = 2.0,
                 recovery_factor: float = 0.75, max_wait: float = 10.0,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the rate limiter.

        Args:
            min_delay: Minimum interval between requests to one source (seconds)
            max_delay: Upper bound of the backed-off interval (seconds)
            backoff_factor: Multiplier applied on failure
            recovery_factor: Multiplier applied on success
            max_wait: Longest a single caller is suspended (seconds)
            clock: Monotonic time source
        """
        if min_delay < 0 or max_delay <= 0 or min_delay > max_delay:
            raise ValueError("Rate limiter delays must satisfy 0 <= min_delay <= max_delay")
        if max_wait < 0:
            raise ValueError("Max wait must be non-negative")

        self.min_delay = min_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.recovery_factor = recovery_factor
        self.max_wait = max_wait
        self._clock = clock
        self._sources: Dict[str, SourceState] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger('site_resolver')

    def _state(self, source: str) -> SourceState:
        state = self._sources.get(source)
        if state is None:
            state = SourceState(next_slot=0.0, current_delay=self.min_delay)
            self._sources[source] = state
        return state

    def reserve(self, source: str) -> float:
        """Reserve the next slot for a source.

        Returns:
            Seconds the caller should wait, bounded by max_wait
        """
        with self._lock:
            state = self._state(source)
            now = self._clock()
            slot = max(now, state.next_slot)
            state.next_slot = slot + state.current_delay
            state.requests += 1
            return min(self.max_wait, slot - now)

    async def wait_for_slot(self, source: str) -> None:
        """Suspend until the source's next slot (at most max_wait seconds)."""
        delay = self.reserve(source)
        if delay > 0:
            await asyncio.sleep(delay)

    def report_success(self, source: str) -> None:
        """Reset failures and shrink the interval (never below min_delay)."""
        with self._lock:
            state = self._state(source)
            state.consecutive_failures = 0
            state.current_delay = max(self.min_delay, state.current_delay * self.recovery_factor)

    def report_failure(self, source: str) -> None:
        """Widen the interval exponentially (never above max_delay)."""
        with self._lock:
            state = self._state(source)
            state.consecutive_failures += 1
            state.current_delay = min(self.max_delay, state.current_delay * self.backoff_factor)
            delay, failures = state.current_delay, state.consecutive_failures
        self.logger.warning(f"Rate limiter: {source} backoff -> {delay:.2f}s (failures: {failures})")

    def current_delay(self, source: str) -> float:
        """Current interval of a source (min_delay for unseen sources)."""
        with self._lock:
            state = self._sources.get(source)
            return state.current_delay if state else self.min_delay

    def stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-source snapshot for diagnostics."""
        with self._lock:
            return {
                source: {
                    'current_delay': state.current_delay,
                    'consecutive_failures': state.consecutive_failures,
                    'requests': state.requests,
                }
                for source, state in self._sources.items()
            }
