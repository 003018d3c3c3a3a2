"""
Global rate limiter for thread-safe API request throttling.

Problem: With several batch workers, each pipeline run would start its
upstream calls as soon as a worker frees up, bursting past provider limits.

Solution: A shared, thread-safe rate limiter keyed by API name that spaces
out batch item starts.

Usage:
    from tuition_research.utils.rate_limiter import global_rate_limiter

    global_rate_limiter.wait("gemini", delay=1.0)
    record = pipeline.run(school, program)
"""

import threading
import time
from typing import Callable, Dict, Optional


class GlobalRateLimiter:
    """
    Thread-safe global rate limiter for API requests.

    Maintains per-key rate limiting across all threads/workers.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._locks: Dict[str, threading.Lock] = {}
        self._last_request: Dict[str, Optional[float]] = {}
        self._master_lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    def _get_domain_lock(self, domain: str) -> threading.Lock:
        """Get or create a lock for a key."""
        with self._master_lock:
            if domain not in self._locks:
                self._locks[domain] = threading.Lock()
                self._last_request[domain] = None
            return self._locks[domain]

    def wait(self, domain: str, delay: float) -> float:
        """
        Wait until it's safe to make a request under the given key.

        Args:
            domain: API identifier (e.g., "gemini")
            delay: Minimum seconds between requests

        Returns:
            Actual time waited (0 if no wait needed)
        """
        lock = self._get_domain_lock(domain)

        with lock:
            last = self._last_request[domain]
            wait_time = 0.0
            if last is not None and delay > 0:
                elapsed = self._clock() - last
                if elapsed < delay:
                    wait_time = delay - elapsed
                    self._sleep(wait_time)

            self._last_request[domain] = self._clock()
            return wait_time

    def reset(self, domain: Optional[str] = None):
        """
        Reset rate limiter state.

        Args:
            domain: Specific key to reset, or None to reset all
        """
        with self._master_lock:
            if domain:
                self._last_request[domain] = None
            else:
                self._last_request = {k: None for k in self._last_request}


# Singleton instance - shared across all pipelines in a process
global_rate_limiter = GlobalRateLimiter()
