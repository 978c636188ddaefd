"""In-memory fixed-window rate limiting for the public endpoints.

Counters live in process memory: they reset on restart and are not shared
between instances.
"""

import logging
import time
from threading import Lock

from fastapi import Request

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, max_requests: int, window_seconds: int = 60, clock=time.monotonic) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = Lock()

    def check(self, key: str) -> bool:
        """Count a request for ``key``; False once the window's budget is spent."""
        now = self._clock()

        with self._lock:
            self._prune(now)
            count, reset_at = self._counters.get(key, (0, 0.0))

            if now > reset_at:
                self._counters[key] = (1, now + self.window_seconds)
                return True

            if count >= self.max_requests:
                logger.warning('Rate limit exceeded for %s', key)
                return False

            self._counters[key] = (count + 1, reset_at)
            return True

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._counters.items() if now > reset_at]
        for key in expired:
            del self._counters[key]


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.headers.get('x-real-ip') or 'unknown'
