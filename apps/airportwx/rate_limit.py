"""Fixed-window request throttling backed by Django's cache."""

import hashlib
import logging
from typing import Optional

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Allow at most max_requests per client key in each window.

    The window starts with a client's first request and the counter expires
    with it. Counters live in the default cache, so limits are per cache
    backend (per process with LocMemCache).
    """

    def __init__(self, prefix: str = 'weather_api', max_requests: Optional[int] = None, window: Optional[int] = None):
        self.prefix = prefix
        self.max_requests = max_requests or getattr(settings, 'WEATHER_RATE_LIMIT_REQUESTS', 60)
        self.window = window or getattr(settings, 'WEATHER_RATE_LIMIT_WINDOW', 60)

    def _cache_key(self, client_key: str) -> str:
        digest = hashlib.md5(str(client_key).encode('utf-8')).hexdigest()
        return f"rate_limit_{self.prefix}_{digest}"

    def allow(self, client_key: str) -> bool:
        """Count a request and return False once the window's quota is used."""
        key = self._cache_key(client_key)
        if cache.add(key, 1, timeout=self.window):
            return True
        try:
            count = cache.incr(key)
        except ValueError:
            # Window expired between add() and incr()
            cache.set(key, 1, timeout=self.window)
            return True
        return count <= self.max_requests

    def remaining(self, client_key: str) -> int:
        count = cache.get(self._cache_key(client_key), 0)
        return max(0, self.max_requests - count)
