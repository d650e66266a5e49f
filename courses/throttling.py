"""
Fixed window rate limiting for the public, unauthenticated endpoints.

Counters live in Django's cache. With the default local-memory cache they are
per process and reset on restart, which is fine for a single instance; point
``REDIS_CACHE_URL`` at a shared Redis before running several web processes.
"""
import time
from dataclasses import dataclass

from django.conf import settings
from django.core.cache import cache as default_cache
from rest_framework.throttling import BaseThrottle


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int


class FixedWindowRateLimiter:
    """
    Allow ``limit`` hits per key in a window opened by the key's first hit.

    The limit is looked up by the key's prefix (the part before the first
    colon), falling back to ``default_limit``. An entry is evicted when its
    window expires.
    """

    def __init__(self, window_seconds, limits=None, default_limit=5, cache=None, clock=time.time):
        self.window_seconds = window_seconds
        self.limits = dict(limits or {})
        self.default_limit = default_limit
        self.cache = cache or default_cache
        self.clock = clock

    def limit_for(self, key):
        return self.limits.get(key.split(':', 1)[0], self.default_limit)

    def check(self, key):
        now = self.clock()
        entry = self.cache.get(self._cache_key(key))

        if entry is None or now >= entry['reset_at']:
            entry = {'count': 1, 'reset_at': now + self.window_seconds}
            self.cache.set(self._cache_key(key), entry, timeout=self.window_seconds)
            return RateLimitDecision(allowed=True, retry_after=0)

        if entry['count'] >= self.limit_for(key):
            return RateLimitDecision(allowed=False, retry_after=max(int(entry['reset_at'] - now + 0.999), 1))

        entry['count'] += 1
        self.cache.set(self._cache_key(key), entry, timeout=max(int(entry['reset_at'] - now), 1))
        return RateLimitDecision(allowed=True, retry_after=0)

    def clear(self, key):
        self.cache.delete(self._cache_key(key))

    def _cache_key(self, key):
        return f'ratelimit:{key}'


def build_rate_limiter():
    return FixedWindowRateLimiter(
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        limits=settings.RATE_LIMITS,
        default_limit=settings.RATE_LIMIT_DEFAULT,
    )


class FixedWindowThrottle(BaseThrottle):
    """DRF throttle backed by FixedWindowRateLimiter, keyed by view scope and client IP."""

    limiter_factory = staticmethod(build_rate_limiter)

    def __init__(self):
        self.limiter = self.limiter_factory()
        self.decision = None

    def allow_request(self, request, view):
        scope = getattr(view, 'throttle_scope', None) or 'default'
        self.decision = self.limiter.check(f'{scope}:{self.get_ident(request)}')
        return self.decision.allowed

    def wait(self):
        if self.decision is None:
            return None
        return self.decision.retry_after
