"""Login throttling behind a small interface so deployments can swap the store.

The default keeps counters in Django's cache. With the local-memory backend
every process counts on its own; point ``CACHES`` at Redis or Memcached when
running more than one instance.
"""
from django.conf import settings
from django.core.cache import caches
from django.utils.module_loading import import_string


class RateLimiter:
    def hit(self, key: str, limit: int, window: int) -> bool:
        """Count one attempt for ``key``; False once ``limit`` is exceeded within ``window`` seconds."""
        raise NotImplementedError

    def reset(self, key: str) -> None:
        raise NotImplementedError


class CacheRateLimiter(RateLimiter):
    def __init__(self, cache_alias="default", prefix="ratelimit"):
        self.cache = caches[cache_alias]
        self.prefix = prefix

    def _key(self, key):
        return f"{self.prefix}:{key}"

    def hit(self, key, limit, window):
        cache_key = self._key(key)
        # Fixed window: the first attempt starts it
        self.cache.add(cache_key, 0, timeout=window)
        try:
            count = self.cache.incr(cache_key)
        except ValueError:
            # Expired between add() and incr()
            self.cache.set(cache_key, 1, timeout=window)
            count = 1
        return count <= limit

    def reset(self, key):
        self.cache.delete(self._key(key))


def get_rate_limiter() -> RateLimiter:
    return import_string(settings.RATE_LIMITER_CLASS)()
