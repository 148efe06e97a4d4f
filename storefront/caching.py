import threading
import time


class CachedValue:
    """A single value recomputed by ``loader`` once ``ttl`` seconds have passed.

    ``clock`` must be monotonic; tests pass a fake one.
    """

    _MISSING = object()

    def __init__(self, loader, ttl: float, clock=None):
        self._loader = loader
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._value = self._MISSING
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def get(self):
        with self._lock:
            now = self._clock()
            if self._value is self._MISSING or now >= self._expires_at:
                self._value = self._loader()
                self._expires_at = now + self._ttl
            return self._value

    def invalidate(self) -> None:
        with self._lock:
            self._value = self._MISSING
            self._expires_at = 0.0
