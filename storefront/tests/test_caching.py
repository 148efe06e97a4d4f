from django.test import SimpleTestCase

from storefront.caching import CachedValue


class CachedValueTests(SimpleTestCase):
    def setUp(self):
        self.now = 100.0
        self.calls = 0

    def _load(self):
        self.calls += 1
        return self.calls

    def test_reloads_after_ttl(self):
        value = CachedValue(self._load, ttl=30, clock=lambda: self.now)

        self.assertEqual(value.get(), 1)
        self.now += 29
        self.assertEqual(value.get(), 1)
        self.now += 1
        self.assertEqual(value.get(), 2)

    def test_invalidate(self):
        value = CachedValue(self._load, ttl=30, clock=lambda: self.now)
        value.get()
        value.invalidate()
        self.assertEqual(value.get(), 2)

    def test_loader_errors_are_not_cached(self):
        outcomes = [RuntimeError("db down"), "ready"]

        def load():
            result = outcomes.pop(0)
            if isinstance(result, Exception):
                raise result
            return result

        value = CachedValue(load, ttl=30, clock=lambda: self.now)
        with self.assertRaises(RuntimeError):
            value.get()
        self.assertEqual(value.get(), "ready")
