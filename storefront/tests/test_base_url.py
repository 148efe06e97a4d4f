from django.test import RequestFactory, SimpleTestCase, override_settings

from storefront.base_url import get_base_url, is_auto_detected


class BaseUrlTests(SimpleTestCase):
    @override_settings(PUBLIC_BASE_URL="https://shop.example.com/")
    def test_configured_url_wins(self):
        request = RequestFactory().get("/", HTTP_HOST="testserver")
        self.assertEqual(get_base_url(request), "https://shop.example.com")
        self.assertFalse(is_auto_detected())

    @override_settings(PUBLIC_BASE_URL="https://YOUR-DOMAIN.com")
    def test_placeholder_falls_back_to_forwarded_headers(self):
        request = RequestFactory().get(
            "/", HTTP_X_FORWARDED_HOST="store.test, proxy.internal", HTTP_X_FORWARDED_PROTO="https,http"
        )
        self.assertEqual(get_base_url(request), "https://store.test")
        self.assertTrue(is_auto_detected())

    @override_settings(PUBLIC_BASE_URL="")
    def test_no_request(self):
        self.assertEqual(get_base_url(), "http://localhost:8000")
