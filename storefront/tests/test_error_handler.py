from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase, TestCase

from storefront.errors import ConflictError, GatewayError
from storefront.middleware import ApiErrorMiddleware


class ErrorHandlerTests(SimpleTestCase):
    def test_unknown_url_returns_json_404(self):
        response = self.client.get("/this-url-does-not-exist/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"code": "not_found", "message": "Not found"})


class ApiErrorMiddlewareTests(SimpleTestCase):
    def setUp(self):
        self.middleware = ApiErrorMiddleware(lambda request: HttpResponse())
        self.request = RequestFactory().post("/orders/1/cancel")

    def test_domain_error_keeps_status(self):
        resp = self.middleware.process_exception(self.request, ConflictError("Order already paid"))
        self.assertEqual(resp.status_code, 400)
        self.assertJSONEqual(resp.content, {"code": "conflict", "message": "Order already paid"})

    def test_gateway_error_reports_provider(self):
        error = GatewayError("PayPal is unavailable", provider="PAYPAL", provider_status=503)
        with self.assertLogs("storefront.middleware", level="WARNING"):
            resp = self.middleware.process_exception(self.request, error)
        self.assertEqual(resp.status_code, 502)
        self.assertJSONEqual(resp.content, {
            "code": "gateway_error",
            "message": "PayPal is unavailable",
            "provider": "PAYPAL",
            "providerStatus": 503,
            "retryable": True,
        })

    def test_unexpected_error_is_hidden(self):
        with self.assertLogs("storefront.middleware", level="ERROR") as logs:
            resp = self.middleware.process_exception(self.request, KeyError("secret_column"))
        self.assertEqual(resp.status_code, 500)
        self.assertNotIn(b"secret_column", resp.content)
        self.assertIn("Unhandled error on POST /orders/1/cancel", logs.output[0])


class HealthTests(TestCase):
    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.json(), {"status": "ok", "database": True})
