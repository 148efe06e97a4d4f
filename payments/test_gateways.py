import hashlib
import hmac
import json
import time
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

import requests
import stripe
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from audit.models import AuditAction, AuditLogEntry
from orders import services
from orders.models import Order
from storefront.tests.factories import make_order, make_product, make_user, proof_image

from .integrations.base import CaptureResult


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data if data is not None else {}
        self.text = json.dumps(self._data)

    def json(self):
        return self._data


TOKEN = FakeResponse(200, {"access_token": "A21-token", "expires_in": 32400})


def paypal_created(order_id="PP-1"):
    return FakeResponse(201, {
        "id": order_id,
        "status": "CREATED",
        "links": [
            {"rel": "self", "href": f"https://api-m.sandbox.paypal.com/v2/checkout/orders/{order_id}"},
            {"rel": "approve", "href": f"https://www.sandbox.paypal.com/checkoutnow?token={order_id}"},
        ],
    })


def paypal_captured(order_id="PP-1", capture_id="CAP-9"):
    return FakeResponse(201, {
        "id": order_id,
        "status": "COMPLETED",
        "purchase_units": [{"payments": {"captures": [{"id": capture_id, "status": "COMPLETED"}]}}],
    })


class PayPalFlowTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.order = make_order(self.user, [make_product(price=150000)])
        self.client.force_login(self.user)

    def _create(self):
        return self.client.post(
            "/payments/paypal/create-order",
            data=json.dumps({"orderId": self.order.pk}),
            content_type="application/json",
        )

    def test_idr_order_paid_through_paypal_in_usd(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")

        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, paypal_created()]) as post:
            resp = self._create()

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["externalId"], "PP-1")
        self.assertIn("checkoutnow", resp.json()["approvalUrl"])
        payload = post.call_args_list[1].kwargs["json"]
        unit = payload["purchase_units"][0]
        self.assertEqual(unit["amount"], {"currency_code": "USD", "value": "9.68"})
        self.assertEqual(unit["custom_id"], str(self.order.pk))
        self.assertEqual(
            payload["application_context"]["return_url"],
            f"https://shop.example.com/payments/paypal/capture?orderId={self.order.pk}",
        )

        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, paypal_captured()]):
            resp = self.client.get(f"/payments/paypal/capture?token=PP-1&orderId={self.order.pk}")

        self.assertEqual(resp.status_code, 302)
        self.assertIn("/order/success", resp["Location"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual((self.order.currency, self.order.total), ("IDR", 150000))
        data = self.order.typed_gateway_data()
        self.assertEqual(data.paypal_order_id, "PP-1")
        self.assertEqual(data.capture_id, "CAP-9")
        self.assertEqual(data.charged_currency, "USD")
        self.assertEqual(data.charged_amount, "9.68")

    def test_repeated_redirect_does_not_capture_again(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")
        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, paypal_created()]):
            self._create()
        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, paypal_captured()]):
            self.client.get(f"/payments/paypal/capture?token=PP-1&orderId={self.order.pk}")

        with patch("payments.integrations.paypal.requests.post") as post:
            resp = self.client.get(f"/payments/paypal/capture?token=PP-1&orderId={self.order.pk}")

        post.assert_not_called()
        self.assertEqual(resp.status_code, 302)
        self.assertEqual(AuditLogEntry.objects.filter(action=AuditAction.PAYMENT_CAPTURE).count(), 1)

    def test_declined_capture_leaves_order_payable(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")
        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, paypal_created()]):
            self._create()
        declined = FakeResponse(422, {"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "INSTRUMENT_DECLINED"}]})
        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, declined]):
            resp = self.client.get(f"/payments/paypal/capture?token=PP-1&orderId={self.order.pk}")

        self.assertIn("paypal=failed", resp["Location"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.FAILED)
        self.assertIn("INSTRUMENT_DECLINED", self.order.payment_last_error)

    def test_pending_capture_reason_is_encoded(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")
        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, paypal_created()]):
            self._create()
        pending = CaptureResult(completed=False, raw_status="PENDING&next=/evil")
        with patch("payments.integrations.paypal.PayPalClient.capture", return_value=pending):
            resp = self.client.get(f"/payments/paypal/capture?token=PP-1&orderId={self.order.pk}")

        self.assertEqual(
            resp["Location"], f"/order/{self.order.pk}/payment?paypal=failed&reason=PENDING%26next%3D%2Fevil"
        )

    def test_timeout_is_a_gateway_error(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")
        with patch("payments.integrations.paypal.requests.post", side_effect=requests.Timeout("slow")):
            resp = self._create()

        self.assertEqual(resp.status_code, 502)
        body = resp.json()
        self.assertEqual(body["provider"], "PAYPAL")
        self.assertTrue(body["retryable"])
        self.assertNotIn("paypal-secret", resp.content.decode())
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(self.order.gateway_reference, "")

    def test_provider_error_status_is_reported(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")
        with patch("payments.integrations.paypal.requests.post", side_effect=[FakeResponse(401, {"error": "invalid_client"})]):
            resp = self._create()
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["providerStatus"], 401)

    def test_wrong_method_rejected_before_calling_paypal(self):
        with patch("payments.integrations.paypal.requests.post") as post:
            resp = self._create()
        post.assert_not_called()
        self.assertEqual(resp.status_code, 400)

    def test_capture_after_switch_to_bank_transfer_is_refused(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")
        with patch("payments.integrations.paypal.requests.post", side_effect=[TOKEN, paypal_created()]):
            self._create()
        services.change_payment_method(self.order.pk, user=self.user, new_method="bank_transfer")

        with patch("payments.integrations.paypal.requests.post") as post:
            resp = self.client.get(f"/payments/paypal/capture?token=PP-1&orderId={self.order.pk}")

        post.assert_not_called()
        self.assertIn("paypal=error", resp["Location"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)


def stripe_session(order, session_id="cs_test_1", **extra):
    data = {
        "id": session_id,
        "object": "checkout.session",
        "url": f"https://checkout.stripe.com/c/pay/{session_id}",
        "payment_intent": None,
        "payment_status": "unpaid",
        "status": "open",
        "amount_total": order.total * 100,
        "currency": "idr",
        "metadata": {"orderId": str(order.pk), "orderNumber": order.order_number},
    }
    data.update(extra)
    return data


class StripeCheckoutTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.order = make_order(self.user, [make_product(price=150000)], method="stripe")
        self.client.force_login(self.user)

    def _checkout(self):
        return self.client.post(
            "/payments/stripe/checkout", data=json.dumps({"orderId": self.order.pk}), content_type="application/json"
        )

    def test_session_created_in_minor_units(self):
        with patch("payments.integrations.stripe_checkout.stripe.checkout.Session.create",
                   return_value=stripe_session(self.order)) as create:
            resp = self._checkout()

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["sessionId"], "cs_test_1")
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["api_key"], "sk_test_123")
        self.assertEqual(kwargs["line_items"][0]["price_data"]["unit_amount"], 15000000)
        self.assertEqual(kwargs["line_items"][0]["price_data"]["currency"], "idr")
        self.assertEqual(kwargs["metadata"]["orderId"], str(self.order.pk))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PROCESSING)
        self.assertEqual(self.order.gateway_reference, "cs_test_1")
        self.assertEqual(self.order.typed_gateway_data().checkout_url, "https://checkout.stripe.com/c/pay/cs_test_1")

    def test_below_minimum_rejected(self):
        order = make_order(self.user, [make_product(price=5000)], method="stripe")
        with patch("payments.integrations.stripe_checkout.stripe.checkout.Session.create") as create:
            resp = self.client.post(
                "/payments/stripe/checkout", data=json.dumps({"orderId": order.pk}), content_type="application/json"
            )
        create.assert_not_called()
        self.assertEqual(resp.status_code, 400)

    def test_stripe_outage_is_a_gateway_error(self):
        with patch("payments.integrations.stripe_checkout.stripe.checkout.Session.create",
                   side_effect=stripe.APIConnectionError("connection reset")):
            resp = self._checkout()
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["provider"], "STRIPE")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)

    @override_settings(STRIPE_SECRET_KEY="")
    def test_not_configured(self):
        resp = self._checkout()
        self.assertEqual(resp.status_code, 502)


class StripeWebhookTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.order = make_order(self.user, [make_product(price=150000)], method="stripe")
        services.begin_gateway_checkout(
            self.order.pk, provider="STRIPE", reference="cs_test_1", data={"session_id": "cs_test_1"}
        )

    def _deliver(self, event):
        with patch("payments.integrations.stripe_checkout.stripe.Webhook.construct_event", return_value=event):
            return self.client.post(
                "/webhooks/stripe", data=b"{}", content_type="application/json", HTTP_STRIPE_SIGNATURE="t=1,v1=x"
            )

    def _event(self, event_type, obj):
        return {"id": "evt_1", "type": event_type, "data": {"object": obj}}

    def test_completed_session_marks_paid_once(self):
        session = stripe_session(self.order, payment_status="paid", status="complete", payment_intent="pi_1")
        event = self._event("checkout.session.completed", session)

        self.assertEqual(self._deliver(event).status_code, 200)
        self.assertEqual(self._deliver(event).status_code, 200)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        data = self.order.typed_gateway_data()
        self.assertEqual(data.session_id, "cs_test_1")
        self.assertEqual(data.payment_intent_id, "pi_1")
        self.assertEqual(AuditLogEntry.objects.filter(action=AuditAction.PAYMENT_CAPTURE).count(), 1)

    def test_expired_session(self):
        session = stripe_session(self.order, status="expired")
        self._deliver(self._event("checkout.session.expired", session))
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.EXPIRED)
        self.assertIsNotNone(self.order.typed_gateway_data().expired_at)

    def test_payment_failed(self):
        intent = {
            "id": "pi_1",
            "object": "payment_intent",
            "metadata": {"orderId": str(self.order.pk)},
            "last_payment_error": {"message": "Your card was declined.", "code": "card_declined"},
        }
        self._deliver(self._event("payment_intent.payment_failed", intent))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.FAILED)
        self.assertEqual(self.order.payment_last_error, "Your card was declined.")
        self.assertEqual(self.order.typed_gateway_data().error_code, "card_declined")

    def test_session_for_replaced_checkout_is_acknowledged_but_ignored(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="bank_transfer")
        session = stripe_session(self.order, payment_status="paid", status="complete")
        resp = self._deliver(self._event("checkout.session.completed", session))
        self.assertEqual(resp.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)

    def test_bad_signature(self):
        with patch("payments.integrations.stripe_checkout.stripe.Webhook.construct_event",
                   side_effect=stripe.SignatureVerificationError("No signatures found", "t=1,v1=x")):
            resp = self.client.post("/webhooks/stripe", data=b"{}", content_type="application/json",
                                    HTTP_STRIPE_SIGNATURE="t=1,v1=x")
        self.assertEqual(resp.status_code, 400)

    def test_real_signature_is_accepted(self):
        payload = json.dumps({"id": "evt_2", "object": "event", "type": "customer.created",
                              "data": {"object": {"id": "cus_1", "object": "customer"}}})
        timestamp = int(time.time())
        signature = hmac.new(b"whsec_test", f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
        resp = self.client.post("/webhooks/stripe", data=payload, content_type="application/json",
                                HTTP_STRIPE_SIGNATURE=f"t={timestamp},v1={signature}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"received": True})


class AdminPaymentReviewTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.admin = make_user("admin", staff=True)
        self.order = make_order(self.user)
        self.proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())

    def test_customer_cannot_list(self):
        self.client.force_login(self.user)
        self.assertEqual(self.client.get("/admin/payments").status_code, 403)

    def test_submitted_first(self):
        other = make_order(self.user)
        rejected = services.submit_payment_proof(other.pk, user=self.user, evidence=proof_image())
        services.reject_payment_proof(rejected.pk, reviewer=self.admin, reason="blurry")

        self.client.force_login(self.admin)
        payments = self.client.get("/admin/payments").json()["payments"]

        self.assertEqual([p["status"] for p in payments], ["SUBMITTED", "REJECTED"])
        self.assertEqual(payments[0]["order"]["orderNumber"], self.order.order_number)

    def test_approve_twice(self):
        self.client.force_login(self.admin)
        first = self.client.post(f"/admin/payments/{self.proof.pk}/approve").json()
        second = self.client.post(f"/admin/payments/{self.proof.pk}/approve").json()
        self.assertTrue(first["changed"])
        self.assertFalse(second["changed"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_reject(self):
        self.client.force_login(self.admin)
        resp = self.client.post(
            f"/admin/payments/{self.proof.pk}/reject",
            data=json.dumps({"reason": "illegible"}),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["payment"]["rejectionReason"], "illegible")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)

    def test_unknown_proof(self):
        self.client.force_login(self.admin)
        self.assertEqual(self.client.post("/admin/payments/99999/approve").status_code, 404)


class ReconcileCommandTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.order = make_order(self.user, method="paypal")
        services.begin_gateway_checkout(self.order.pk, provider="PAYPAL", reference="PP-7")
        Order.objects.filter(pk=self.order.pk).update(updated_at=timezone.now() - timedelta(minutes=10))

    def test_completed_remote_order_is_settled(self):
        result = CaptureResult(completed=True, external_capture_id="CAP-7", raw_status="COMPLETED",
                               data={"capture_id": "CAP-7", "status": "COMPLETED"})
        with patch("payments.integrations.paypal.PayPalClient.sync", return_value=result) as sync:
            call_command("reconcile_gateway_orders", "--sleep", "0", stdout=StringIO())

        sync.assert_called_once_with("PP-7", self.order.pk)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual(self.order.typed_gateway_data().capture_id, "CAP-7")

    def test_pending_remote_order_untouched(self):
        result = CaptureResult(completed=False, raw_status="PAYER_ACTION_REQUIRED")
        with patch("payments.integrations.paypal.PayPalClient.sync", return_value=result):
            call_command("reconcile_gateway_orders", "--sleep", "0", stdout=StringIO())
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PROCESSING)
