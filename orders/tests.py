import json
from unittest.mock import patch

from django.core import mail
from django.db import DatabaseError
from django.test import TestCase

from audit.models import AuditAction, AuditLogEntry
from storefront.errors import ConflictError, PermissionDeniedError, ValidationError
from storefront.tests.factories import make_order, make_product, make_user, proof_image

from . import services
from .models import Order, PaymentProof


class CreateOrderTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")

    def test_items_are_snapshotted(self):
        product = make_product(price=150000)
        order = services.create_order(user=self.user, items=[(product.pk, 2)])

        product.price = 999000
        product.name = "Renamed"
        product.save()
        order.refresh_from_db()
        item = order.items.get()

        self.assertEqual(order.total, 300000)
        self.assertEqual(item.unit_price, 150000)
        self.assertEqual(item.product_name, "Lightroom Presets")
        self.assertEqual(order.items_total, order.total)

    def test_new_order_awaits_payment(self):
        order = make_order(self.user)
        self.assertEqual(order.status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.currency, "IDR")
        self.assertTrue(order.order_number.startswith("MPR-"))
        self.assertTrue(AuditLogEntry.objects.filter(action=AuditAction.ORDER_CREATE, entity_id=str(order.pk)).exists())

    def test_unpublished_product_rejected(self):
        draft = make_product(status="DRAFT")
        with self.assertRaises(ValidationError):
            services.create_order(user=self.user, items=[(draft.pk, 1)])

    def test_sold_out_product_rejected(self):
        product = make_product(is_sold_out=True)
        with self.assertRaises(ValidationError):
            services.create_order(user=self.user, items=[(product.pk, 1)])

    def test_unknown_payment_method_rejected(self):
        with self.assertRaises(ValidationError):
            services.create_order(user=self.user, items=[(make_product().pk, 1)], payment_method="crypto")


class ChangePaymentMethodTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.order = make_order(self.user, method="PAYPAL")

    def test_switch_clears_previous_gateway_state(self):
        services.begin_gateway_checkout(
            self.order.pk, provider="PAYPAL", reference="PP-1", data={"paypal_order_id": "PP-1"}
        )
        Order.objects.filter(pk=self.order.pk).update(payment_last_error="declined")

        order = services.change_payment_method(self.order.pk, user=self.user, new_method="bank_transfer")

        self.assertEqual(order.payment_method, Order.PaymentMethod.BANK_TRANSFER)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.gateway_reference, "")
        self.assertIsNone(order.gateway_data)
        self.assertEqual(order.payment_last_error, "")
        self.assertEqual(order.status, Order.Status.PENDING_PAYMENT)

    def test_not_owner_forbidden(self):
        with self.assertRaises(PermissionDeniedError):
            services.change_payment_method(self.order.pk, user=make_user("other"), new_method="stripe")

    def test_blocked_once_paid(self):
        Order.objects.filter(pk=self.order.pk).update(status=Order.Status.PAID, payment_status=Order.PaymentStatus.PAID)
        with self.assertRaises(ConflictError):
            services.change_payment_method(self.order.pk, user=self.user, new_method="stripe")

    def test_blocked_when_payment_paid_even_if_status_lags(self):
        Order.objects.filter(pk=self.order.pk).update(payment_status=Order.PaymentStatus.PAID)
        with self.assertRaises(ConflictError):
            services.change_payment_method(self.order.pk, user=self.user, new_method="stripe")

    def test_endpoint_status_codes(self):
        url = f"/orders/{self.order.pk}/payment-method"
        self.client.force_login(self.user)
        resp = self.client.post(url, data=json.dumps({"newMethod": "bitcoin"}), content_type="application/json")
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(url, data=json.dumps({"newMethod": "stripe"}), content_type="application/json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["order"]["paymentMethod"], "STRIPE")

        self.client.force_login(make_user("intruder"))
        resp = self.client.post(url, data=json.dumps({"newMethod": "paypal"}), content_type="application/json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["code"], "forbidden")


class PaymentProofTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.admin = make_user("admin", staff=True)
        self.order = make_order(self.user)

    def test_submit_moves_order_to_review(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image(), note="BCA")
        self.order.refresh_from_db()

        self.assertEqual(proof.status, PaymentProof.Status.SUBMITTED)
        self.assertEqual(self.order.status, Order.Status.PAYMENT_REVIEW)
        self.assertEqual(self.order.typed_gateway_data().proof_id, proof.pk)
        self.assertTrue(proof.evidence.name.startswith(f"payment-proofs/{self.order.pk}/"))

    def test_rejects_wrong_file_type(self):
        with self.assertRaises(ValidationError):
            services.submit_payment_proof(
                self.order.pk, user=self.user, evidence=proof_image("proof.pdf", "application/pdf")
            )

    def test_rejects_large_file(self):
        big = proof_image(data=b"\x00" * (services.MAX_PROOF_SIZE + 1))
        with self.assertRaises(ValidationError):
            services.submit_payment_proof(self.order.pk, user=self.user, evidence=big)

    def test_only_one_outstanding_proof(self):
        services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        with self.assertRaises(ConflictError):
            services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        self.assertEqual(self.order.payment_proofs.count(), 1)

    def test_method_change_withdraws_outstanding_proof(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        services.change_payment_method(self.order.pk, user=self.user, new_method="bank_transfer")
        proof.refresh_from_db()

        self.assertEqual(proof.status, PaymentProof.Status.REJECTED)
        self.assertEqual(proof.rejection_reason, services.PROOF_WITHDRAWN_REASON)
        with self.assertRaises(ConflictError):
            services.approve_payment_proof(proof.pk, reviewer=self.admin)

        again = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        self.assertEqual(again.status, PaymentProof.Status.SUBMITTED)

    def test_proof_cannot_pay_order_moved_to_gateway(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        services.change_payment_method(self.order.pk, user=self.user, new_method="paypal")
        services.begin_gateway_checkout(self.order.pk, provider="PAYPAL", reference="PP-1")

        with self.assertRaises(ConflictError):
            services.approve_payment_proof(proof.pk, reviewer=self.admin)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PROCESSING)
        self.assertEqual(self.order.gateway_reference, "PP-1")

    def test_approval_checks_current_method(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        # Method switched behind the service layer, proof still outstanding
        Order.objects.filter(pk=self.order.pk).update(payment_method=Order.PaymentMethod.PAYPAL)

        with self.assertRaises(ConflictError):
            services.approve_payment_proof(proof.pk, reviewer=self.admin)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_reject_then_resubmit(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())

        proof, changed = services.reject_payment_proof(proof.pk, reviewer=self.admin, reason="illegible")
        self.order.refresh_from_db()

        self.assertTrue(changed)
        self.assertEqual(proof.status, PaymentProof.Status.REJECTED)
        self.assertEqual(proof.rejection_reason, "illegible")
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)

        again = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        self.assertEqual(again.status, PaymentProof.Status.SUBMITTED)
        self.assertEqual(self.order.payment_proofs.count(), 2)

    def test_reject_requires_reason(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        with self.assertRaises(ValidationError):
            services.reject_payment_proof(proof.pk, reviewer=self.admin, reason="  ")

    def test_approve_marks_paid_once(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())

        with self.captureOnCommitCallbacks(execute=True):
            _, changed = services.approve_payment_proof(proof.pk, reviewer=self.admin)
        _, changed_again = services.approve_payment_proof(proof.pk, reviewer=self.admin)
        self.order.refresh_from_db()

        self.assertTrue(changed)
        self.assertFalse(changed_again)
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PAID)
        self.assertIsNotNone(self.order.paid_at)
        self.assertEqual(AuditLogEntry.objects.filter(action=AuditAction.PAYMENT_APPROVE).count(), 1)
        self.assertTrue(any(self.user.email in m.to for m in mail.outbox))

    def test_approve_and_reject_exclude_each_other(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        services.approve_payment_proof(proof.pk, reviewer=self.admin)
        with self.assertRaises(ConflictError):
            services.reject_payment_proof(proof.pk, reviewer=self.admin, reason="late")

        other = make_order(self.user)
        proof = services.submit_payment_proof(other.pk, user=self.user, evidence=proof_image())
        services.reject_payment_proof(proof.pk, reviewer=self.admin, reason="blurry")
        with self.assertRaises(ConflictError):
            services.approve_payment_proof(proof.pk, reviewer=self.admin)

    def test_customer_cannot_review(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        with self.assertRaises(PermissionDeniedError):
            services.approve_payment_proof(proof.pk, reviewer=self.user)

    def test_approval_survives_audit_outage(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())

        with patch("audit.recorder.AuditLogEntry.objects.create", side_effect=DatabaseError("audit down")), \
                self.assertLogs("audit.recorder", level="ERROR"):
            _, changed = services.approve_payment_proof(proof.pk, reviewer=self.admin)
        self.order.refresh_from_db()

        self.assertTrue(changed)
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertFalse(AuditLogEntry.objects.filter(action=AuditAction.PAYMENT_APPROVE).exists())


class GatewayCaptureTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.order = make_order(self.user, method="PAYPAL")
        services.begin_gateway_checkout(
            self.order.pk, provider="PAYPAL", reference="PP-1", data={"paypal_order_id": "PP-1", "status": "CREATED"}
        )

    def test_checkout_requires_matching_method(self):
        with self.assertRaises(ConflictError):
            services.begin_gateway_checkout(self.order.pk, provider="STRIPE", reference="cs_1")

    def test_capture_is_idempotent(self):
        order, changed = services.confirm_gateway_capture(
            self.order.pk, provider="PAYPAL", reference="PP-1", capture_id="CAP-1", status="COMPLETED"
        )
        paid_at = order.paid_at
        again, changed_again = services.confirm_gateway_capture(
            self.order.pk, provider="PAYPAL", reference="PP-1", capture_id="CAP-2", status="COMPLETED"
        )

        self.assertTrue(changed)
        self.assertFalse(changed_again)
        self.assertEqual(again.paid_at, paid_at)
        self.assertEqual(again.typed_gateway_data().capture_id, "CAP-1")
        self.assertEqual(AuditLogEntry.objects.filter(action=AuditAction.PAYMENT_CAPTURE).count(), 1)

    def test_capture_merges_gateway_data(self):
        order, _ = services.confirm_gateway_capture(
            self.order.pk, provider="PAYPAL", reference="PP-1", capture_id="CAP-1", status="COMPLETED"
        )
        data = order.typed_gateway_data()
        self.assertEqual(data.paypal_order_id, "PP-1")
        self.assertEqual(data.capture_id, "CAP-1")
        self.assertEqual(order.gateway_data["provider"], "PAYPAL")

    def test_capture_after_method_change_rejected(self):
        services.change_payment_method(self.order.pk, user=self.user, new_method="bank_transfer")
        with self.assertRaises(ConflictError):
            services.confirm_gateway_capture(self.order.pk, provider="PAYPAL", reference="PP-1")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING_PAYMENT)

    def test_capture_for_old_checkout_rejected(self):
        services.begin_gateway_checkout(self.order.pk, provider="PAYPAL", reference="PP-2")
        with self.assertRaises(ConflictError):
            services.confirm_gateway_capture(self.order.pk, provider="PAYPAL", reference="PP-1")

    def test_failure_keeps_order_payable(self):
        order = services.record_gateway_failure(
            self.order.pk, provider="PAYPAL", reference="PP-1", error="INSTRUMENT_DECLINED", status="DECLINED"
        )
        self.assertEqual(order.status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(order.payment_status, Order.PaymentStatus.FAILED)
        self.assertEqual(order.payment_last_error, "INSTRUMENT_DECLINED")

        order, changed = services.confirm_gateway_capture(self.order.pk, provider="PAYPAL", reference="PP-1")
        self.assertTrue(changed)


class FulfilmentTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.admin = make_user("admin", staff=True)
        self.order = make_order(self.user)

    def _pay(self):
        proof = services.submit_payment_proof(self.order.pk, user=self.user, evidence=proof_image())
        services.approve_payment_proof(proof.pk, reviewer=self.admin)

    def test_fulfill_requires_payment(self):
        with self.assertRaises(ConflictError):
            services.fulfill_order(self.order.pk, actor=self.admin)

    def test_paid_processing_fulfilled(self):
        self._pay()
        order, _ = services.start_processing(self.order.pk, actor=self.admin)
        self.assertEqual(order.status, Order.Status.PROCESSING)
        order, changed = services.fulfill_order(self.order.pk, actor=self.admin)
        self.assertTrue(changed)
        self.assertEqual(order.status, Order.Status.FULFILLED)
        _, changed = services.fulfill_order(self.order.pk, actor=self.admin)
        self.assertFalse(changed)

    def test_owner_can_cancel_before_payment(self):
        order, changed = services.cancel_order(self.order.pk, actor=self.user)
        self.assertTrue(changed)
        self.assertEqual(order.status, Order.Status.CANCELLED)
        with self.assertRaises(ConflictError):
            services.change_payment_method(self.order.pk, user=self.user, new_method="stripe")

    def test_cancel_after_payment_rejected(self):
        self._pay()
        with self.assertRaises(ConflictError):
            services.cancel_order(self.order.pk, actor=self.admin)

    def test_stranger_cannot_cancel(self):
        with self.assertRaises(PermissionDeniedError):
            services.cancel_order(self.order.pk, actor=make_user("stranger"))

    def test_refund_paid_order(self):
        self._pay()
        order, _ = services.refund_order(self.order.pk, actor=self.admin, reason="duplicate purchase")
        self.assertEqual(order.status, Order.Status.REFUNDED)
        self.assertEqual(order.payment_status, Order.PaymentStatus.REFUNDED)
        entry = AuditLogEntry.objects.get(action=AuditAction.ORDER_REFUND)
        self.assertEqual(entry.metadata["reason"], "duplicate purchase")

    def test_admin_endpoints(self):
        self._pay()
        self.client.force_login(self.user)
        resp = self.client.post(f"/admin/orders/{self.order.pk}/fulfill")
        self.assertEqual(resp.status_code, 403)

        self.client.force_login(self.admin)
        resp = self.client.post(f"/admin/orders/{self.order.pk}/fulfill")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["order"]["status"], "FULFILLED")
        resp = self.client.post(f"/admin/orders/{self.order.pk}/cancel")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "conflict")


class OrderEndpointTests(TestCase):
    def setUp(self):
        self.user = make_user("buyer")
        self.product = make_product(price=50000)

    def test_requires_login(self):
        resp = self.client.get("/orders")
        self.assertEqual(resp.status_code, 401)

    def test_create_and_list(self):
        self.client.force_login(self.user)
        resp = self.client.post(
            "/orders",
            data=json.dumps({"items": [{"productId": self.product.pk, "quantity": 3}], "paymentMethod": "paypal"}),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        body = resp.json()["order"]
        self.assertEqual(body["total"], 150000)
        self.assertEqual(body["paymentMethod"], "PAYPAL")
        self.assertEqual(body["items"][0]["quantity"], 3)

        listing = self.client.get("/orders").json()
        self.assertEqual(listing["total"], 1)

    def test_other_users_order_is_forbidden(self):
        order = make_order(make_user("someone"))
        self.client.force_login(self.user)
        resp = self.client.get(f"/orders/{order.pk}")
        self.assertEqual(resp.status_code, 403)

    def test_upload_proof(self):
        order = make_order(self.user)
        self.client.force_login(self.user)
        resp = self.client.post(f"/orders/{order.pk}/payment-proof", {"file": proof_image(), "note": "paid via BCA"})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["status"], "SUBMITTED")
