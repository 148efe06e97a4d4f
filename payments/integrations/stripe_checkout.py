import logging

import stripe
from django.conf import settings

from storefront.errors import ConflictError, GatewayError, ValidationError

from ..currency import convert_for_gateway, ensure_stripe_minimum
from ..gateway_data import STRIPE
from .base import CaptureResult, GatewayClient, RemoteOrder, now_iso

logger = logging.getLogger(__name__)


def _intent_id(value):
    if isinstance(value, str) or value is None:
        return value
    return value.get("id")


class StripeClient(GatewayClient):
    provider = STRIPE

    def __init__(self, secret_key=None, webhook_secret=None):
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET

    def _ensure_configured(self):
        if not (self.secret_key or "").strip():
            raise GatewayError(
                "Stripe payment is not available. Please use bank transfer or PayPal.",
                provider=self.provider,
            )

    def _error(self, action: str, exc) -> GatewayError:
        status = getattr(exc, "http_status", None)
        logger.error("Stripe %s failed: status=%s code=%s", action, status, getattr(exc, "code", None))
        return GatewayError(
            f"Stripe {action} failed: {getattr(exc, 'user_message', None) or exc.__class__.__name__}",
            provider=self.provider,
            provider_status=status,
        )

    def create_remote_order(self, order, base_url):
        self._ensure_configured()
        ensure_stripe_minimum(order.total, order.currency)

        line_items = []
        for item in order.items.all():
            unit = convert_for_gateway(item.unit_price, order.currency)
            if unit.minor_units <= 0:
                raise ValidationError(f"Invalid price for {item.product_name}")
            line_items.append({
                "price_data": {
                    "currency": unit.currency.lower(),
                    "product_data": {"name": item.product_name},
                    "unit_amount": unit.minor_units,
                },
                "quantity": item.quantity,
            })
        if not line_items:
            raise ValidationError("Order has no items")

        metadata = {"orderId": str(order.pk), "orderNumber": order.order_number, "userId": str(order.user_id)}
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "client_reference_id": str(order.pk),
            "success_url": f"{base_url}/order/success?session_id={{CHECKOUT_SESSION_ID}}&order_id={order.pk}",
            "cancel_url": f"{base_url}/order/{order.pk}/payment?stripe=cancelled",
        }
        if order.customer_email:
            params["customer_email"] = order.customer_email

        try:
            session = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        except stripe.StripeError as e:
            raise self._error("checkout", e)

        logger.info(
            "Stripe session %s created for %s: %s %s",
            session.get("id"), order.order_number, session.get("amount_total"), session.get("currency"),
        )
        return RemoteOrder(
            external_id=session["id"],
            redirect_url=session.get("url") or "",
            data={
                "session_id": session["id"],
                "payment_intent_id": _intent_id(session.get("payment_intent")),
                "checkout_url": session.get("url"),
                "amount_total": session.get("amount_total"),
                "currency": session.get("currency"),
                "created_at": now_iso(),
            },
        )

    def session_result(self, session, order_id=None) -> CaptureResult:
        """Interpret a Checkout Session, fetched or delivered by a webhook."""
        metadata = session.get("metadata") or {}
        if order_id is not None and metadata.get("orderId") not in (None, str(order_id)):
            raise ConflictError("Stripe session belongs to another order")

        payment_status = session.get("payment_status") or ""
        intent_id = _intent_id(session.get("payment_intent")) or ""
        completed = payment_status == "paid"
        expired = session.get("status") == "expired"
        fields = {
            "session_id": session.get("id"),
            "payment_status": payment_status,
            "amount_total": session.get("amount_total"),
            "currency": session.get("currency"),
        }
        if intent_id:
            fields["payment_intent_id"] = intent_id
        if completed:
            fields["completed_at"] = now_iso()
        elif expired:
            fields["expired_at"] = now_iso()
        return CaptureResult(
            completed=completed,
            external_capture_id=intent_id,
            raw_status=payment_status or session.get("status") or "",
            failed=expired,
            error="Checkout session expired" if expired else "",
            data=fields,
        )

    def _retrieve(self, session_id):
        self._ensure_configured()
        try:
            return stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise self._error("session lookup", e)

    def capture(self, external_token, order_id):
        # Checkout captures on its own; confirming means reading the session back
        return self.session_result(self._retrieve(external_token), order_id)

    def sync(self, reference, order_id):
        return self.session_result(self._retrieve(reference), order_id)

    def parse_webhook(self, payload: bytes, signature: str):
        if not self.webhook_secret:
            raise GatewayError("Stripe webhook secret not configured", provider=self.provider)
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid webhook payload")
        except stripe.SignatureVerificationError:
            logger.warning("Stripe webhook signature verification failed")
            raise ValidationError("Invalid webhook signature")
