import logging
from urllib.parse import urlencode

from django.db.models import Case, IntegerField, Value, When
from django.http import HttpResponseRedirect, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from orders import services
from orders.models import Order, PaymentProof
from orders.serializers import serialize_proof
from storefront.auth import admin_required, api_login_required
from storefront.base_url import get_base_url
from storefront.errors import ConflictError, GatewayError, NotFoundError
from storefront.http import int_param, json_body, require_field

from .gateway_data import PAYPAL, STRIPE
from .integrations import get_gateway
from .integrations.base import now_iso
from .integrations.stripe_checkout import StripeClient

logger = logging.getLogger(__name__)


def _start_checkout(request, provider):
    """Create the remote checkout for the caller's order and remember it."""
    body = json_body(request)
    order = services.get_order_for_user(require_field(body, "orderId", "Order ID is required"), request.user)
    services.ensure_checkout_allowed(order, provider)
    remote = get_gateway(provider).create_remote_order(order, get_base_url(request))
    services.begin_gateway_checkout(
        order.pk,
        provider=provider,
        reference=remote.external_id,
        data=remote.data,
        actor=request.user,
        request=request,
    )
    return remote


@csrf_exempt
@require_POST
@api_login_required
def paypal_create_order_view(request):
    remote = _start_checkout(request, PAYPAL)
    return JsonResponse({
        "externalId": remote.external_id,
        "paypalOrderId": remote.external_id,
        "approvalUrl": remote.redirect_url,
    })


@require_GET
def paypal_capture_view(request):
    """PayPal sends the buyer back here; always answers with a redirect."""
    token = request.GET.get("token", "")
    order_id = request.GET.get("orderId", "")
    if not token or not order_id:
        return HttpResponseRedirect("/account/orders?error=missing_params")

    try:
        order = Order.objects.get(pk=order_id)
    except (Order.DoesNotExist, ValueError):
        return HttpResponseRedirect("/account/orders?error=order_not_found")

    if order.is_paid:
        return HttpResponseRedirect(f"/order/success?order_id={order.pk}")

    try:
        # Never capture money for a checkout the order no longer points at
        services.ensure_capture_allowed(order, PAYPAL, token)
        result = get_gateway(PAYPAL).capture(token, order.pk)
        if result.completed:
            services.confirm_gateway_capture(
                order.pk, provider=PAYPAL, reference=token, request=request, **result.data
            )
            return HttpResponseRedirect(f"/order/success?order_id={order.pk}&paypal=success")
        if result.failed:
            services.record_gateway_failure(
                order.pk, provider=PAYPAL, reference=token, error=result.error, request=request, **result.data
            )
        logger.warning("PayPal capture for %s not completed: %s", order.order_number, result.raw_status)
        query = urlencode({"paypal": "failed", "reason": result.raw_status})
        return HttpResponseRedirect(f"/order/{order.pk}/payment?{query}")
    except (GatewayError, ConflictError) as e:
        logger.warning("PayPal capture for %s failed: %s", order.order_number, e)
        return HttpResponseRedirect(f"/order/{order.pk}/payment?paypal=error")


@csrf_exempt
@require_POST
@api_login_required
def stripe_checkout_view(request):
    remote = _start_checkout(request, STRIPE)
    return JsonResponse({"sessionId": remote.external_id, "url": remote.redirect_url})


# ---------- Stripe webhook ----------

def _order_id_for_session(session):
    return (session.get("metadata") or {}).get("orderId") or session.get("client_reference_id")


def _session_paid(client, session, request):
    order_id = _order_id_for_session(session)
    if not order_id:
        logger.error("Stripe webhook: session %s has no orderId", session.get("id"))
        return
    result = client.session_result(session)
    if not result.completed:
        # Delayed payment methods settle later via async_payment_succeeded
        logger.info("Stripe session %s completed with payment_status=%s", session.get("id"), result.raw_status)
        return
    services.confirm_gateway_capture(
        order_id, provider=STRIPE, reference=session.get("id"), request=request, **result.data
    )


def _session_failed(payment_status, error):
    def handler(client, session, request):
        order_id = _order_id_for_session(session)
        if not order_id:
            logger.error("Stripe webhook: session %s has no orderId", session.get("id"))
            return
        result = client.session_result(session)
        fields = dict(result.data)
        if payment_status == Order.PaymentStatus.FAILED:
            fields.update(failed_at=now_iso(), last_error=error)
        services.record_gateway_failure(
            order_id,
            provider=STRIPE,
            reference=session.get("id"),
            error=error,
            new_status=payment_status,
            request=request,
            **fields,
        )
    return handler


def _intent_failed(client, intent, request):
    last_error = intent.get("last_payment_error") or {}
    message = last_error.get("message") or "Payment failed"
    order_id = (intent.get("metadata") or {}).get("orderId")
    if order_id:
        order = Order.objects.filter(pk=order_id).first()
    else:
        order = Order.objects.filter(gateway_reference=intent.get("id")).first()
    if order is None:
        logger.error("Stripe webhook: could not find order for failed payment %s", intent.get("id"))
        return
    services.record_gateway_failure(
        order.pk,
        provider=STRIPE,
        # The intent carries no session id; it applies to the order's current checkout
        reference=order.gateway_reference,
        error=message,
        request=request,
        payment_intent_id=intent.get("id"),
        failed_at=now_iso(),
        last_error=message,
        error_code=last_error.get("code"),
    )


WEBHOOK_HANDLERS = {
    "checkout.session.completed": _session_paid,
    "checkout.session.async_payment_succeeded": _session_paid,
    "checkout.session.expired": _session_failed(Order.PaymentStatus.EXPIRED, "Checkout session expired"),
    "checkout.session.async_payment_failed": _session_failed(Order.PaymentStatus.FAILED, "Payment failed"),
    "payment_intent.payment_failed": _intent_failed,
}


@csrf_exempt
@require_POST
def stripe_webhook_view(request):
    client = StripeClient()
    event = client.parse_webhook(request.body, request.headers.get("Stripe-Signature", ""))
    handler = WEBHOOK_HANDLERS.get(event["type"])
    if handler is None:
        logger.info("Stripe webhook: ignoring %s", event["type"])
        return JsonResponse({"received": True})
    try:
        handler(client, event["data"]["object"], request)
    except (ConflictError, NotFoundError) as e:
        # Stale or foreign events are acknowledged so Stripe stops retrying them
        logger.warning("Stripe webhook %s %s ignored: %s", event["type"], event.get("id"), e)
    return JsonResponse({"received": True})


# ---------- payment review ----------

@require_GET
@admin_required
def admin_payments_view(request):
    qs = PaymentProof.objects.select_related("order").annotate(
        pending_first=Case(
            When(status=PaymentProof.Status.SUBMITTED, then=Value(0)),
            default=Value(1),
            output_field=IntegerField(),
        )
    ).order_by("pending_first", "-created_at")
    status = request.GET.get("status")
    if status:
        qs = qs.filter(status=status.upper())
    limit = int_param(request, "limit", 50, maximum=200) or 50
    offset = int_param(request, "offset", 0)
    total = qs.count()
    proofs = [serialize_proof(p, include_order=True) for p in qs[offset:offset + limit]]
    return JsonResponse({"payments": proofs, "total": total, "limit": limit, "offset": offset})


@csrf_exempt
@require_POST
@admin_required
def admin_approve_payment_view(request, proof_id):
    proof, changed = services.approve_payment_proof(proof_id, reviewer=request.user, request=request)
    return JsonResponse({"success": True, "changed": changed, "payment": serialize_proof(proof)})


@csrf_exempt
@require_POST
@admin_required
def admin_reject_payment_view(request, proof_id):
    body = json_body(request)
    proof, changed = services.reject_payment_proof(
        proof_id, reviewer=request.user, reason=body.get("reason"), request=request
    )
    return JsonResponse({"success": True, "changed": changed, "payment": serialize_proof(proof)})
