"""Order lifecycle: the only place that changes order and proof state.

Every transition locks the order row (``select_for_update``), re-checks its
guard under the lock and then records one audit event. Repeating a
transition that already happened is a no-op and records nothing.
Gateway network calls never happen in here; callers talk to the gateway
first and hand the outcome over.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from audit.models import AuditAction
from audit.recorder import record_event
from catalog.models import Product
from payments import gateway_data
from storefront.auth import is_admin
from storefront.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError

from .emails import send_payment_confirmation
from .models import Order, OrderItem, PaymentProof
from .utils import generate_order_number, proof_token

logger = logging.getLogger(__name__)

Status = Order.Status
PaymentMethod = Order.PaymentMethod
PaymentStatus = Order.PaymentStatus

METHOD_ALIASES = {
    "bank_transfer": PaymentMethod.BANK_TRANSFER,
    "manual": PaymentMethod.BANK_TRANSFER,
    "manual_transfer": PaymentMethod.BANK_TRANSFER,
    "stripe": PaymentMethod.STRIPE,
    "paypal": PaymentMethod.PAYPAL,
}

METHOD_LOCKED_STATUSES = (Status.PAID, Status.PROCESSING, Status.FULFILLED, Status.CANCELLED, Status.REFUNDED)

ALLOWED_PROOF_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_PROOF_SIZE = 5 * 1024 * 1024
PROOF_WITHDRAWN_REASON = "Payment method changed"


def parse_payment_method(value) -> str:
    key = str(value or "").strip()
    if key.upper() in PaymentMethod.values:
        return key.upper()
    try:
        return METHOD_ALIASES[key.lower()]
    except KeyError:
        raise ValidationError("Invalid payment method", fields={"paymentMethod": "Use bank_transfer, stripe or paypal"})


def _provider_for(method: str) -> str:
    return "" if method == PaymentMethod.BANK_TRANSFER else method


def _lock_order(order_id) -> Order:
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except (Order.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Order not found")


def _lock_proof(proof_id) -> PaymentProof:
    try:
        return PaymentProof.objects.select_for_update().get(pk=proof_id)
    except (PaymentProof.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Payment proof not found")


def _ensure_owner(order: Order, user) -> None:
    if user is None or order.user_id != user.pk:
        raise PermissionDeniedError("This order does not belong to you")


def _ensure_admin(user) -> None:
    if not is_admin(user):
        raise PermissionDeniedError("Admin access required")


def _notify_paid(order: Order) -> None:
    transaction.on_commit(lambda: send_payment_confirmation(order=order))


def get_order_for_user(order_id, user) -> Order:
    try:
        order = Order.objects.get(pk=order_id)
    except (Order.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Order not found")
    _ensure_owner(order, user)
    return order


# ---------- creation ----------

def create_order(*, user, items, payment_method=PaymentMethod.BANK_TRANSFER,
                 customer_email="", customer_name="", notes="", request=None) -> Order:
    """Create an order from ``(product_id, quantity)`` pairs.

    Prices and names are copied onto the items so the total stays fixed
    whatever happens to the products later.
    """
    quantities = {}
    for product_id, quantity in items:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", fields={"items": "Invalid quantity"})
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    if not quantities:
        raise ValidationError("No items provided", fields={"items": "At least one item is required"})

    method = parse_payment_method(payment_method)
    products = {
        p.pk: p for p in Product.objects.filter(pk__in=list(quantities), status=Product.Status.PUBLISHED)
    }
    if len(products) != len(quantities):
        raise ValidationError("Some products are not available")
    sold_out = [p for p in products.values() if p.is_sold_out]
    if sold_out:
        raise ValidationError(f"{sold_out[0].name} is sold out")

    lines = [(products[pid], qty) for pid, qty in quantities.items()]
    total = sum(product.price * qty for product, qty in lines)

    order_number = generate_order_number()
    attempts = 0
    while Order.objects.filter(order_number=order_number).exists() and attempts < 5:
        order_number = generate_order_number()
        attempts += 1

    with transaction.atomic():
        order = Order.objects.create(
            order_number=order_number,
            user=user,
            customer_email=customer_email or user.email,
            customer_name=customer_name or user.get_full_name() or user.get_username(),
            notes=notes or "",
            total=total,
            currency=settings.STORE_CURRENCY,
            status=Status.CREATED,
            payment_method=method,
            payment_status=PaymentStatus.PENDING,
            gateway_provider=_provider_for(method),
        )
        OrderItem.objects.bulk_create([
            OrderItem(order=order, product=product, product_name=product.name,
                      unit_price=product.price, quantity=qty)
            for product, qty in lines
        ])
        # A payment method is always attached at checkout
        order.status = Status.PENDING_PAYMENT
        order.save(update_fields=["status", "updated_at"])

    logger.info("Order %s created for user=%s total=%s %s", order.order_number, user.pk, total, order.currency)
    record_event(
        AuditAction.ORDER_CREATE,
        entity_type="Order",
        entity_id=order.pk,
        actor=user,
        description=f"Order {order.order_number} created with {len(lines)} items, payment method: {method}",
        metadata={"orderNumber": order.order_number, "total": total, "currency": order.currency},
        request=request,
    )
    return order


# ---------- payment method ----------

def change_payment_method(order_id, *, user, new_method, request=None) -> Order:
    method = parse_payment_method(new_method)
    with transaction.atomic():
        order = _lock_order(order_id)
        _ensure_owner(order, user)
        if order.status in METHOD_LOCKED_STATUSES or order.payment_status == PaymentStatus.PAID:
            raise ConflictError("Cannot change payment method for this order")
        previous = order.payment_method
        order.payment_method = method
        order.gateway_provider = _provider_for(method)
        # Nothing from the previous gateway may leak into the new one
        order.payment_status = PaymentStatus.PENDING
        order.gateway_reference = ""
        order.gateway_data = None
        order.payment_last_error = ""
        if order.status in (Status.CREATED, Status.PAYMENT_REVIEW):
            order.status = Status.PENDING_PAYMENT
        order.save()
        # A proof sent for the old method can no longer be approved
        withdrawn = order.payment_proofs.filter(status=PaymentProof.Status.SUBMITTED).update(
            status=PaymentProof.Status.REJECTED,
            rejection_reason=PROOF_WITHDRAWN_REASON,
            reviewed_at=timezone.now(),
        )

    record_event(
        AuditAction.ORDER_PAYMENT_METHOD,
        entity_type="Order",
        entity_id=order.pk,
        actor=user,
        description=f"Order {order.order_number} payment method changed from {previous} to {method}",
        metadata={"withdrawnProofs": withdrawn} if withdrawn else None,
        request=request,
    )
    return order


# ---------- gateway payments ----------

def ensure_checkout_allowed(order: Order, provider: str) -> None:
    if order.status not in Order.CHECKOUT_STATUSES:
        raise ConflictError("Order is not pending payment")
    if order.payment_method != provider:
        raise ConflictError(f"Order is set to be paid with {order.get_payment_method_display()}")


def ensure_capture_allowed(order: Order, provider: str, reference: str) -> None:
    """Guard shared by capture and failure callbacks.

    A callback must name the checkout the order currently points at: after a
    payment method change the old reference is gone and its callbacks are
    refused.
    """
    if order.payment_method != provider or not reference or order.gateway_reference != reference:
        raise ConflictError("Payment reference does not match this order's current checkout")
    if order.status not in Order.PRE_PAYMENT_STATUSES:
        raise ConflictError("Order can no longer be paid")


def begin_gateway_checkout(order_id, *, provider, reference, data=None, actor=None, request=None) -> Order:
    """Remember the remote order/session created for ``order_id``."""
    with transaction.atomic():
        order = _lock_order(order_id)
        ensure_checkout_allowed(order, provider)
        order.gateway_provider = provider
        order.gateway_reference = reference
        order.gateway_data = gateway_data.variant_for(provider)(**(data or {})).to_json()
        order.payment_status = PaymentStatus.PROCESSING
        order.payment_last_error = ""
        order.status = Status.PENDING_PAYMENT
        order.save()

    record_event(
        AuditAction.PAYMENT_CHECKOUT,
        entity_type="Order",
        entity_id=order.pk,
        actor=actor,
        description=f"{provider} checkout {reference} started for order {order.order_number}",
        request=request,
    )
    return order


def confirm_gateway_capture(order_id, *, provider, reference, request=None, **capture_fields):
    """Mark the order paid after the gateway reported a completed capture.

    Returns ``(order, changed)``. Duplicate deliveries for an order that is
    already paid return ``changed=False`` and leave it untouched.
    """
    with transaction.atomic():
        order = _lock_order(order_id)
        if order.is_paid:
            logger.info("Capture for %s ignored: order already %s", order.order_number, order.status)
            return order, False
        ensure_capture_allowed(order, provider, reference)
        order.status = Status.PAID
        order.payment_status = PaymentStatus.PAID
        order.paid_at = timezone.now()
        order.payment_last_error = ""
        order.merge_gateway_data(provider, **capture_fields)
        order.save()
        _notify_paid(order)

    logger.info("Order %s paid via %s (%s)", order.order_number, provider, reference)
    record_event(
        AuditAction.PAYMENT_CAPTURE,
        entity_type="Order",
        entity_id=order.pk,
        description=f"{provider} payment {reference} captured for order {order.order_number}",
        request=request,
    )
    return order, True


def record_gateway_failure(order_id, *, provider, reference, error,
                           new_status=PaymentStatus.FAILED, request=None, **fields) -> Order:
    """The gateway reported a failed, cancelled or expired payment. The customer may retry."""
    with transaction.atomic():
        order = _lock_order(order_id)
        if order.is_paid:
            return order
        ensure_capture_allowed(order, provider, reference)
        order.status = Status.PENDING_PAYMENT
        order.payment_status = new_status
        order.payment_last_error = (error or "Payment failed")[:500]
        order.merge_gateway_data(provider, **fields)
        order.save()

    logger.warning("Order %s %s payment %s not completed: %s", order.order_number, provider, reference, error)
    record_event(
        AuditAction.PAYMENT_FAIL,
        entity_type="Order",
        entity_id=order.pk,
        description=f"{provider} payment {reference} for order {order.order_number}: {order.payment_last_error}",
        metadata={"paymentStatus": new_status},
        request=request,
    )
    return order


# ---------- manual transfer proofs ----------

def validate_proof_file(upload) -> None:
    if upload is None:
        raise ValidationError("Missing file", fields={"file": "A payment proof image is required"})
    if getattr(upload, "content_type", "") not in ALLOWED_PROOF_TYPES:
        raise ValidationError("Invalid file type. Please upload JPG, PNG or WebP.", fields={"file": "Invalid type"})
    if upload.size > MAX_PROOF_SIZE:
        raise ValidationError("File too large. Maximum size is 5MB.", fields={"file": "Too large"})


def submit_payment_proof(order_id, *, user, evidence, note="", request=None) -> PaymentProof:
    validate_proof_file(evidence)
    with transaction.atomic():
        order = _lock_order(order_id)
        _ensure_owner(order, user)
        if order.status != Status.PENDING_PAYMENT:
            raise ConflictError("Order is not awaiting payment")
        if order.payment_proofs.filter(status=PaymentProof.Status.SUBMITTED).exists():
            raise ConflictError("A payment proof for this order is already under review")
        proof = PaymentProof(order=order, token=proof_token(), note=(note or "")[:2000])
        proof.evidence.save(evidence.name, evidence, save=False)
        proof.save()
        order.status = Status.PAYMENT_REVIEW
        if order.payment_method == PaymentMethod.BANK_TRANSFER:
            order.merge_gateway_data(gateway_data.MANUAL, proof_id=proof.pk)
        order.save()

    record_event(
        AuditAction.PAYMENT_SUBMIT,
        entity_type="PaymentProof",
        entity_id=proof.pk,
        actor=user,
        description=f"Payment proof uploaded for order {order.order_number}",
        request=request,
    )
    return proof


def approve_payment_proof(proof_id, *, reviewer, request=None):
    """Approve a submitted proof and mark its order paid. Returns ``(proof, changed)``."""
    _ensure_admin(reviewer)
    with transaction.atomic():
        proof = _lock_proof(proof_id)
        if proof.status == PaymentProof.Status.APPROVED:
            return proof, False
        if proof.status == PaymentProof.Status.REJECTED:
            raise ConflictError("Payment proof was already rejected")
        order = _lock_order(proof.order_id)
        if order.status in (Status.CANCELLED, Status.REFUNDED):
            raise ConflictError("Order can no longer be paid")
        if order.payment_method != PaymentMethod.BANK_TRANSFER:
            raise ConflictError("Order is no longer paid by bank transfer")
        now = timezone.now()
        proof.status = PaymentProof.Status.APPROVED
        proof.reviewed_by = reviewer
        proof.reviewed_at = now
        proof.save()
        if not order.is_paid:
            order.status = Status.PAID
            order.payment_status = PaymentStatus.PAID
            order.paid_at = now
            order.payment_last_error = ""
            order.merge_gateway_data(gateway_data.MANUAL, proof_id=proof.pk)
            order.save()
            _notify_paid(order)

    record_event(
        AuditAction.PAYMENT_APPROVE,
        entity_type="PaymentProof",
        entity_id=proof.pk,
        actor=reviewer,
        description=f"Payment approved for order {order.order_number}",
        request=request,
    )
    return proof, True


def reject_payment_proof(proof_id, *, reviewer, reason, request=None):
    """Reject a submitted proof; the order goes back to awaiting payment. Returns ``(proof, changed)``."""
    _ensure_admin(reviewer)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required", fields={"reason": "Required"})
    with transaction.atomic():
        proof = _lock_proof(proof_id)
        if proof.status == PaymentProof.Status.REJECTED:
            return proof, False
        if proof.status == PaymentProof.Status.APPROVED:
            raise ConflictError("Payment proof was already approved")
        order = _lock_order(proof.order_id)
        proof.status = PaymentProof.Status.REJECTED
        proof.rejection_reason = reason
        proof.reviewed_by = reviewer
        proof.reviewed_at = timezone.now()
        proof.save()
        if order.status == Status.PAYMENT_REVIEW:
            order.status = Status.PENDING_PAYMENT
            order.save()

    record_event(
        AuditAction.PAYMENT_REJECT,
        entity_type="PaymentProof",
        entity_id=proof.pk,
        actor=reviewer,
        description=f"Payment rejected for order {order.order_number}: {reason}",
        request=request,
    )
    return proof, True


# ---------- fulfilment and terminal states ----------

def _transition(order_id, *, actor, allowed, target, action, guard=None, apply=None, request=None, metadata=None):
    with transaction.atomic():
        order = _lock_order(order_id)
        if guard:
            guard(order)
        if order.status == target:
            return order, False
        if order.status not in allowed:
            raise ConflictError(
                f"Cannot move order from {order.get_status_display().lower()} to {Status(target).label.lower()}"
            )
        previous = order.status
        order.status = target
        if apply:
            apply(order)
        order.save()

    record_event(
        action,
        entity_type="Order",
        entity_id=order.pk,
        actor=actor,
        description=f"Order {order.order_number} status changed from {previous} to {target}",
        metadata=metadata,
        request=request,
    )
    return order, True


def start_processing(order_id, *, actor, request=None):
    _ensure_admin(actor)
    return _transition(order_id, actor=actor, allowed=(Status.PAID,), target=Status.PROCESSING,
                       action=AuditAction.ORDER_PROCESSING, request=request)


def fulfill_order(order_id, *, actor, request=None):
    _ensure_admin(actor)
    return _transition(order_id, actor=actor, allowed=(Status.PAID, Status.PROCESSING), target=Status.FULFILLED,
                       action=AuditAction.ORDER_FULFILL, request=request)


def cancel_order(order_id, *, actor, request=None):
    """Cancel an unpaid order. Owners may cancel their own; admins any."""
    def guard(order):
        if not is_admin(actor):
            _ensure_owner(order, actor)

    return _transition(order_id, actor=actor, allowed=Order.PRE_PAYMENT_STATUSES, target=Status.CANCELLED,
                       action=AuditAction.ORDER_CANCEL, guard=guard, request=request)


def refund_order(order_id, *, actor, reason="", request=None):
    _ensure_admin(actor)

    def apply(order):
        order.payment_status = PaymentStatus.REFUNDED

    return _transition(order_id, actor=actor, allowed=Order.SETTLED_STATUSES, target=Status.REFUNDED,
                       action=AuditAction.ORDER_REFUND, apply=apply, request=request,
                       metadata={"reason": reason} if reason else None)
