import logging
from typing import List

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _fail_silently() -> bool:
    return getattr(settings, "EMAIL_FAIL_SILENTLY", True)


def _admin_recipients() -> List[str]:
    """Addresses from PAYMENTS_ADMIN_EMAILS, else the sender addresses, without duplicates."""
    configured = getattr(settings, "PAYMENTS_ADMIN_EMAILS", "") or ""
    candidates = configured.split(",") if configured.strip() else [
        getattr(settings, "EMAIL_HOST_USER", ""),
        getattr(settings, "DEFAULT_FROM_EMAIL", ""),
    ]
    recipients = {}
    for address in filter(None, (c.strip() for c in candidates if c)):
        recipients.setdefault(address.lower(), address)
    return list(recipients.values())


def _send(subject, template, context, recipients):
    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None) or getattr(settings, "EMAIL_HOST_USER", None)
    text = render_to_string(f"emails/{template}.txt", context)
    html = render_to_string(f"emails/{template}.html", context)
    msg = EmailMultiAlternatives(subject, text, from_email, recipients)
    msg.attach_alternative(html, "text/html")
    msg.send(fail_silently=_fail_silently())


def send_payment_confirmation(*, order) -> None:
    """Send a receipt to the customer and a notification to admins for a paid order."""
    context = {
        "order_number": order.order_number,
        "total": order.total,
        "currency": order.currency,
        "payment_method": order.get_payment_method_display(),
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "items": list(order.items.all()),
        "brand": getattr(settings, "STORE_BRAND_NAME", ""),
    }

    try:
        if order.customer_email:
            subject = f"Payment received: {order.order_number} – {order.currency} {order.total}"
            _send(subject, "payment_receipt_customer", context, [order.customer_email])
    except Exception:
        logger.exception("Failed to send payment receipt to %s", order.customer_email)

    try:
        admins = _admin_recipients()
        if admins:
            subject = f"New payment: {order.order_number} – {order.currency} {order.total} ({order.payment_method})"
            _send(subject, "payment_notification_admin", context, admins)
    except Exception:
        logger.exception("Failed to send payment admin notification for %s", order.order_number)
