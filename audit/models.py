from django.conf import settings
from django.db import models


class AuditAction(models.TextChoices):
    USER_LOGIN = "user.login", "User login"
    USER_LOGOUT = "user.logout", "User logout"
    ORDER_CREATE = "order.create", "Order created"
    ORDER_PAYMENT_METHOD = "order.payment_method", "Payment method changed"
    ORDER_PROCESSING = "order.processing", "Order processing"
    ORDER_FULFILL = "order.fulfill", "Order fulfilled"
    ORDER_CANCEL = "order.cancel", "Order cancelled"
    ORDER_REFUND = "order.refund", "Order refunded"
    PAYMENT_CHECKOUT = "payment.checkout", "Gateway checkout started"
    PAYMENT_CAPTURE = "payment.capture", "Gateway payment captured"
    PAYMENT_FAIL = "payment.fail", "Gateway payment failed"
    PAYMENT_SUBMIT = "payment.submit", "Payment proof submitted"
    PAYMENT_APPROVE = "payment.approve", "Payment proof approved"
    PAYMENT_REJECT = "payment.reject", "Payment proof rejected"
    DOWNLOAD_REQUEST = "download.request", "Download requested"
    DOWNLOAD_COMPLETE = "download.complete", "Download completed"


class AuditLogEntry(models.Model):
    """Append-only record of a mutating action. Never updated or deleted."""

    action = models.CharField(max_length=32, choices=AuditAction.choices, db_index=True)
    entity_type = models.CharField(max_length=32, db_index=True)
    entity_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    metadata = models.JSONField(blank=True, null=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.CharField(max_length=256, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ("-created_at", "-id")

    def __str__(self):
        return f"{self.action} {self.entity_type}#{self.entity_id}"

    @property
    def description(self) -> str:
        return (self.metadata or {}).get("description", "")

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Audit log entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit log entries cannot be deleted")
