from django.conf import settings
from django.db import models

from catalog.models import Product
from payments import gateway_data


class Order(models.Model):
    class Status(models.TextChoices):
        CREATED = "CREATED", "Created"
        PENDING_PAYMENT = "PENDING_PAYMENT", "Pending payment"
        PAYMENT_REVIEW = "PAYMENT_REVIEW", "Payment under review"
        PAID = "PAID", "Paid"
        PROCESSING = "PROCESSING", "Processing"
        FULFILLED = "FULFILLED", "Fulfilled"
        CANCELLED = "CANCELLED", "Cancelled"
        REFUNDED = "REFUNDED", "Refunded"

    class PaymentMethod(models.TextChoices):
        BANK_TRANSFER = gateway_data.MANUAL, "Bank transfer"
        STRIPE = gateway_data.STRIPE, "Stripe"
        PAYPAL = gateway_data.PAYPAL, "PayPal"

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSING = "PROCESSING", "Processing"
        PAID = "PAID", "Paid"
        FAILED = "FAILED", "Failed"
        EXPIRED = "EXPIRED", "Expired"
        REFUNDED = "REFUNDED", "Refunded"

    order_number = models.CharField(max_length=32, unique=True, db_index=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    customer_email = models.EmailField(blank=True, default="")
    customer_name = models.CharField(max_length=150, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    total = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=8, default="IDR")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.CREATED, db_index=True)
    payment_method = models.CharField(
        max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.BANK_TRANSFER
    )
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    gateway_provider = models.CharField(max_length=20, blank=True, default="")
    gateway_reference = models.CharField(max_length=128, blank=True, default="", db_index=True)
    gateway_data = models.JSONField(blank=True, null=True)
    payment_last_error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    paid_at = models.DateTimeField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    ENTITLED_STATUSES = (Status.PAID, Status.FULFILLED)
    SETTLED_STATUSES = (Status.PAID, Status.PROCESSING, Status.FULFILLED)
    PRE_PAYMENT_STATUSES = (Status.CREATED, Status.PENDING_PAYMENT, Status.PAYMENT_REVIEW)
    CHECKOUT_STATUSES = (Status.CREATED, Status.PENDING_PAYMENT)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.order_number} ({self.status})"

    @property
    def is_paid(self) -> bool:
        return self.status in self.SETTLED_STATUSES or self.payment_status == self.PaymentStatus.PAID

    @property
    def items_total(self) -> int:
        return sum(item.line_total for item in self.items.all())

    def typed_gateway_data(self):
        """The typed view of ``gateway_data`` for the current provider, or ``None``."""
        provider = self.gateway_provider or (
            gateway_data.MANUAL if self.payment_method == self.PaymentMethod.BANK_TRANSFER else ""
        )
        if not provider:
            return None
        return gateway_data.load(provider, self.gateway_data)

    def merge_gateway_data(self, provider: str, **fields) -> None:
        self.gateway_data = gateway_data.merge(provider, self.gateway_data, **fields)


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    # Snapshots taken at checkout; later product edits never touch them
    product_name = models.CharField(max_length=200)
    unit_price = models.PositiveBigIntegerField()
    quantity = models.PositiveIntegerField(default=1)

    def __str__(self):
        return f"{self.quantity} x {self.product_name}"

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


def payment_proof_upload_to(instance, filename):
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"payment-proofs/{instance.order_id}/{instance.order_id}-{instance.token}.{ext}"


class PaymentProof(models.Model):
    class Status(models.TextChoices):
        SUBMITTED = "SUBMITTED", "Submitted"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="payment_proofs")
    token = models.CharField(max_length=32, unique=True)
    evidence = models.FileField(upload_to=payment_proof_upload_to)
    note = models.TextField(blank=True, default="")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.SUBMITTED, db_index=True)
    rejection_reason = models.TextField(blank=True, default="")
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_payment_proofs",
    )
    reviewed_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"Proof #{self.pk} for {self.order_id} ({self.status})"
