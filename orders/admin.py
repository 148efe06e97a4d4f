from django.contrib import admin

from .models import Order, OrderItem, PaymentProof


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "product_name", "unit_price", "quantity")
    can_delete = False


class PaymentProofInline(admin.TabularInline):
    model = PaymentProof
    extra = 0
    fields = ("status", "evidence", "note", "rejection_reason", "reviewed_by", "reviewed_at", "created_at")
    readonly_fields = fields
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "status", "payment_method", "payment_status", "total", "currency", "customer_email", "created_at")
    search_fields = ("order_number", "customer_email", "gateway_reference")
    list_filter = ("status", "payment_method", "payment_status", "created_at")
    # Lifecycle fields only change through orders.services
    readonly_fields = (
        "order_number", "user", "total", "currency", "status", "payment_method", "payment_status",
        "gateway_provider", "gateway_reference", "gateway_data", "payment_last_error",
        "created_at", "paid_at", "updated_at",
    )
    inlines = [OrderItemInline, PaymentProofInline]


@admin.register(PaymentProof)
class PaymentProofAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "status", "reviewed_by", "reviewed_at", "created_at")
    list_filter = ("status", "created_at")
    search_fields = ("order__order_number", "order__customer_email")
    readonly_fields = ("order", "token", "evidence", "status", "reviewed_by", "reviewed_at", "created_at")
