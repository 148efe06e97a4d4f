from django.urls import path

from . import views

urlpatterns = [
    path("payments/paypal/create-order", views.paypal_create_order_view, name="paypal_create_order"),
    path("payments/paypal/capture", views.paypal_capture_view, name="paypal_capture"),
    path("payments/stripe/checkout", views.stripe_checkout_view, name="stripe_checkout"),
    path("webhooks/stripe", views.stripe_webhook_view, name="stripe_webhook"),

    path("admin/payments", views.admin_payments_view, name="admin_payments"),
    path("admin/payments/<int:proof_id>/approve", views.admin_approve_payment_view, name="admin_payment_approve"),
    path("admin/payments/<int:proof_id>/reject", views.admin_reject_payment_view, name="admin_payment_reject"),
]
