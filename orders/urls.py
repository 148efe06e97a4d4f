from django.urls import path

from . import views

urlpatterns = [
    path("orders", views.orders_view, name="orders"),
    path("orders/<int:order_id>", views.order_detail_view, name="order_detail"),
    path("orders/<int:order_id>/payment-method", views.change_payment_method_view, name="order_payment_method"),
    path("orders/<int:order_id>/payment-proof", views.payment_proof_view, name="order_payment_proof"),
    path("orders/<int:order_id>/cancel", views.cancel_order_view, name="order_cancel"),

    path("admin/orders/<int:order_id>", views.admin_order_detail_view, name="admin_order_detail"),
    path("admin/orders/<int:order_id>/processing", views.admin_start_processing_view, name="admin_order_processing"),
    path("admin/orders/<int:order_id>/fulfill", views.admin_fulfill_view, name="admin_order_fulfill"),
    path("admin/orders/<int:order_id>/cancel", views.admin_cancel_view, name="admin_order_cancel"),
    path("admin/orders/<int:order_id>/refund", views.admin_refund_view, name="admin_order_refund"),
]
