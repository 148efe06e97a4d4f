from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from storefront.auth import admin_required, api_login_required
from storefront.errors import NotFoundError, ValidationError
from storefront.http import int_param, json_body, require_field

from . import services
from .models import Order
from .serializers import serialize_order


def _parse_items(raw):
    if not isinstance(raw, list) or not raw:
        raise ValidationError("No items provided", fields={"items": "At least one item is required"})
    items = []
    for entry in raw:
        try:
            items.append((int(entry["productId"]), int(entry.get("quantity", 1))))
        except (KeyError, TypeError, ValueError, AttributeError):
            raise ValidationError("Invalid order item", fields={"items": "Each item needs productId and quantity"})
    return items


@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_login_required
def orders_view(request):
    if request.method == "POST":
        body = json_body(request)
        order = services.create_order(
            user=request.user,
            items=_parse_items(body.get("items")),
            payment_method=body.get("paymentMethod") or Order.PaymentMethod.BANK_TRANSFER,
            customer_email=(body.get("customerEmail") or "").strip(),
            customer_name=(body.get("customerName") or "").strip(),
            notes=(body.get("notes") or "").strip(),
            request=request,
        )
        return JsonResponse({"order": serialize_order(order, detail=True)}, status=201)

    qs = Order.objects.filter(user=request.user)
    limit = int_param(request, "limit", 10, maximum=50) or 10
    page = int_param(request, "page", 1) or 1
    start = (page - 1) * limit
    total = qs.count()
    orders = [serialize_order(o) for o in qs[start:start + limit]]
    return JsonResponse({
        "orders": orders,
        "page": page,
        "limit": limit,
        "total": total,
        "hasNext": start + limit < total,
    })


@require_GET
@api_login_required
def order_detail_view(request, order_id):
    order = services.get_order_for_user(order_id, request.user)
    return JsonResponse({"order": serialize_order(order, detail=True)})


@csrf_exempt
@require_POST
@api_login_required
def change_payment_method_view(request, order_id):
    body = json_body(request)
    new_method = require_field(body, "newMethod", "Payment method is required")
    order = services.change_payment_method(order_id, user=request.user, new_method=new_method, request=request)
    return JsonResponse({"success": True, "order": serialize_order(order, detail=True)})


@csrf_exempt
@require_POST
@api_login_required
def payment_proof_view(request, order_id):
    proof = services.submit_payment_proof(
        order_id,
        user=request.user,
        evidence=request.FILES.get("file"),
        note=request.POST.get("note", ""),
        request=request,
    )
    return JsonResponse({"success": True, "proofId": proof.pk, "status": proof.status}, status=201)


@csrf_exempt
@require_POST
@api_login_required
def cancel_order_view(request, order_id):
    order, _ = services.cancel_order(order_id, actor=request.user, request=request)
    return JsonResponse({"order": serialize_order(order)})


# ---------- admin ----------

@require_GET
@admin_required
def admin_order_detail_view(request, order_id):
    try:
        order = Order.objects.select_related("user").get(pk=order_id)
    except (Order.DoesNotExist, ValueError):
        raise NotFoundError("Order not found")
    data = serialize_order(order, detail=True)
    data["userId"] = order.user_id
    return JsonResponse({"order": data})


def _admin_transition(operation):
    @csrf_exempt
    @require_POST
    @admin_required
    def view(request, order_id):
        kwargs = {}
        if operation is services.refund_order:
            kwargs["reason"] = (json_body(request).get("reason") or "").strip()
        order, changed = operation(order_id, actor=request.user, request=request, **kwargs)
        return JsonResponse({"order": serialize_order(order), "changed": changed})

    view.__name__ = f"admin_{operation.__name__}_view"
    return view


admin_start_processing_view = _admin_transition(services.start_processing)
admin_fulfill_view = _admin_transition(services.fulfill_order)
admin_cancel_view = _admin_transition(services.cancel_order)
admin_refund_view = _admin_transition(services.refund_order)
