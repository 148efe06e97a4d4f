from .models import Order, PaymentProof


def _iso(value):
    return value.isoformat() if value else None


def serialize_item(item) -> dict:
    return {
        "id": item.pk,
        "productId": item.product_id,
        "productName": item.product_name,
        "unitPrice": item.unit_price,
        "quantity": item.quantity,
        "lineTotal": item.line_total,
    }


def serialize_proof(proof: PaymentProof, include_order=False) -> dict:
    data = {
        "id": proof.pk,
        "orderId": proof.order_id,
        "status": proof.status,
        "note": proof.note,
        "rejectionReason": proof.rejection_reason or None,
        "evidenceUrl": proof.evidence.url if proof.evidence else None,
        "reviewedBy": proof.reviewed_by_id,
        "reviewedAt": _iso(proof.reviewed_at),
        "createdAt": _iso(proof.created_at),
    }
    if include_order:
        order = proof.order
        data["order"] = {
            "id": order.pk,
            "orderNumber": order.order_number,
            "status": order.status,
            "total": order.total,
            "currency": order.currency,
            "customerName": order.customer_name,
            "customerEmail": order.customer_email,
        }
    return data


def serialize_order(order: Order, detail=False) -> dict:
    typed = order.typed_gateway_data()
    data = {
        "id": order.pk,
        "orderNumber": order.order_number,
        "status": order.status,
        "paymentMethod": order.payment_method,
        "paymentStatus": order.payment_status,
        "total": order.total,
        "currency": order.currency,
        "customerEmail": order.customer_email,
        "customerName": order.customer_name,
        "createdAt": _iso(order.created_at),
        "paidAt": _iso(order.paid_at),
    }
    if detail:
        latest = order.payment_proofs.first()
        data.update({
            "notes": order.notes,
            "items": [serialize_item(item) for item in order.items.all()],
            "gatewayProvider": order.gateway_provider or None,
            "gatewayReference": order.gateway_reference or None,
            "gatewayData": typed.to_json() if typed else None,
            "paymentLastError": order.payment_last_error or None,
            "latestProof": serialize_proof(latest) if latest else None,
            "updatedAt": _iso(order.updated_at),
        })
    return data
