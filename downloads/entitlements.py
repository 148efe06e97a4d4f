from django.db.models import F

from catalog.models import DigitalAsset
from orders.models import Order


def check_entitlement(user_id, asset_id, order_id=None):
    """Return the paid order that lets ``user_id`` download ``asset_id``, or ``None``.

    Only orders in ``Order.ENTITLED_STATUSES`` count, so a cancelled or
    refunded order stops granting access at once. With ``order_id`` the
    search is limited to that order.
    """
    try:
        asset = DigitalAsset.objects.get(pk=asset_id)
    except (DigitalAsset.DoesNotExist, ValueError, TypeError):
        return None
    qs = Order.objects.filter(
        user_id=user_id,
        status__in=Order.ENTITLED_STATUSES,
        items__product_id=asset.product_id,
    )
    if order_id is not None:
        qs = qs.filter(pk=order_id)
    return qs.order_by(F("paid_at").asc(nulls_last=True), "created_at").distinct().first()
