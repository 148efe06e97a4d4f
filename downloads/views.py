import logging
from datetime import datetime, timezone

from django.conf import settings
from django.core.files.storage import FileSystemStorage
from django.http import FileResponse, JsonResponse
from django.views.decorators.http import require_GET

from audit.models import AuditAction
from audit.recorder import record_event
from catalog.models import DigitalAsset
from storefront.auth import api_login_required
from storefront.base_url import get_base_url
from storefront.errors import NotEntitledError, NotFoundError, ValidationError

from .entitlements import check_entitlement
from .signing import get_signer

logger = logging.getLogger(__name__)


def private_storage():
    return FileSystemStorage(location=settings.PRIVATE_DOWNLOADS_ROOT)


@require_GET
@api_login_required
def request_download_view(request, asset_id):
    """Step one: check the caller owns a paid order with the asset and hand out a signed link."""
    raw_order = request.GET.get("orderId")
    order_id = None
    if raw_order:
        try:
            order_id = int(raw_order)
        except ValueError:
            raise ValidationError("Invalid orderId", fields={"orderId": "Must be a number"})

    order = check_entitlement(request.user.pk, asset_id, order_id)
    if order is None:
        raise NotFoundError("Asset not found or not purchased")
    asset = DigitalAsset.objects.get(pk=asset_id)

    link = get_signer().issue(asset.pk, request.user.pk, order.pk)
    record_event(
        AuditAction.DOWNLOAD_REQUEST,
        entity_type="DigitalAsset",
        entity_id=asset.pk,
        actor=request.user,
        description=f"Download link issued: {asset.filename} for order {order.order_number}",
        metadata={"orderId": order.pk},
        request=request,
    )
    expires_at = datetime.fromtimestamp(link.expires_ms / 1000, tz=timezone.utc)
    return JsonResponse({
        "downloadUrl": link.url(get_base_url(request)),
        "filename": asset.filename,
        "expiresAt": expires_at.isoformat(),
    })


@require_GET
def download_file_view(request):
    """Step two: serve the file behind a signed link after checking the order again."""
    link = get_signer().check(request.GET)
    order = check_entitlement(link.user_id, link.asset_id, link.order_id)
    if order is None:
        raise NotEntitledError()
    asset = DigitalAsset.objects.get(pk=link.asset_id)

    storage = private_storage()
    try:
        handle = storage.open(asset.storage_key, "rb")
    except FileNotFoundError:
        logger.error("Digital asset %s missing from storage: %s", asset.pk, asset.storage_key)
        raise NotFoundError("File not found")

    record_event(
        AuditAction.DOWNLOAD_COMPLETE,
        entity_type="DigitalAsset",
        entity_id=asset.pk,
        actor=order.user,
        description=f"File downloaded: {asset.filename} for order {order.order_number}",
        metadata={"orderId": order.pk},
        request=request,
    )
    return FileResponse(
        handle,
        as_attachment=True,
        filename=asset.filename,
        content_type=asset.mime_type or "application/octet-stream",
    )
