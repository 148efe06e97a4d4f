from django.http import JsonResponse
from django.views.decorators.http import require_GET

from storefront.auth import admin_required
from storefront.http import int_param

from .models import AuditLogEntry


def serialize_entry(entry: AuditLogEntry) -> dict:
    actor = entry.actor
    return {
        "id": entry.pk,
        "action": entry.action,
        "entityType": entry.entity_type,
        "entityId": entry.entity_id,
        "description": entry.description,
        "metadata": entry.metadata,
        "actor": {"id": actor.pk, "username": actor.get_username(), "email": actor.email} if actor else None,
        "ipAddress": entry.ip_address,
        "createdAt": entry.created_at.isoformat(),
    }


@require_GET
@admin_required
def audit_log_view(request):
    """Admin listing with optional ``action``/``entityType``/``entityId``/``actorId`` filters."""
    qs = AuditLogEntry.objects.select_related("actor")
    filters = {
        "action": request.GET.get("action"),
        "entity_type": request.GET.get("entityType"),
        "entity_id": request.GET.get("entityId"),
        "actor_id": request.GET.get("actorId"),
    }
    qs = qs.filter(**{k: v for k, v in filters.items() if v})

    limit = int_param(request, "limit", 50, maximum=200) or 50
    offset = int_param(request, "offset", 0)
    total = qs.count()
    logs = [serialize_entry(e) for e in qs[offset:offset + limit]]
    return JsonResponse({"logs": logs, "total": total, "limit": limit, "offset": offset})
