import logging

from django.db import transaction

from .models import AuditAction, AuditLogEntry

logger = logging.getLogger(__name__)


def _client_ip(request):
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.META.get("REMOTE_ADDR") or None


def record_event(action, *, entity_type, entity_id="", actor=None, description="", metadata=None, request=None):
    """Append an audit entry. Best effort: failures are logged, never raised.

    Runs in its own savepoint so a failed insert cannot poison the caller's
    transaction. Returns the entry, or ``None`` when recording failed.
    """
    try:
        action = AuditAction(action)
        data = dict(metadata or {})
        if description:
            data["description"] = description
        if actor is not None and not getattr(actor, "is_authenticated", True):
            actor = None
        ip_address, user_agent = None, ""
        if request is not None:
            ip_address = _client_ip(request)
            user_agent = request.META.get("HTTP_USER_AGENT", "")[:256]
            user = getattr(request, "user", None)
            if actor is None and user is not None and user.is_authenticated:
                actor = user
        with transaction.atomic():
            return AuditLogEntry.objects.create(
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id or ""),
                actor=actor,
                metadata=data or None,
                ip_address=ip_address,
                user_agent=user_agent,
            )
    except Exception:
        logger.exception("Failed to record audit event %s for %s#%s", action, entity_type, entity_id)
        return None
