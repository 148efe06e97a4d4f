import logging

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model, login, logout
from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.cache import never_cache
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from audit.models import AuditAction
from audit.recorder import record_event
from storefront.caching import CachedValue
from storefront.errors import AuthError, PermissionDeniedError, RateLimitedError, ValidationError
from storefront.http import json_body

from .ratelimit import get_rate_limiter

logger = logging.getLogger(__name__)


def serialize_user(user) -> dict:
    return {
        "id": user.pk,
        "email": user.email,
        "username": user.get_username(),
        "role": "ADMIN" if user.is_staff else "CUSTOMER",
    }


@csrf_exempt
@require_POST
@never_cache
def login_view(request):
    body = json_body(request)
    email = (body.get("email") or "").strip().lower()
    password = body.get("password") or ""

    limit, window = settings.LOGIN_RATE_LIMIT
    if not get_rate_limiter().hit(f"login:{email}", limit, window):
        logger.warning("Login rate limit hit for %s", email)
        raise RateLimitedError("Too many login attempts. Please try again later.")

    errors = {}
    if "@" not in email:
        errors["email"] = "Invalid email address"
    if not password:
        errors["password"] = "Password is required"
    if errors:
        raise ValidationError("Invalid credentials", fields=errors)

    User = get_user_model()
    candidate = User.objects.filter(email__iexact=email).first()
    if candidate is None:
        raise AuthError("Invalid email or password")
    if not candidate.is_active:
        raise PermissionDeniedError("Your account has been deactivated")
    user = authenticate(request, username=candidate.get_username(), password=password)
    if user is None:
        raise AuthError("Invalid email or password")

    login(request, user)
    record_event(
        AuditAction.USER_LOGIN,
        entity_type="User",
        entity_id=user.pk,
        actor=user,
        description=f"{user.get_username()} logged in",
        request=request,
    )
    return JsonResponse({"success": True, "user": serialize_user(user)})


@csrf_exempt
@require_POST
def logout_view(request):
    user = request.user if request.user.is_authenticated else None
    if user is not None:
        record_event(
            AuditAction.USER_LOGOUT,
            entity_type="User",
            entity_id=user.pk,
            actor=user,
            description=f"{user.get_username()} logged out",
            request=request,
        )
    logout(request)
    return JsonResponse({"success": True})


def _admin_count() -> int:
    return get_user_model().objects.filter(is_staff=True, is_active=True).count()


admin_count = CachedValue(_admin_count, ttl=getattr(settings, "SETUP_STATUS_CACHE_SECONDS", 30))


@require_GET
def setup_status_view(request):
    """Whether the first admin account still has to be created."""
    try:
        count = admin_count.get()
    except DatabaseError:
        logger.exception("Setup status check failed")
        return JsonResponse({
            "ok": False,
            "needsSetup": True,
            "dbConnected": False,
            "error": "Database schema not ready - run migrations first",
        })
    return JsonResponse({"ok": True, "needsSetup": count == 0, "adminCount": count, "dbConnected": True})
