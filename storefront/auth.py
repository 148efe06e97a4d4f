from functools import wraps

from .errors import AuthError, PermissionDeniedError


def api_login_required(view):
    """Like ``login_required`` but answers 401 instead of redirecting."""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            raise AuthError()
        return view(request, *args, **kwargs)

    return wrapper


def admin_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            raise AuthError()
        if not request.user.is_staff:
            raise PermissionDeniedError("Admin access required")
        return view(request, *args, **kwargs)

    return wrapper


def is_admin(user) -> bool:
    return bool(user and user.is_authenticated and user.is_staff)
