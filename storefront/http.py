import json

from .errors import ValidationError


def json_body(request) -> dict:
    try:
        body = json.loads(request.body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, ValueError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    return body


def int_param(request, name, default, maximum=None):
    try:
        value = int(request.GET.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(value, 0)
    if maximum is not None:
        value = min(value, maximum)
    return value


def require_field(body: dict, name: str, message=None):
    value = body.get(name)
    if value in (None, ""):
        raise ValidationError(message or f"{name} is required", fields={name: "Required"})
    return value
