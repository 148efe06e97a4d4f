"""Error taxonomy shared by every app.

Views raise these and :class:`storefront.middleware.ApiErrorMiddleware`
turns them into ``{"code": ..., "message": ...}`` JSON responses.
"""


class StoreError(Exception):
    status_code = 400
    code = "error"
    default_message = "Request failed"

    def __init__(self, message=None, *, fields=None):
        self.message = message or self.default_message
        self.fields = fields or {}
        super().__init__(self.message)

    def as_dict(self) -> dict:
        data = {"code": self.code, "message": self.message}
        if self.fields:
            data["fields"] = self.fields
        return data


class ValidationError(StoreError):
    code = "validation_error"
    default_message = "Invalid request"


class AuthError(StoreError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Please login to continue"


class PermissionDeniedError(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to do that"


class NotFoundError(StoreError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class ConflictError(StoreError):
    """The order or proof is not in a state that permits the transition."""
    code = "conflict"
    default_message = "This action is not allowed in the current state"


class RateLimitedError(StoreError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many attempts. Please try again later."


class GatewayError(StoreError):
    """Upstream payment provider failure. Safe to retry."""
    status_code = 502
    code = "gateway_error"
    default_message = "Payment provider request failed"
    retryable = True

    def __init__(self, message=None, *, provider="", provider_status=None):
        super().__init__(message)
        self.provider = provider
        self.provider_status = provider_status

    def as_dict(self) -> dict:
        data = super().as_dict()
        data.update({"provider": self.provider, "providerStatus": self.provider_status, "retryable": True})
        return data


# Download link failures share one message so callers cannot tell which check failed.
INVALID_LINK_MESSAGE = "Invalid or expired download link"


class DownloadLinkError(StoreError):
    default_message = INVALID_LINK_MESSAGE


class MalformedLinkError(DownloadLinkError):
    code = "invalid_link"


class SignatureError(DownloadLinkError):
    status_code = 403
    code = "invalid_link"


class NotEntitledError(DownloadLinkError):
    status_code = 404
    code = "not_entitled"


class ExpiredLinkError(DownloadLinkError):
    status_code = 410
    code = "expired_link"
