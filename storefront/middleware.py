import logging

from django.http import JsonResponse

from .errors import StoreError

logger = logging.getLogger(__name__)


class ApiErrorMiddleware:
    """Convert exceptions raised by views into JSON error responses.

    Domain errors keep their status and message. Anything else is logged
    and reduced to a generic 500 so internals never reach the client.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if isinstance(exception, StoreError):
            if exception.status_code >= 500:
                logger.warning("%s %s -> %s: %s", request.method, request.path, exception.status_code, exception)
            return JsonResponse(exception.as_dict(), status=exception.status_code)
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return JsonResponse({"code": "server_error", "message": "Something went wrong"}, status=500)
