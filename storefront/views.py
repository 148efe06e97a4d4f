from django.db import connection
from django.http import JsonResponse
from django.views.decorators.http import require_GET


def error_404_view(request, exception):
    return JsonResponse({"code": "not_found", "message": "Not found"}, status=404)


def error_500_view(request):
    return JsonResponse({"code": "server_error", "message": "Something went wrong"}, status=500)


@require_GET
def health_view(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        db_ok = True
    except Exception:
        db_ok = False
    return JsonResponse({"status": "ok" if db_ok else "degraded", "database": db_ok}, status=200 if db_ok else 503)
