from django.conf import settings

PLACEHOLDER_MARKERS = ("YOUR-", "your-domain")


def configured_base_url():
    """Return ``PUBLIC_BASE_URL`` unless it is empty or still a placeholder."""
    url = (getattr(settings, "PUBLIC_BASE_URL", "") or "").strip()
    if not url or any(marker in url for marker in PLACEHOLDER_MARKERS):
        return None
    return url.rstrip("/")


def base_url_from_request(request) -> str:
    # Reverse proxies send X-Forwarded-*; some send "https,http"
    host = request.headers.get("X-Forwarded-Host") or request.get_host()
    proto = request.headers.get("X-Forwarded-Proto") or "https"
    proto = proto.split(",")[0].strip()
    host = host.split(",")[0].strip()
    return f"{proto}://{host}"


def get_base_url(request=None) -> str:
    url = configured_base_url()
    if url:
        return url
    if request is not None:
        return base_url_from_request(request).rstrip("/")
    return "http://localhost:8000"


def is_auto_detected() -> bool:
    return configured_base_url() is None
