import httpx
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        return False
    return True


def _upstream_ok(base_url: str) -> bool:
    try:
        resp = httpx.get(f"{base_url}/health", timeout=getattr(settings, "HTTP_TIMEOUT_SECS", 3.0))
    except httpx.HTTPError:
        return False
    return resp.status_code == 200


def health_view(request):
    components = {"db": {"ok": _db_ok()}}
    # Upstreams are only checked on request; liveness must not depend on them.
    if request.GET.get("deep") and getattr(settings, "USE_HTTP_ADAPTERS", False):
        components["listings"] = {"ok": _upstream_ok(settings.LISTINGS_BASE_URL)}
        components["gateway"] = {"ok": _upstream_ok(settings.GATEWAY_BASE_URL)}

    ok = all(c["ok"] for c in components.values())
    return JsonResponse({"ok": ok, "components": components}, status=200 if ok else 503)
