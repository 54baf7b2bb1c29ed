from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import notifications_cb


def health_view(_request):
    """Report database reachability and the notifications circuit state.

    Only the database decides the status code. Notifications are best effort,
    so an open circuit marks the service as degraded but still returns 200.
    """
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        db_ok = False

    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        circuit = notifications_cb.state
        notifications = {"ok": circuit != "OPEN", "mode": "http", "circuit": circuit}
    else:
        notifications = {"ok": True, "mode": "stub"}

    return JsonResponse(
        {
            "ok": db_ok,
            "degraded": not notifications["ok"],
            "components": {"db": {"ok": db_ok}, "notifications": notifications},
        },
        status=200 if db_ok else 503,
    )
