from __future__ import annotations

from typing import Any

from django.db import connection
from django.http import JsonResponse


def check_db() -> dict[str, Any]:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1;")
            cursor.fetchone()
    except Exception as exc:  # noqa: BLE001 - health must degrade, not crash
        return {"ok": False, "error": str(exc)}
    else:
        return {"ok": True}


def check_realtime() -> dict[str, Any]:
    from teamhub.realtime.socketio import hub  # noqa: PLC0415
    from teamhub.realtime.socketio import query_hub  # noqa: PLC0415

    try:
        stats = query_hub(hub.stats)
    except Exception as exc:  # noqa: BLE001 - health must degrade, not crash
        return {"ok": False, "error": str(exc)}
    else:
        return {"ok": True, **stats}


def health(request):
    db = check_db()
    realtime = check_realtime()
    components = {"db": db, "realtime": realtime}

    all_ok = all(v.get("ok", False) for v in components.values())
    some_ok = any(v.get("ok", False) for v in components.values())

    status = "ok" if all_ok else ("degraded" if some_ok else "down")
    # The socket server can run without the db but cannot authenticate anyone.
    http_status = 200 if db["ok"] else 503

    return JsonResponse(
        {"status": status, "components": components},
        status=http_status,
    )
