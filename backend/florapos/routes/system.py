# backend/florapos/routes/system.py
"""
System health endpoint.

Reports the local database, the activity log and the inventory cache. The
content backend is not probed here: the terminal must report healthy while
offline, and the cache already records the last fetch error.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..terminal import get_services
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_inventory_health() -> dict:
    inventory = get_services().inventory
    return {
        "status": "degraded" if inventory.last_error else "healthy",
        "items": len(inventory.items),
        "stale": inventory.is_stale(),
        "last_fetched_at": to_utc_z(inventory.last_fetched_at),
        "error": inventory.last_error,
    }


@system_bp.get("/api/health")
def health():
    services = get_services()
    checks = {
        "database": check_database_health(),
        "inventory": check_inventory_health(),
        "activity_log": {
            "status": "healthy",
            "entries": len(services.activity_log),
            "max_entries": services.activity_log.max_entries,
        },
    }
    overall = "healthy"
    if checks["database"]["status"] != "healthy":
        overall = "unhealthy"
    elif checks["inventory"]["status"] != "healthy":
        overall = "degraded"

    status_code = 503 if overall == "unhealthy" else 200
    return jsonify({
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }), status_code
