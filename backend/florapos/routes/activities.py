# Overview: Flask API routes for the local activity log.

# backend/florapos/routes/activities.py
"""
Activity Log API Routes

WHY: Let other terminal windows and admin tools read the shift's activity
log, append to it and inspect the per-item counters before a close.

DESIGN:
- POST appends the raw record, tagged source "api" unless it names one;
  malformed or duplicate records are discarded by the log, so the response
  is always 202 with an "accepted" flag
- GET returns newest first
- DELETE clears the whole log (manual reset; a shift close clears on its own)
"""

from flask import Blueprint, current_app, jsonify, request

from ..services.activity_schemas import SOURCE_API
from ..services.aggregation_service import (
    aggregate,
    count_orders,
    counters_to_dict,
    split_by_payment_method,
)
from ..terminal import get_services
from ..validation import ValidationError, to_int


activities_bp = Blueprint("activities", __name__, url_prefix="/api/activities")


@activities_bp.get("")
def list_activities_route():
    """
    List activities, newest first.

    Query params:
    - limit: optional, positive integer
    """
    try:
        activities = get_services().activity_log.read()
        limit = request.args.get("limit")
        if limit is not None:
            activities = activities[: to_int(limit, "limit", minimum=1)]
        return jsonify({
            "activities": [activity.to_dict() for activity in activities],
            "count": len(activities),
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list activities")
        return jsonify({"error": "Internal server error"}), 500


@activities_bp.post("")
def append_activity_route():
    """
    Append one activity record.

    Accepts current ({"kind": ...}) and legacy ({"type": "order", ...})
    shapes. Returns 202 either way; "accepted" tells whether it was stored.
    """
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "JSON body required"}), 400
    if isinstance(data, dict) and not data.get("source"):
        data = {**data, "source": SOURCE_API}

    try:
        stored = get_services().activity_log.append(data)
    except Exception:
        current_app.logger.exception("Failed to append activity")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "accepted": stored is not None,
        "activity": stored.to_dict() if stored is not None else None,
    }), 202


@activities_bp.delete("")
def clear_activities_route():
    try:
        get_services().activity_log.clear()
        return jsonify({"cleared": True}), 200
    except Exception:
        current_app.logger.exception("Failed to clear activities")
        return jsonify({"error": "Internal server error"}), 500


@activities_bp.get("/summary")
def activity_summary_route():
    """Per-item counters and the cash/card split of the current log."""
    try:
        services = get_services()
        activities = services.activity_log.read()
        return jsonify({
            "counters": counters_to_dict(aggregate(activities)),
            "payments": split_by_payment_method(activities).to_dict(),
            "ordersCount": count_orders(activities),
            "entries": len(activities),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to summarize activities")
        return jsonify({"error": "Internal server error"}), 500
