# Overview: Flask API routes for closing shifts; parses input and returns JSON responses.

# backend/florapos/routes/shifts.py
"""
Shift Close API Routes

WHY: Closing a shift collapses the terminal's activity log and inventory list
into one shift record in the content backend.

DESIGN:
- close is safe to retry: the record is looked up by date + worker and
  updated in place when it already exists
- a failed close answers 502 and leaves the activity log untouched
- preview builds the same snapshot without writing anything
- workers lists who a shift can be closed for
"""

from flask import Blueprint, current_app, jsonify, request

from ..services.content_store import ContentStoreError
from ..services.reconciliation_service import ReconciliationError, STATE_BUILT
from ..services.shift_schemas import ShiftKey
from ..terminal import get_services
from ..validation import ValidationError, optional_text, to_date, to_decimal, to_int


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _shift_key(data) -> ShiftKey:
    if data.get("date") is None:
        raise ValidationError("date is required")
    if data.get("worker_id") is None:
        raise ValidationError("worker_id is required")
    return ShiftKey(
        date=to_date(data.get("date"), "date"),
        worker_id=to_int(data.get("worker_id"), "worker_id", minimum=1),
        worker_slug=optional_text(data, "worker_slug"),
    )


def _cash(data):
    value = data.get("cash")
    if value is None or value == "":
        return None
    return to_decimal(value, "cash", minimum=0)


@shifts_bp.post("/close")
def close_shift_route():
    """
    Close a shift.

    Request body:
    {
        "date": "2024-05-01",
        "worker_id": 3,
        "worker_slug": "anna",   (optional)
        "cash": 1500,            (optional, overrides the computed total)
        "comment": "..."         (optional)
    }

    Returns 201 when a record was created, 200 when an existing one was
    updated.
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("JSON object body required")
        key = _shift_key(data)
        close = get_services().reconciler.close_shift(
            key,
            cash=_cash(data),
            comment=optional_text(data, "comment") or "",
        )
        return jsonify(close.to_dict()), 201 if close.created else 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ReconciliationError as e:
        return jsonify({
            "error": str(e),
            "retryable": e.retryable,
            "state": e.state,
        }), 502
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/preview")
def preview_shift_route():
    """
    Snapshot the shift would be closed with, without writing it.

    Query params: date, worker_id, worker_slug (optional), cash (optional)
    """
    try:
        key = _shift_key(request.args)
        snapshot = get_services().reconciler.build_snapshot(
            key,
            cash=_cash(request.args),
            comment=request.args.get("comment", ""),
        )
        return jsonify({"state": STATE_BUILT, "snapshot": snapshot.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to preview shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/record")
def get_shift_record_route():
    """The stored record for date + worker, if the backend has one."""
    try:
        key = _shift_key(request.args)
        record = get_services().content_store.find_shift(key)
        if record is None:
            return jsonify({"error": "Shift record not found"}), 404
        return jsonify({"record": record.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ContentStoreError as e:
        return jsonify({"error": str(e), "retryable": e.retryable}), 502
    except Exception:
        current_app.logger.exception("Failed to load shift record")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/workers")
def list_workers_route():
    """Workers a shift can be closed for, as the backend lists them."""
    try:
        workers = get_services().content_store.list_workers()
        return jsonify({
            "workers": [
                {"id": w.get("id"), "slug": w.get("slug"), "name": w.get("name")}
                for w in workers
            ],
        }), 200
    except ContentStoreError as e:
        return jsonify({"error": str(e), "retryable": e.retryable}), 502
    except Exception:
        current_app.logger.exception("Failed to list workers")
        return jsonify({"error": "Internal server error"}), 500
