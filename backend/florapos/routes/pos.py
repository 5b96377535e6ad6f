# Overview: Flask API routes for point-of-sale actions; parses input and returns JSON responses.

# backend/florapos/routes/pos.py
"""
POS Action API Routes

Each action is recorded in the activity log before the content backend is
asked to apply it. When the backend call fails the response is 502 and still
carries the recorded activity: it counts at shift close either way.
"""

from flask import Blueprint, current_app, jsonify, request

from ..services.content_store import ContentStoreError, InventoryItem
from ..services.pos_service import PosError
from ..terminal import get_services
from ..validation import (
    ValidationError,
    optional_text,
    require_text,
    to_bool,
    to_decimal,
    to_int,
)


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def _pos_error_response(e: PosError):
    if e.activity is None:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "error": str(e),
        "recorded": True,
        "activity": e.activity.to_dict(),
    }), 502


@pos_bp.post("/sales")
def record_sale_route():
    """
    Record a sale.

    Request body:
    {
        "items": [{"itemId": "rose-red", "quantity": 3, "unitPrice": 120}],
        "paymentMethod": "cash" | "card",
        "deliveryFee": 0,        (optional)
        "comment": "...",        (optional)
        "workerSlug": "anna"     (optional)
    }
    """
    try:
        data = _json_body()
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items must be a non-empty list")

        lines = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{index}] must be an object")
            price = raw.get("unitPrice")
            lines.append((
                require_text(raw, "itemId"),
                to_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
                to_decimal(price, f"items[{index}].unitPrice", minimum=0) if price is not None else None,
            ))

        fee = data.get("deliveryFee")
        sale = get_services().pos.record_sale(
            lines,
            payment_method=require_text(data, "paymentMethod").lower(),
            delivery_fee=to_decimal(fee, "deliveryFee", minimum=0) if fee is not None else None,
            comment=optional_text(data, "comment"),
            worker_slug=optional_text(data, "workerSlug"),
        )
        return jsonify({"activity": sale.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return _pos_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/writeoffs")
def record_write_off_route():
    """Request body: {"itemId": "...", "quantity": 1, "workerSlug": "..."}"""
    try:
        data = _json_body()
        write_off = get_services().pos.record_write_off(
            require_text(data, "itemId"),
            to_int(data.get("quantity"), "quantity", minimum=1),
            worker_slug=optional_text(data, "workerSlug"),
        )
        return jsonify({"activity": write_off.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return _pos_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record write-off")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/stock")
def record_stock_change_route():
    """
    Record a delivery or stock edit already saved through the admin screens.

    Request body:
    {
        "itemId": "...",
        "quantityDelta": 10,
        "isNewItem": false,      (optional)
        "item": {...},           (optional, the saved product as the backend returns it)
        "workerSlug": "..."      (optional)
    }
    """
    try:
        data = _json_body()
        item = None
        if data.get("item") is not None:
            if not isinstance(data["item"], dict):
                raise ValidationError("item must be an object")
            try:
                item = InventoryItem.from_store(data["item"])
            except ContentStoreError as e:
                raise ValidationError(f"item: {e}")

        change = get_services().pos.record_stock_change(
            require_text(data, "itemId"),
            to_int(data.get("quantityDelta"), "quantityDelta"),
            is_new_item=to_bool(data.get("isNewItem")),
            item=item,
            worker_slug=optional_text(data, "workerSlug"),
        )
        return jsonify({"activity": change.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return _pos_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock change")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/varieties")
def record_variety_change_route():
    """Request body: {"varietyId": "...", "created": true, "workerSlug": "..."}"""
    try:
        data = _json_body()
        change = get_services().pos.record_variety_change(
            require_text(data, "varietyId"),
            created=to_bool(data.get("created")),
            worker_slug=optional_text(data, "workerSlug"),
        )
        return jsonify({"activity": change.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return _pos_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record variety change")
        return jsonify({"error": "Internal server error"}), 500
