# Overview: Flask API routes for the cached inventory list.

# backend/florapos/routes/inventory.py
"""
Inventory API Routes

WHY: The POS and admin screens read the item list through the terminal's
cache instead of hitting the content backend on every render.

DESIGN:
- GET serves the cached list, refetching only when stale (or ?force=1)
- A failed refetch still answers 200 with the previous list and the error
- invalidate only marks the list stale; the next read refetches
"""

from flask import Blueprint, current_app, jsonify, request

from ..terminal import get_services
from ..validation import to_bool


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
def get_inventory_route():
    """
    Current item list.

    Query params:
    - force: refetch even when the cache is fresh
    - kind: only items of this product type
    """
    try:
        inventory = get_services().inventory
        fetched = inventory.fetch(force=to_bool(request.args.get("force")))
        body = inventory.to_dict()
        kind = request.args.get("kind")
        if kind:
            body["items"] = [item.to_dict() for item in inventory.by_kind(kind)]
        body["fetched"] = fetched
        return jsonify(body), 200
    except Exception:
        current_app.logger.exception("Failed to read inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<item_id>")
def get_inventory_item_route(item_id: str):
    inventory = get_services().inventory
    inventory.fetch()
    item = inventory.get(item_id)
    if item is None:
        return jsonify({"error": "Item not found"}), 404
    return jsonify({"item": item.to_dict()}), 200


@inventory_bp.post("/refresh")
def refresh_inventory_route():
    try:
        inventory = get_services().inventory
        fetched = inventory.refresh()
        body = inventory.to_dict()
        body["fetched"] = fetched
        return jsonify(body), 200
    except Exception:
        current_app.logger.exception("Failed to refresh inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/invalidate")
def invalidate_inventory_route():
    get_services().inventory.invalidate()
    return jsonify({"invalidated": True}), 200
