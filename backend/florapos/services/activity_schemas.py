"""
Activity record variants and their normalization.

Every activity that reaches the log, and every activity read back from
storage, passes through normalize_activity() first. It maps the shapes the
terminal has written over time onto one canonical variant, so aggregation
and reconciliation never branch on payload shape.

Accepted inputs:
- Canonical dicts, discriminated by "kind":
    sale | write_off | stock_change | variety_change
- Legacy dicts, discriminated by "type":
    order                          -> Sale (items under payload.items or items)
    productDeleted                 -> WriteOff (availableQuantity / remainingAfter)
    productCreated/productUpdated  -> StockChange (delta, else availableQuantity)
    varietyCreated/varietyUpdated  -> VarietyChange
- Already-built Activity instances.

Anything else (no id, unknown kind, missing required fields) normalizes to
None. Callers decide whether that is worth a log line; it is never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Union

from ..time_utils import coerce_timestamp, utcnow
from ..validation import MAX_AMOUNT, MAX_QUANTITY


KIND_SALE = "sale"
KIND_WRITE_OFF = "write_off"
KIND_STOCK_CHANGE = "stock_change"
KIND_VARIETY_CHANGE = "variety_change"

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_METHODS = {PAYMENT_CASH, PAYMENT_CARD}

VARIETY_CREATED = "created"
VARIETY_UPDATED = "updated"

SOURCE_POS = "pos"
SOURCE_ADMIN = "admin"
SOURCE_API = "api"
SOURCES = {SOURCE_POS, SOURCE_ADMIN, SOURCE_API}

# Lowercased, separator-free spellings -> canonical kind
_KIND_ALIASES = {
    "sale": KIND_SALE,
    "order": KIND_SALE,
    "writeoff": KIND_WRITE_OFF,
    "productdeleted": KIND_WRITE_OFF,
    "stockchange": KIND_STOCK_CHANGE,
    "productcreated": KIND_STOCK_CHANGE,
    "productupdated": KIND_STOCK_CHANGE,
    "varietychange": KIND_VARIETY_CHANGE,
    "varietycreated": KIND_VARIETY_CHANGE,
    "varietyupdated": KIND_VARIETY_CHANGE,
}


class ActivityShapeError(ValueError):
    """Raised internally when a raw record cannot be mapped to a variant."""


# =============================================================================
# VARIANTS
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class SaleLine:
    item_id: str
    quantity: int
    unit_price: Decimal = Decimal("0")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "quantity": self.quantity,
            "unitPrice": decimal_to_json(self.unit_price),
        }


@dataclass(frozen=True, kw_only=True)
class Sale:
    kind: ClassVar[str] = KIND_SALE

    id: str
    timestamp: datetime
    items: tuple[SaleLine, ...]
    payment_method: str | None = None
    delivery_fee: Decimal | None = None
    comment: str | None = None
    source: str | None = None
    worker_slug: str | None = None

    @property
    def order_total(self) -> Decimal:
        """Sum of line totals. The delivery fee is not part of the goods total."""
        return sum((line.line_total for line in self.items), Decimal("0"))

    def to_dict(self) -> dict:
        data = _base_dict(self)
        data["items"] = [line.to_dict() for line in self.items]
        data["paymentMethod"] = self.payment_method
        if self.delivery_fee is not None:
            data["deliveryFee"] = decimal_to_json(self.delivery_fee)
        if self.comment:
            data["comment"] = self.comment
        return data


@dataclass(frozen=True, kw_only=True)
class WriteOff:
    kind: ClassVar[str] = KIND_WRITE_OFF

    id: str
    timestamp: datetime
    item_id: str
    quantity_removed: int
    remaining_after: int | None = None
    source: str | None = None
    worker_slug: str | None = None

    def to_dict(self) -> dict:
        data = _base_dict(self)
        data["itemId"] = self.item_id
        data["quantityRemoved"] = self.quantity_removed
        if self.remaining_after is not None:
            data["remainingAfter"] = self.remaining_after
        return data


@dataclass(frozen=True, kw_only=True)
class StockChange:
    kind: ClassVar[str] = KIND_STOCK_CHANGE

    id: str
    timestamp: datetime
    item_id: str
    quantity_delta: int
    is_new_item: bool = False
    source: str | None = None
    worker_slug: str | None = None

    def to_dict(self) -> dict:
        data = _base_dict(self)
        data["itemId"] = self.item_id
        data["quantityDelta"] = self.quantity_delta
        data["isNewItem"] = self.is_new_item
        return data


@dataclass(frozen=True, kw_only=True)
class VarietyChange:
    """Informational only; never counted."""
    kind: ClassVar[str] = KIND_VARIETY_CHANGE

    id: str
    timestamp: datetime
    variety_id: str
    change: str = VARIETY_UPDATED
    source: str | None = None
    worker_slug: str | None = None

    def to_dict(self) -> dict:
        data = _base_dict(self)
        data["varietyId"] = self.variety_id
        data["change"] = self.change
        return data


Activity = Union[Sale, WriteOff, StockChange, VarietyChange]
ACTIVITY_TYPES = (Sale, WriteOff, StockChange, VarietyChange)


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

def decimal_to_json(value: Decimal | None):
    """Decimal -> int when integral, float otherwise (JSON has one number type)."""
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def timestamp_to_json(dt: datetime) -> str:
    # Microseconds kept so a stored activity reads back equal to the original
    return dt.isoformat(timespec="microseconds") + "Z"


def _base_dict(activity) -> dict:
    data = {
        "kind": activity.kind,
        "id": activity.id,
        "timestamp": timestamp_to_json(activity.timestamp),
    }
    if activity.source:
        data["source"] = activity.source
    if activity.worker_slug:
        data["workerSlug"] = activity.worker_slug
    return data


# =============================================================================
# NORMALIZATION
# =============================================================================

def _text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _int(value: Any, *, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ActivityShapeError("boolean is not a quantity")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ActivityShapeError("fractional quantity")
        result = int(value)
    else:
        text = str(value).strip()
        if len(text) > 20:
            raise ActivityShapeError(f"quantity out of range: {text[:20]}...")
        try:
            result = int(text)
        except ValueError:
            raise ActivityShapeError(f"not an integer: {value!r}")
    if abs(result) > MAX_QUANTITY:
        raise ActivityShapeError(f"quantity out of range: {result}")
    return result


def _decimal(value: Any, *, default: Decimal | None = None) -> Decimal | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ActivityShapeError("boolean is not an amount")
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise ActivityShapeError(f"not a number: {value!r}")
    if not result.is_finite():
        raise ActivityShapeError("non-finite amount")
    if abs(result) > MAX_AMOUNT:
        raise ActivityShapeError(f"amount out of range: {value!r}")
    return result


def _resolve_kind(raw: dict) -> tuple[str | None, str | None]:
    """Returns (canonical kind, legacy type string or None)."""
    if raw.get("kind") is not None:
        key = str(raw["kind"]).replace("_", "").replace("-", "").lower()
        return _KIND_ALIASES.get(key), None
    legacy = raw.get("type")
    if legacy is None:
        # Oldest order records carried neither kind nor type, only items
        if isinstance(raw.get("items"), list):
            return KIND_SALE, "order"
        return None, None
    key = str(legacy).replace("_", "").replace("-", "").lower()
    return _KIND_ALIASES.get(key), key


def _payload(raw: dict) -> dict:
    payload = raw.get("payload")
    return payload if isinstance(payload, dict) else raw


def _common(raw: dict) -> dict:
    activity_id = _text(raw.get("id"))
    if not activity_id:
        raise ActivityShapeError("missing id")

    ts_raw = raw.get("timestamp", raw.get("ts", raw.get("createdAt")))
    if ts_raw is None:
        timestamp = utcnow()
    else:
        timestamp = coerce_timestamp(ts_raw)
        if timestamp is None:
            raise ActivityShapeError("unreadable timestamp")

    source = _text(raw.get("source"))
    if source is not None and source.lower() not in SOURCES:
        source = None
    return {
        "id": activity_id,
        "timestamp": timestamp,
        "source": source.lower() if source else None,
        "worker_slug": _text(raw.get("workerSlug", raw.get("worker_slug"))),
    }


def _sale_line(raw_line: Any) -> SaleLine | None:
    if not isinstance(raw_line, dict):
        return None
    item_id = _text(raw_line.get("itemId", raw_line.get("item_id", raw_line.get("documentId"))))
    if not item_id:
        # Legacy behaviour: lines without a product reference are skipped
        return None
    quantity = _int(raw_line.get("quantity"), default=0)
    if quantity < 0:
        raise ActivityShapeError("negative sale quantity")
    unit_price = _decimal(
        raw_line.get("unitPrice", raw_line.get("unit_price", raw_line.get("price"))),
        default=Decimal("0"),
    )
    return SaleLine(item_id=item_id, quantity=quantity, unit_price=unit_price)


def _build_sale(raw: dict, common: dict) -> Sale:
    payload = raw.get("payload") if isinstance(raw.get("payload"), dict) else {}
    raw_items = payload.get("items") if isinstance(payload.get("items"), list) else raw.get("items")
    if not isinstance(raw_items, list):
        raise ActivityShapeError("sale without items list")

    lines = tuple(line for line in (_sale_line(item) for item in raw_items) if line is not None)

    method = _text(raw.get("paymentMethod", raw.get("payment_method", payload.get("paymentMethod"))))
    method = method.lower() if method else None
    if method not in PAYMENT_METHODS:
        method = None

    fee = _decimal(raw.get("deliveryFee", raw.get("delivery_fee", payload.get("deliveryFee"))))
    comment = _text(raw.get("comment", payload.get("comment")))
    return Sale(items=lines, payment_method=method, delivery_fee=fee, comment=comment, **common)


def _build_write_off(raw: dict, common: dict) -> WriteOff:
    body = _payload(raw)
    item_id = _text(body.get("itemId", body.get("item_id", body.get("documentId"))))
    if not item_id:
        raise ActivityShapeError("write-off without item")

    removed = _int(body.get("quantityRemoved", body.get("quantity_removed")))
    remaining_after = _int(body.get("remainingAfter", body.get("remaining_after")))
    if removed is None:
        # productDeleted stored the removed amount as availableQuantity;
        # the oldest records only had remainingAfter
        available = _int(body.get("availableQuantity"))
        removed = available or remaining_after
        if removed is None:
            removed = available
    if removed is None:
        raise ActivityShapeError("write-off without quantity")
    if removed < 0:
        raise ActivityShapeError("negative write-off quantity")
    return WriteOff(item_id=item_id, quantity_removed=removed, remaining_after=remaining_after, **common)


def _build_stock_change(raw: dict, common: dict, legacy_type: str | None) -> StockChange:
    body = _payload(raw)
    item_id = _text(body.get("itemId", body.get("item_id", body.get("documentId"))))
    if not item_id:
        raise ActivityShapeError("stock change without item")

    delta = _int(body.get("quantityDelta", body.get("quantity_delta", body.get("delta"))))
    if delta is None:
        available = _int(body.get("availableQuantity"))
        if available is None:
            raise ActivityShapeError("stock change without quantity")
        delta = max(available, 0)

    if legacy_type is not None:
        is_new = legacy_type == "productcreated"
    else:
        is_new = bool(body.get("isNewItem", body.get("is_new_item", False)))
    return StockChange(item_id=item_id, quantity_delta=delta, is_new_item=is_new, **common)


def _build_variety_change(raw: dict, common: dict, legacy_type: str | None) -> VarietyChange:
    body = _payload(raw)
    variety_id = _text(body.get("varietyId", body.get("variety_id", body.get("documentId"))))
    if not variety_id:
        raise ActivityShapeError("variety change without variety")
    if legacy_type is not None:
        change = VARIETY_CREATED if legacy_type == "varietycreated" else VARIETY_UPDATED
    else:
        change = (_text(body.get("change")) or VARIETY_UPDATED).lower()
        if change not in (VARIETY_CREATED, VARIETY_UPDATED):
            raise ActivityShapeError(f"unknown variety change {change!r}")
    return VarietyChange(variety_id=variety_id, change=change, **common)


def _check_magnitudes(activity: Activity) -> None:
    if isinstance(activity, Sale):
        amounts = [line.unit_price for line in activity.items]
        if activity.delivery_fee is not None:
            amounts.append(activity.delivery_fee)
        quantities = [line.quantity for line in activity.items]
    elif isinstance(activity, WriteOff):
        amounts = []
        quantities = [activity.quantity_removed, activity.remaining_after or 0]
    elif isinstance(activity, StockChange):
        amounts = []
        quantities = [activity.quantity_delta]
    else:
        return
    if any(abs(q) > MAX_QUANTITY for q in quantities):
        raise ActivityShapeError("quantity out of range")
    if any(not a.is_finite() or abs(a) > MAX_AMOUNT for a in amounts):
        raise ActivityShapeError("amount out of range")


def parse_activity(raw: Any) -> Activity:
    """
    Strict form of normalize_activity(): raises ActivityShapeError with the
    reason instead of returning None.
    """
    if isinstance(raw, ACTIVITY_TYPES):
        if not raw.id:
            raise ActivityShapeError("missing id")
        _check_magnitudes(raw)
        return raw
    if not isinstance(raw, dict):
        raise ActivityShapeError(f"unsupported record type {type(raw).__name__}")

    kind, legacy_type = _resolve_kind(raw)
    if kind is None:
        raise ActivityShapeError(f"unknown kind {raw.get('kind', raw.get('type'))!r}")

    common = _common(raw)
    if kind == KIND_SALE:
        return _build_sale(raw, common)
    if kind == KIND_WRITE_OFF:
        return _build_write_off(raw, common)
    if kind == KIND_STOCK_CHANGE:
        return _build_stock_change(raw, common, legacy_type)
    return _build_variety_change(raw, common, legacy_type)


def normalize_activity(raw: Any) -> Activity | None:
    try:
        return parse_activity(raw)
    except ActivityShapeError:
        return None


def normalize_activities(raw_list: Any) -> list[Activity]:
    """Normalize a stored list, dropping unreadable entries and keeping order."""
    if not isinstance(raw_list, list):
        return []
    result: list[Activity] = []
    for raw in raw_list:
        activity = normalize_activity(raw)
        if activity is not None:
            result.append(activity)
    return result
