"""
Shift key, snapshot and stored-record types.

A shift record is addressed by its natural key (date + worker), never by the
content store's surrogate id. Snapshots written by older terminals were
stored either as a bare array of item rows or as {"items": [...], ...};
ShiftRecord.from_store() reads both through normalize_snapshot().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from .activity_schemas import Activity, decimal_to_json, normalize_activities


@dataclass(frozen=True)
class ShiftKey:
    date: date
    worker_id: int
    worker_slug: str | None = None

    @property
    def slug(self) -> str:
        """Record slug used by the content store (one record per day per worker)."""
        return self.date.isoformat()

    @property
    def worker_ref(self) -> str:
        return self.worker_slug or str(self.worker_id)

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.date.isoformat(), self.worker_ref)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "workerId": self.worker_id,
            "workerSlug": self.worker_slug,
        }


@dataclass(frozen=True)
class PaymentSplit:
    cash: Decimal = Decimal("0")
    card: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.cash + self.card

    def to_dict(self) -> dict:
        return {"cash": decimal_to_json(self.cash), "card": decimal_to_json(self.card)}


@dataclass(frozen=True)
class ShiftItemRow:
    item_id: str
    on_hand: int = 0
    sold: int = 0
    written_off: int = 0
    delivered: int = 0
    unit_price: Decimal = Decimal("0")
    name: str | None = None
    item_kind: str | None = None

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "name": self.name,
            "kind": self.item_kind,
            "onHand": self.on_hand,
            "sold": self.sold,
            "writtenOff": self.written_off,
            "delivered": self.delivered,
            "unitPrice": decimal_to_json(self.unit_price),
        }


@dataclass(frozen=True)
class ShiftSnapshot:
    shift_key: ShiftKey
    cash_total: Decimal
    cash_by_method: PaymentSplit
    orders_count: int
    items: tuple[ShiftItemRow, ...]
    raw_activity_log: tuple[Activity, ...]
    comment: str = ""

    def items_document(self) -> dict:
        """The JSON document stored in the record's itemsSnapshot field."""
        return {
            "items": [row.to_dict() for row in self.items],
            "ordersCount": self.orders_count,
            "cashSales": decimal_to_json(self.cash_by_method.cash),
            "cardSales": decimal_to_json(self.cash_by_method.card),
            "recentActivities": [activity.to_dict() for activity in self.raw_activity_log],
        }

    def to_payload(self) -> dict:
        """Body sent to the shift-record store on create and update."""
        return {
            "date": self.shift_key.date.isoformat(),
            "slug": self.shift_key.slug,
            "worker": self.shift_key.worker_id,
            "workerSlug": self.shift_key.worker_slug,
            "cash": decimal_to_json(self.cash_total),
            "shiftComment": self.comment,
            "itemsSnapshot": self.items_document(),
        }

    def to_dict(self) -> dict:
        return {
            "shiftKey": self.shift_key.to_dict(),
            "cashTotal": decimal_to_json(self.cash_total),
            "cashByMethod": self.cash_by_method.to_dict(),
            "ordersCount": self.orders_count,
            "items": [row.to_dict() for row in self.items],
            "rawActivityLog": [activity.to_dict() for activity in self.raw_activity_log],
            "comment": self.comment,
        }


# =============================================================================
# STORED SNAPSHOT NORMALIZATION
# =============================================================================

def _to_int(value: Any) -> int:
    if value is None or value == "" or isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _item_row(raw: Any) -> ShiftItemRow | None:
    if not isinstance(raw, dict):
        return None
    # Legacy rows: product / quantity / price / type
    item_id = raw.get("itemId", raw.get("product", raw.get("documentId")))
    if item_id is None or str(item_id).strip() == "":
        return None
    return ShiftItemRow(
        item_id=str(item_id),
        on_hand=_to_int(raw.get("onHand", raw.get("quantity"))),
        sold=_to_int(raw.get("sold")),
        written_off=_to_int(raw.get("writtenOff")),
        delivered=_to_int(raw.get("delivered")),
        unit_price=_to_decimal(raw.get("unitPrice", raw.get("price"))),
        name=raw.get("name"),
        item_kind=raw.get("kind", raw.get("type")),
    )


@dataclass(frozen=True)
class StoredSnapshot:
    items: tuple[ShiftItemRow, ...] = ()
    orders_count: int = 0
    cash_by_method: PaymentSplit = field(default_factory=PaymentSplit)
    activities: tuple[Activity, ...] = ()


def normalize_snapshot(raw: Any) -> StoredSnapshot:
    """Bare item array or {"items": [...]} document -> StoredSnapshot."""
    if isinstance(raw, list):
        rows = raw
        meta: dict = {}
    elif isinstance(raw, dict):
        rows = raw.get("items") if isinstance(raw.get("items"), list) else []
        meta = raw
    else:
        return StoredSnapshot()

    items = tuple(row for row in (_item_row(r) for r in rows) if row is not None)
    return StoredSnapshot(
        items=items,
        orders_count=_to_int(meta.get("ordersCount")),
        cash_by_method=PaymentSplit(
            cash=_to_decimal(meta.get("cashSales")),
            card=_to_decimal(meta.get("cardSales")),
        ),
        activities=tuple(normalize_activities(meta.get("recentActivities"))),
    )


def _worker_fields(worker: Any) -> tuple[int | None, str | None]:
    """Worker relation as id, {id, slug}, or v4 {"data": {"id", "attributes"}}."""
    if worker is None or isinstance(worker, bool):
        return None, None
    if isinstance(worker, (int, str)):
        try:
            return int(worker), None
        except ValueError:
            return None, str(worker)
    if not isinstance(worker, dict):
        return None, None
    if "data" in worker:
        worker = worker.get("data") or {}
        if not isinstance(worker, dict):
            return None, None
    attrs = worker.get("attributes") if isinstance(worker.get("attributes"), dict) else worker
    worker_id = worker.get("id")
    try:
        worker_id = int(worker_id) if worker_id is not None else None
    except (TypeError, ValueError):
        worker_id = None
    return worker_id, attrs.get("slug")


@dataclass(frozen=True)
class ShiftRecord:
    """A shift record as held by the external store."""
    document_id: str
    date: str | None
    worker_id: int | None
    worker_slug: str | None
    cash: Decimal
    comment: str
    snapshot: StoredSnapshot

    @classmethod
    def from_store(cls, data: dict) -> "ShiftRecord":
        # Strapi v4 wraps fields in "attributes"; v5 returns them flat
        attrs = data.get("attributes") if isinstance(data.get("attributes"), dict) else data
        worker_id, worker_slug = _worker_fields(attrs.get("worker"))
        if attrs.get("workerSlug"):
            worker_slug = attrs.get("workerSlug")
        document_id = data.get("documentId") or attrs.get("documentId") or data.get("id")
        return cls(
            document_id=str(document_id) if document_id is not None else "",
            date=attrs.get("date"),
            worker_id=worker_id,
            worker_slug=worker_slug,
            cash=_to_decimal(attrs.get("cash")),
            comment=attrs.get("shiftComment") or "",
            snapshot=normalize_snapshot(attrs.get("itemsSnapshot")),
        )

    def matches(self, key: ShiftKey) -> bool:
        """
        Natural-key comparison. Records without any worker information
        (written before the worker relation existed) match on date alone.
        """
        if self.date and self.date[:10] != key.date.isoformat():
            return False
        if key.worker_slug and self.worker_slug:
            return self.worker_slug == key.worker_slug
        if self.worker_id is not None:
            return self.worker_id == key.worker_id
        if self.worker_slug:
            return self.worker_slug == key.worker_ref
        return True

    def to_dict(self) -> dict:
        return {
            "documentId": self.document_id,
            "date": self.date,
            "workerId": self.worker_id,
            "workerSlug": self.worker_slug,
            "cash": decimal_to_json(self.cash),
            "shiftComment": self.comment,
            "items": [row.to_dict() for row in self.snapshot.items],
            "ordersCount": self.snapshot.orders_count,
            "cashByMethod": self.snapshot.cash_by_method.to_dict(),
        }
