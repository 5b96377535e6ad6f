# Overview: Point-of-sale and inventory actions; records each one in the activity log.

"""
POS actions

Every action is logged locally first, then applied to the backend. The local
record is what shift close counts, so it must exist even when the backend
call fails; the caller gets a PosError and the cache is invalidated so the
next fetch shows the backend's real quantities.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Iterable

from ..time_utils import utcnow
from .activity_log import ActivityLog
from .activity_schemas import (
    PAYMENT_METHODS,
    SOURCE_ADMIN,
    SOURCE_POS,
    VARIETY_CREATED,
    VARIETY_UPDATED,
    Sale,
    SaleLine,
    StockChange,
    VarietyChange,
    WriteOff,
)
from .content_store import ContentStoreClient, ContentStoreError, InventoryItem
from .inventory_cache import InventoryCache

logger = logging.getLogger(__name__)


class PosError(Exception):
    """Raised for POS action errors."""

    def __init__(self, message: str, *, activity=None, details: dict | None = None):
        super().__init__(message)
        self.activity = activity
        self.details = details or {}


def new_activity_id() -> str:
    return str(uuid.uuid4())


class PointOfSale:
    def __init__(self, activity_log: ActivityLog, inventory: InventoryCache, content_store: ContentStoreClient):
        self.activity_log = activity_log
        self.inventory = inventory
        self.content_store = content_store

    def record_sale(
        self,
        lines: Iterable[tuple[str, int, Decimal | None]],
        *,
        payment_method: str,
        delivery_fee: Decimal | None = None,
        comment: str | None = None,
        worker_slug: str | None = None,
    ) -> Sale:
        """
        Log a sale, decrement cached stock, then ask the backend to apply it.

        lines: (item_id, quantity, unit_price); a None price falls back to the
        cached item's price.
        """
        if payment_method not in PAYMENT_METHODS:
            raise PosError(f"Unknown payment method {payment_method!r}")

        sale_lines = []
        for item_id, quantity, unit_price in lines:
            if quantity <= 0:
                raise PosError(f"Quantity for {item_id} must be positive")
            if unit_price is None:
                cached = self.inventory.get(item_id)
                unit_price = cached.unit_price if cached else Decimal("0")
            sale_lines.append(SaleLine(item_id=item_id, quantity=quantity, unit_price=unit_price))
        if not sale_lines:
            raise PosError("Sale has no items")

        sale = Sale(
            id=new_activity_id(),
            timestamp=utcnow(),
            items=tuple(sale_lines),
            payment_method=payment_method,
            delivery_fee=delivery_fee,
            comment=comment,
            source=SOURCE_POS,
            worker_slug=worker_slug,
        )
        self._append(sale)

        for line in sale.items:
            self.inventory.adjust_on_hand(line.item_id, -line.quantity)

        try:
            self.content_store.apply_sale((line.item_id, line.quantity) for line in sale.items)
        except ContentStoreError as exc:
            self.inventory.invalidate()
            raise PosError(f"Sale recorded locally but stock update failed: {exc}", activity=sale) from exc
        return sale

    def record_write_off(self, item_id: str, quantity: int, *, worker_slug: str | None = None) -> WriteOff:
        if quantity <= 0:
            raise PosError("Write-off quantity must be positive")

        cached = self.inventory.get(item_id)
        remaining = max(0, cached.on_hand_quantity - quantity) if cached else None
        write_off = WriteOff(
            id=new_activity_id(),
            timestamp=utcnow(),
            item_id=item_id,
            quantity_removed=quantity,
            remaining_after=remaining,
            source=SOURCE_ADMIN,
            worker_slug=worker_slug,
        )
        self._append(write_off)
        self.inventory.adjust_on_hand(item_id, -quantity)

        try:
            self.content_store.write_off(item_id, quantity)
        except ContentStoreError as exc:
            self.inventory.invalidate()
            raise PosError(f"Write-off recorded locally but stock update failed: {exc}", activity=write_off) from exc
        return write_off

    def record_stock_change(
        self,
        item_id: str,
        quantity_delta: int,
        *,
        is_new_item: bool = False,
        item: InventoryItem | None = None,
        worker_slug: str | None = None,
    ) -> StockChange:
        """
        Log a delivery (or an edit) for an item the admin screens already
        saved to the backend. item, when given, is the saved version and
        replaces the cached copy.
        """
        change = StockChange(
            id=new_activity_id(),
            timestamp=utcnow(),
            item_id=item_id,
            quantity_delta=quantity_delta,
            is_new_item=is_new_item,
            source=SOURCE_ADMIN,
            worker_slug=worker_slug,
        )
        self._append(change)

        if item is not None:
            if is_new_item or self.inventory.get(item.id) is None:
                self.inventory.add(item)
            else:
                self.inventory.update(item)
        else:
            self.inventory.adjust_on_hand(item_id, quantity_delta)
        return change

    def record_variety_change(self, variety_id: str, *, created: bool, worker_slug: str | None = None) -> VarietyChange:
        change = VarietyChange(
            id=new_activity_id(),
            timestamp=utcnow(),
            variety_id=variety_id,
            change=VARIETY_CREATED if created else VARIETY_UPDATED,
            source=SOURCE_ADMIN,
            worker_slug=worker_slug,
        )
        self._append(change)
        return change

    def _append(self, activity) -> None:
        if self.activity_log.append(activity) is None:
            # Ids are fresh uuids, so this only happens for a malformed build.
            # Nothing was stored, so the error carries no activity.
            raise PosError(f"Activity {activity.id} was rejected by the log")
        logger.debug("Recorded %s %s", activity.kind, activity.id)
