# Overview: Pure reductions of an activity list into per-item counters and sale totals.

"""
Aggregation

All functions are total over normalized activities: no I/O, no exceptions,
and the result does not depend on input order.

Counters per item:
- sold:        sum of Sale line quantities
- writtenOff:  sum of WriteOff.quantity_removed
- delivered:   sum of max(StockChange.quantity_delta, 0); negative deltas are
               NOT write-offs, only explicit WriteOff events count against stock
VarietyChange is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from .activity_schemas import (
    PAYMENT_CARD,
    PAYMENT_CASH,
    Activity,
    Sale,
    StockChange,
    WriteOff,
)
from .shift_schemas import PaymentSplit

HALF = Decimal("0.5")


@dataclass
class ItemCounters:
    sold: int = 0
    written_off: int = 0
    delivered: int = 0

    def to_dict(self) -> dict:
        return {"sold": self.sold, "writtenOff": self.written_off, "delivered": self.delivered}


AggregatedCounters = dict[str, ItemCounters]


def aggregate(activities: Iterable[Activity]) -> AggregatedCounters:
    counters: AggregatedCounters = {}

    def ensure(item_id: str) -> ItemCounters:
        if item_id not in counters:
            counters[item_id] = ItemCounters()
        return counters[item_id]

    for activity in activities:
        if isinstance(activity, Sale):
            for line in activity.items:
                ensure(line.item_id).sold += line.quantity
        elif isinstance(activity, WriteOff):
            ensure(activity.item_id).written_off += activity.quantity_removed
        elif isinstance(activity, StockChange):
            if activity.quantity_delta > 0:
                ensure(activity.item_id).delivered += activity.quantity_delta

    return counters


def counters_to_dict(counters: Mapping[str, ItemCounters]) -> dict:
    return {item_id: c.to_dict() for item_id, c in counters.items()}


def calculate_total_sales(items: Iterable, counters: Mapping[str, ItemCounters]) -> Decimal:
    """
    Sum of unit_price * sold over the current inventory list.

    Items sold but absent from the list are ignored (their price is unknown).
    Deriving the cash total from counters avoids a second running sum that
    could drift from the log.
    """
    total = Decimal("0")
    for item in items:
        c = counters.get(item.id)
        if c is None or not c.sold:
            continue
        total += (item.unit_price or Decimal("0")) * c.sold
    return total


def split_by_payment_method(activities: Iterable[Activity]) -> PaymentSplit:
    """
    Bucket each sale's goods total by payment method.

    Sales with no recorded payment method (records written before the method
    was captured) are split evenly between cash and card. This approximation
    is kept as-is so historical shift totals do not change.
    """
    cash = Decimal("0")
    card = Decimal("0")
    for activity in activities:
        if not isinstance(activity, Sale):
            continue
        total = activity.order_total
        if activity.payment_method == PAYMENT_CASH:
            cash += total
        elif activity.payment_method == PAYMENT_CARD:
            card += total
        else:
            cash += total * HALF
            card += total * HALF
    return PaymentSplit(cash=cash, card=card)


def count_orders(activities: Iterable[Activity]) -> int:
    return sum(1 for activity in activities if isinstance(activity, Sale))
