from datetime import datetime
from decimal import Decimal

import pytest

from florapos.services.activity_schemas import (
    ActivityShapeError,
    Sale,
    SaleLine,
    StockChange,
    VarietyChange,
    WriteOff,
    normalize_activities,
    normalize_activity,
    parse_activity,
)
from florapos.services.shift_schemas import ShiftKey, ShiftRecord, normalize_snapshot


def test_canonical_sale_roundtrips_through_to_dict():
    raw = {
        "kind": "sale",
        "id": "a1",
        "timestamp": "2024-05-01T10:00:00Z",
        "items": [{"itemId": "rose-red", "quantity": 3, "unitPrice": 120}],
        "paymentMethod": "cash",
        "source": "pos",
    }
    sale = parse_activity(raw)
    assert isinstance(sale, Sale)
    assert sale.timestamp == datetime(2024, 5, 1, 10, 0, 0)
    assert sale.order_total == Decimal("360")
    assert parse_activity(sale.to_dict()) == sale


def test_legacy_order_with_payload_items():
    sale = normalize_activity({
        "type": "order",
        "id": "o1",
        "ts": 1714557600000,
        "payload": {"items": [{"documentId": "rose-red", "quantity": 2, "price": "120.50"}]},
        "paymentMethod": "card",
    })
    assert isinstance(sale, Sale)
    assert sale.items[0].item_id == "rose-red"
    assert sale.items[0].unit_price == Decimal("120.50")
    assert sale.payment_method == "card"
    assert sale.timestamp == datetime(2024, 5, 1, 10, 0, 0)


def test_oldest_order_shape_without_type():
    sale = normalize_activity({"id": "o2", "items": [{"documentId": "tulip-white", "quantity": 1}]})
    assert isinstance(sale, Sale)
    assert sale.payment_method is None
    assert sale.items[0].unit_price == Decimal("0")


def test_sale_lines_without_item_are_dropped():
    sale = normalize_activity({
        "kind": "sale",
        "id": "s1",
        "items": [{"quantity": 4}, {"itemId": "rose-red", "quantity": 1}],
    })
    assert [line.item_id for line in sale.items] == ["rose-red"]


def test_unknown_payment_method_is_treated_as_missing():
    sale = normalize_activity({"kind": "sale", "id": "s1", "items": [], "paymentMethod": "crypto"})
    assert sale.payment_method is None


def test_product_deleted_uses_available_quantity_then_remaining_after():
    current = normalize_activity({"type": "productDeleted", "id": "w1", "payload": {"documentId": "rose-red", "availableQuantity": 4}})
    oldest = normalize_activity({"type": "productDeleted", "id": "w2", "payload": {"documentId": "rose-red", "remainingAfter": 2}})
    assert isinstance(current, WriteOff) and current.quantity_removed == 4
    assert isinstance(oldest, WriteOff) and oldest.quantity_removed == 2


def test_write_off_prefers_quantity_removed():
    write_off = normalize_activity({
        "kind": "write_off",
        "id": "w3",
        "itemId": "rose-red",
        "quantityRemoved": 1,
        "remainingAfter": 9,
    })
    assert write_off.quantity_removed == 1
    assert write_off.remaining_after == 9


def test_product_created_and_updated_map_to_stock_change():
    created = normalize_activity({"type": "productCreated", "id": "p1", "payload": {"documentId": "x", "availableQuantity": 10}})
    updated = normalize_activity({"type": "productUpdated", "id": "p2", "payload": {"documentId": "x", "availableQuantity": 12, "delta": 2}})
    negative = normalize_activity({"type": "productUpdated", "id": "p3", "payload": {"documentId": "x", "availableQuantity": -3}})

    assert isinstance(created, StockChange)
    assert created.is_new_item is True
    assert created.quantity_delta == 10
    assert updated.is_new_item is False
    assert updated.quantity_delta == 2
    assert negative.quantity_delta == 0


def test_variety_events():
    created = normalize_activity({"type": "varietyCreated", "id": "v1", "payload": {"documentId": "peony"}})
    assert isinstance(created, VarietyChange)
    assert created.change == "created"
    assert created.variety_id == "peony"


@pytest.mark.parametrize("raw", [
    None,
    "sale",
    {"kind": "sale", "items": []},
    {"kind": "refund", "id": "x"},
    {"kind": "write_off", "id": "x", "itemId": "rose-red"},
    {"kind": "sale", "id": "x", "items": [{"itemId": "a", "quantity": -1}]},
    {"kind": "sale", "id": "x", "timestamp": "yesterday", "items": []},
    {"kind": "stock_change", "id": "x"},
])
def test_malformed_records_are_rejected(raw):
    assert normalize_activity(raw) is None
    with pytest.raises(ActivityShapeError):
        parse_activity(raw)


def test_normalize_activities_keeps_order_and_drops_bad_entries():
    result = normalize_activities([
        {"kind": "variety_change", "id": "3", "varietyId": "v"},
        {"kind": "nonsense", "id": "2"},
        {"kind": "write_off", "id": "1", "itemId": "a", "quantityRemoved": 1},
    ])
    assert [a.id for a in result] == ["3", "1"]
    assert normalize_activities({"not": "a list"}) == []


def test_snapshot_normalizes_bare_array_and_document():
    bare = normalize_snapshot([{"product": "rose-red", "quantity": 5, "price": 120, "type": "flower"}])
    document = normalize_snapshot({
        "items": [{"itemId": "rose-red", "onHand": 5, "sold": 3, "unitPrice": 120}],
        "ordersCount": 1,
        "cashSales": 360,
    })

    assert bare.items[0].item_id == "rose-red"
    assert bare.items[0].on_hand == 5
    assert bare.items[0].item_kind == "flower"
    assert document.items[0].sold == 3
    assert document.orders_count == 1
    assert document.cash_by_method.cash == Decimal("360")
    assert normalize_snapshot("garbage").items == ()


def test_shift_record_reads_v4_attributes_shape():
    record = ShiftRecord.from_store({
        "id": 12,
        "attributes": {
            "date": "2024-05-01",
            "cash": "300",
            "worker": {"data": {"id": 7, "attributes": {"slug": "anna"}}},
            "itemsSnapshot": [{"product": "rose-red", "quantity": 2}],
        },
    })
    assert record.document_id == "12"
    assert record.worker_id == 7
    assert record.worker_slug == "anna"
    assert record.cash == Decimal("300")
    assert record.matches(ShiftKey(date=datetime(2024, 5, 1).date(), worker_id=7))
    assert not record.matches(ShiftKey(date=datetime(2024, 5, 2).date(), worker_id=7))
    assert not record.matches(ShiftKey(date=datetime(2024, 5, 1).date(), worker_id=8, worker_slug="ivan"))


@pytest.mark.parametrize("line", [
    {"itemId": "rose-red", "quantity": 1, "unitPrice": "1e5000"},
    {"itemId": "rose-red", "quantity": 1, "unitPrice": 10**13},
    {"itemId": "rose-red", "quantity": 10**12, "unitPrice": 120},
    {"itemId": "rose-red", "quantity": "9" * 5000, "unitPrice": 120},
])
def test_amounts_and_quantities_out_of_range_are_rejected(line):
    raw = {"kind": "sale", "id": "huge", "paymentMethod": "cash", "items": [line]}
    with pytest.raises(ActivityShapeError):
        parse_activity(raw)


def test_built_activity_with_huge_amount_is_rejected():
    sale = Sale(
        id="huge",
        timestamp=datetime(2024, 5, 1, 10, 0),
        items=(SaleLine(item_id="rose-red", quantity=1, unit_price=Decimal("1e999999")),),
        payment_method="cash",
    )
    with pytest.raises(ActivityShapeError):
        parse_activity(sale)
