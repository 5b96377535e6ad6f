import json
import logging

import pytest

from florapos.services.activity_log import ActivityLog, MemoryStorage, StorageError
from florapos.signals import activity_log_changed


def _sale(activity_id, item_id="rose-red", quantity=1, price=120, method="cash"):
    return {
        "kind": "sale",
        "id": activity_id,
        "items": [{"itemId": item_id, "quantity": quantity, "unitPrice": price}],
        "paymentMethod": method,
    }


class FlakyStorage(MemoryStorage):
    def __init__(self):
        super().__init__()
        self.fail_saves = False
        self.fail_loads = False

    def load(self, key):
        if self.fail_loads:
            raise StorageError("disk gone")
        return super().load(key)

    def save(self, key, value):
        if self.fail_saves:
            raise StorageError("quota exceeded")
        super().save(key, value)


def test_append_prepends_and_persists():
    storage = MemoryStorage()
    log = ActivityLog(storage)

    log.append(_sale("a1"))
    log.append(_sale("a2"))

    assert [a.id for a in log.read()] == ["a2", "a1"]
    stored = json.loads(storage.data["recentActivities"])
    assert [entry["id"] for entry in stored] == ["a2", "a1"]
    assert stored[0]["kind"] == "sale"


def test_malformed_activity_is_discarded_and_logged(caplog):
    log = ActivityLog(MemoryStorage())

    with caplog.at_level(logging.WARNING, logger="florapos.services.activity_log"):
        assert log.append({"kind": "sale", "items": []}) is None
        assert log.append({"id": "x", "kind": "unknown"}) is None
        assert log.append("not a record") is None

    assert log.read() == []
    assert "Discarding malformed activity" in caplog.text


def test_duplicate_id_is_discarded():
    log = ActivityLog(MemoryStorage())
    assert log.append(_sale("a1")) is not None
    assert log.append(_sale("a1", quantity=5)) is None
    assert len(log) == 1
    assert log.read()[0].items[0].quantity == 1


def test_cap_keeps_the_most_recent_entries():
    log = ActivityLog(MemoryStorage())
    for n in range(600):
        log.append(_sale(f"a{n}"))

    activities = log.read()
    assert len(activities) == 500
    assert activities[0].id == "a599"
    assert activities[-1].id == "a100"
    assert {a.id for a in activities} == {f"a{n}" for n in range(100, 600)}


def test_custom_cap():
    log = ActivityLog(MemoryStorage(), max_entries=3)
    for n in range(5):
        log.append(_sale(f"a{n}"))
    assert [a.id for a in log.read()] == ["a4", "a3", "a2"]


def test_read_treats_unparsable_storage_as_empty():
    log = ActivityLog(MemoryStorage({"recentActivities": "{not json"}))
    assert log.read() == []

    log = ActivityLog(MemoryStorage({"recentActivities": json.dumps({"items": []})}))
    assert log.read() == []


def test_read_normalizes_legacy_entries_in_storage():
    legacy = [
        {"type": "order", "id": "o1", "ts": 1714557600000, "payload": {"items": [{"documentId": "rose-red", "quantity": 2}]}},
        {"type": "productDeleted", "id": "d1", "payload": {"documentId": "rose-red", "availableQuantity": 1}},
        {"type": "somethingElse", "id": "z"},
    ]
    log = ActivityLog(MemoryStorage({"recentActivities": json.dumps(legacy)}))
    assert [a.kind for a in log.read()] == ["sale", "write_off"]


def test_clear_empties_the_log():
    storage = MemoryStorage()
    log = ActivityLog(storage)
    log.append(_sale("a1"))
    log.clear()
    assert log.read() == []
    assert json.loads(storage.data["recentActivities"]) == []


def test_clear_with_ids_keeps_other_entries():
    log = ActivityLog(MemoryStorage())
    for n in range(3):
        log.append(_sale(f"a{n}"))
    log.clear(ids=["a0", "a2"])
    assert [a.id for a in log.read()] == ["a1"]


def test_save_failure_degrades_to_memory():
    storage = FlakyStorage()
    log = ActivityLog(storage)
    log.append(_sale("a1"))

    storage.fail_saves = True
    assert log.append(_sale("a2")) is not None
    assert [a.id for a in log.read()] == ["a2", "a1"]

    storage.fail_saves = False
    log.append(_sale("a3"))
    assert [a.id for a in log.read()] == ["a3", "a2", "a1"]
    assert [e["id"] for e in json.loads(storage.data["recentActivities"])] == ["a3", "a2", "a1"]


def test_load_failure_reads_as_empty():
    storage = FlakyStorage()
    log = ActivityLog(storage)
    log.append(_sale("a1"))
    storage.fail_loads = True
    assert log.read() == []


def test_change_notification_after_append_and_clear():
    log = ActivityLog(MemoryStorage())
    received = []

    def on_change(sender):
        received.append(sender)

    activity_log_changed.connect(on_change)
    try:
        log.append(_sale("a1"))
        log.append({"kind": "broken"})
        log.clear()
    finally:
        activity_log_changed.disconnect(on_change)

    assert received == [log, log]


def test_failing_receiver_does_not_break_append():
    log = ActivityLog(MemoryStorage())

    def broken(sender):
        raise RuntimeError("render failed")

    activity_log_changed.connect(broken)
    try:
        assert log.append(_sale("a1")) is not None
    finally:
        activity_log_changed.disconnect(broken)
    assert len(log) == 1


def test_max_entries_must_be_positive():
    with pytest.raises(ValueError):
        ActivityLog(MemoryStorage(), max_entries=0)


def test_out_of_range_amount_does_not_stop_persistence():
    storage = MemoryStorage()
    log = ActivityLog(storage)

    assert log.append(_sale("huge", price="1e5000")) is None
    assert log.append(_sale("a1")) is not None

    stored = json.loads(storage.data["recentActivities"])
    assert [entry["id"] for entry in stored] == ["a1"]
    assert log._unsaved is None
