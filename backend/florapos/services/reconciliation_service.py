"""
Shift Reconciliation Service

WHY: At the end of a shift the terminal collapses its local activity log and
the current inventory list into one authoritative shift record in the
content backend.

STATE MACHINE (one per close invocation):
    idle -> loading -> built -> upserting -> done
               |                          -> failed
               +-> failed

DESIGN PRINCIPLES:
- The log is read once, at the start of loading. Activities appended later
  are not part of this shift and survive the close.
- The inventory list is whatever is cached; no refresh is forced, so a slow
  network never blocks closing a shift. An empty cache still closes, with
  zero-valued rows for the counted items.
- Create vs. update is decided by looking the record up by natural key
  (date + worker). The backend has no upsert-by-natural-key, and a close is
  retried after failures, so the lookup is what makes retries idempotent.
- The log is cleared only after the backend confirmed the write. A failed
  close leaves the log untouched.
- Closes for the same shift key run one at a time.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Protocol

from .activity_log import ActivityLog
from .aggregation_service import (
    aggregate,
    calculate_total_sales,
    count_orders,
    split_by_payment_method,
)
from .content_store import ContentStoreError
from .inventory_cache import InventoryCache
from .shift_schemas import ShiftItemRow, ShiftKey, ShiftRecord, ShiftSnapshot

logger = logging.getLogger(__name__)


STATE_IDLE = "idle"
STATE_LOADING = "loading"
STATE_BUILT = "built"
STATE_UPSERTING = "upserting"
STATE_DONE = "done"
STATE_FAILED = "failed"

_TRANSITIONS = {
    STATE_IDLE: {STATE_LOADING},
    STATE_LOADING: {STATE_BUILT, STATE_FAILED},
    STATE_BUILT: {STATE_UPSERTING},
    STATE_UPSERTING: {STATE_DONE, STATE_FAILED},
    STATE_DONE: set(),
    STATE_FAILED: set(),
}


class ReconciliationError(Exception):
    """
    Raised when a shift close fails. The activity log is untouched and the
    close can be retried as-is.
    """

    def __init__(self, message: str, *, state: str = STATE_FAILED, failed_from: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.state = state
        self.failed_from = failed_from
        self.retryable = retryable


class ShiftRecordStore(Protocol):
    def find_shift(self, key: ShiftKey) -> ShiftRecord | None: ...

    def create_shift(self, payload: dict) -> ShiftRecord: ...

    def update_shift(self, document_id: str, payload: dict) -> ShiftRecord: ...


@dataclass
class ShiftClose:
    """Progress of one close invocation."""
    key: ShiftKey
    state: str = STATE_IDLE
    history: list[str] = field(default_factory=lambda: [STATE_IDLE])
    snapshot: ShiftSnapshot | None = None
    record: ShiftRecord | None = None
    created: bool | None = None
    error: str | None = None

    def advance(self, new_state: str) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal shift-close transition {self.state} -> {new_state}")
        logger.info("Shift %s/%s: %s -> %s", *self.key.natural_key, self.state, new_state)
        self.state = new_state
        self.history.append(new_state)

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "history": list(self.history),
            "created": self.created,
            "error": self.error,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "record": self.record.to_dict() if self.record else None,
        }


def build_item_rows(items, counters) -> tuple[ShiftItemRow, ...]:
    """
    One row per inventory item, then zero-valued rows for counted items the
    inventory list does not know (sold before the cache was populated, or
    deleted since).
    """
    rows: list[ShiftItemRow] = []
    seen: set[str] = set()
    for item in items:
        c = counters.get(item.id)
        seen.add(item.id)
        rows.append(ShiftItemRow(
            item_id=item.id,
            name=item.name,
            item_kind=item.kind,
            on_hand=item.on_hand_quantity,
            unit_price=item.unit_price,
            sold=c.sold if c else 0,
            written_off=c.written_off if c else 0,
            delivered=c.delivered if c else 0,
        ))
    for item_id in sorted(set(counters) - seen):
        c = counters[item_id]
        rows.append(ShiftItemRow(
            item_id=item_id,
            sold=c.sold,
            written_off=c.written_off,
            delivered=c.delivered,
        ))
    return tuple(rows)


class ShiftReconciler:
    def __init__(
        self,
        activity_log: ActivityLog,
        inventory: InventoryCache,
        store: ShiftRecordStore,
        *,
        on_transition: Callable[[ShiftClose], None] | None = None,
    ):
        self.activity_log = activity_log
        self.inventory = inventory
        self.store = store
        self._on_transition = on_transition
        # Entries vanish once no close for that key holds the lock
        self._key_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._key_locks_guard = threading.Lock()

    def _lock_for(self, key: ShiftKey) -> threading.Lock:
        with self._key_locks_guard:
            lock = self._key_locks.get(key.natural_key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key.natural_key] = lock
            return lock

    def _advance(self, close: ShiftClose, new_state: str) -> None:
        close.advance(new_state)
        if self._on_transition is not None:
            self._on_transition(close)

    def build_snapshot(
        self,
        key: ShiftKey,
        *,
        cash: Decimal | None = None,
        comment: str = "",
    ) -> ShiftSnapshot:
        """
        Loading -> Built: merge the current log with the cached inventory.

        cash overrides the computed total; otherwise the total is derived
        from sold counters and cached prices.
        """
        activities = self.activity_log.read()
        counters = aggregate(activities)
        items = self.inventory.items

        if not items:
            logger.warning("Building shift %s/%s with an empty inventory cache", *key.natural_key)

        cash_total = cash if cash is not None else calculate_total_sales(items, counters)
        return ShiftSnapshot(
            shift_key=key,
            cash_total=cash_total,
            cash_by_method=split_by_payment_method(activities),
            orders_count=count_orders(activities),
            items=build_item_rows(items, counters),
            raw_activity_log=tuple(activities),
            comment=comment or "",
        )

    def close_shift(
        self,
        key: ShiftKey,
        *,
        cash: Decimal | None = None,
        comment: str = "",
    ) -> ShiftClose:
        """
        Run a full close. Returns the finished ShiftClose (state done).

        Raises ReconciliationError on any failure, after moving the close to
        failed; the activity log is left as it was.
        """
        with self._lock_for(key):
            close = ShiftClose(key=key)

            self._advance(close, STATE_LOADING)
            try:
                close.snapshot = self.build_snapshot(key, cash=cash, comment=comment)
            except Exception as exc:
                logger.exception("Shift %s/%s snapshot could not be built", *key.natural_key)
                self._fail(close, exc, retryable=False)
            self._advance(close, STATE_BUILT)

            self._advance(close, STATE_UPSERTING)
            try:
                record, created = self._upsert(close.snapshot)
            except (ContentStoreError, ReconciliationError) as exc:
                logger.warning("Shift %s/%s close failed: %s", *key.natural_key, exc)
                self._fail(close, exc, retryable=exc.retryable)
            except Exception as exc:
                logger.exception("Shift %s/%s upsert failed unexpectedly", *key.natural_key)
                self._fail(close, exc, retryable=False)

            close.record = record
            close.created = created
            # Confirmed by the backend; only now may the reconciled entries go
            self.activity_log.clear(ids=[a.id for a in close.snapshot.raw_activity_log])
            self._advance(close, STATE_DONE)
            return close

    def _fail(self, close: ShiftClose, exc: Exception, *, retryable: bool) -> None:
        failed_from = close.state
        close.error = str(exc) or type(exc).__name__
        self._advance(close, STATE_FAILED)
        raise ReconciliationError(
            f"Shift close failed: {close.error}",
            failed_from=failed_from,
            retryable=retryable,
        ) from exc

    def _upsert(self, snapshot: ShiftSnapshot) -> tuple[ShiftRecord, bool]:
        key = snapshot.shift_key
        payload = snapshot.to_payload()
        existing = self.store.find_shift(key)
        if existing is not None:
            if not existing.document_id:
                raise ReconciliationError("existing shift record has no documentId", retryable=False)
            logger.info("Updating shift record %s for %s/%s", existing.document_id, *key.natural_key)
            record = self.store.update_shift(existing.document_id, payload)
            created = False
        else:
            logger.info("Creating shift record for %s/%s", *key.natural_key)
            record = self.store.create_shift(payload)
            created = True
        if record is None or not record.document_id:
            raise ReconciliationError("shift store did not confirm the write", retryable=True)
        return record, created
