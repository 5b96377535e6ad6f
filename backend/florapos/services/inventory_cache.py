# Overview: TTL-guarded, single-flight cache of the current inventory list.

"""
Inventory Cache

WHY: Point-of-sale screens, admin screens and shift close all need the item
list; fetching it on every use would make the terminal unusable on a slow
connection.

DESIGN PRINCIPLES:
- fetch() hits the network only when forced, never fetched, or older than
  the TTL (5 minutes by default).
- Single flight: callers arriving while a fetch is running wait for it
  instead of issuing a second request.
- Available over consistent: a failed fetch keeps the previous list and only
  records the error.
- invalidate() forgets the fetch time but keeps the list visible until the
  next fetch replaces it.
- add/update/remove mutate the list optimistically and do not touch the
  fetch time.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable

from ..signals import inventory_changed
from ..time_utils import to_utc_z, utcnow
from .content_store import ContentStoreError, InventoryItem

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class InventoryCache:
    def __init__(
        self,
        loader: Callable[[], list[InventoryItem]],
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._items: list[InventoryItem] = []
        self._fetched_at: float | None = None  # clock() of the last successful fetch
        self._inflight: threading.Event | None = None
        self.last_fetched_at: datetime | None = None
        self.last_error: str | None = None
        self.fetch_count = 0

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def items(self) -> list[InventoryItem]:
        with self._lock:
            return list(self._items)

    def get(self, item_id: str) -> InventoryItem | None:
        with self._lock:
            for item in self._items:
                if item.id == item_id:
                    return item
        return None

    def by_kind(self, kind: str) -> list[InventoryItem]:
        with self._lock:
            return [item for item in self._items if item.kind == kind]

    def is_stale(self) -> bool:
        with self._lock:
            return self._is_stale_locked()

    def _is_stale_locked(self) -> bool:
        if self._fetched_at is None:
            return True
        return (self._clock() - self._fetched_at) > self.ttl_seconds

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._inflight is not None

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def fetch(self, force: bool = False) -> bool:
        """
        Refresh the list if forced or stale.

        Returns True when this call performed a successful network read.
        A network failure returns False and is recorded in last_error.
        """
        with self._lock:
            inflight = self._inflight
            if inflight is None:
                if not force and not self._is_stale_locked():
                    return False
                inflight = self._inflight = threading.Event()
                leader = True
            else:
                leader = False

        if not leader:
            inflight.wait()
            return False

        try:
            self.fetch_count += 1
            items = self._loader()
        except ContentStoreError as exc:
            with self._lock:
                self.last_error = str(exc)
            logger.warning("Inventory fetch failed; keeping %d cached items: %s", len(self._items), exc)
            return False
        else:
            with self._lock:
                self._items = list(items)
                self._fetched_at = self._clock()
                self.last_fetched_at = utcnow()
                self.last_error = None
            logger.debug("Inventory fetched: %d items", len(items))
            self._notify()
            return True
        finally:
            with self._lock:
                self._inflight = None
            inflight.set()

    def refresh(self) -> bool:
        return self.fetch(force=True)

    def invalidate(self) -> None:
        with self._lock:
            self._fetched_at = None

    def clear(self) -> None:
        with self._lock:
            self._items = []
            self._fetched_at = None
            self.last_fetched_at = None
            self.last_error = None
        self._notify()

    # -------------------------------------------------------------------------
    # Optimistic local mutation
    # -------------------------------------------------------------------------

    def add(self, item: InventoryItem) -> None:
        with self._lock:
            self._items = [existing for existing in self._items if existing.id != item.id]
            self._items.append(item)
        self._notify()

    def update(self, item: InventoryItem) -> bool:
        """Replace the cached item with the same id. Returns False if absent."""
        with self._lock:
            found = False
            updated = []
            for existing in self._items:
                if existing.id == item.id:
                    updated.append(item)
                    found = True
                else:
                    updated.append(existing)
            self._items = updated
        if found:
            self._notify()
        return found

    def remove(self, item: InventoryItem | str) -> bool:
        item_id = item if isinstance(item, str) else item.id
        with self._lock:
            before = len(self._items)
            self._items = [existing for existing in self._items if existing.id != item_id]
            removed = len(self._items) != before
        if removed:
            self._notify()
        return removed

    def adjust_on_hand(self, item_id: str, delta: int) -> InventoryItem | None:
        """Shift one item's on-hand quantity, floored at zero like the backend does."""
        current = self.get(item_id)
        if current is None:
            return None
        adjusted = replace(current, on_hand_quantity=max(0, current.on_hand_quantity + delta))
        self.update(adjusted)
        return adjusted

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "items": [item.to_dict() for item in self._items],
                "lastFetchedAt": to_utc_z(self.last_fetched_at),
                "stale": self._is_stale_locked(),
                "loading": self._inflight is not None,
                "error": self.last_error,
            }

    def _notify(self) -> None:
        try:
            inventory_changed.send(self)
        except Exception:
            logger.exception("inventory_changed receiver failed")
