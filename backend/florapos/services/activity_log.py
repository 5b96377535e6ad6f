# Overview: Append-only, capped activity log persisted under one key.

"""
Activity Log

WHY: The terminal records every sale, write-off and stock change locally so
that closing a shift can reduce them into per-item counters without a
server-side ledger.

DESIGN PRINCIPLES:
- Newest first; capped at max_entries, oldest entries silently evicted.
  The cap is a best-effort bound, not a durability guarantee.
- append() never raises for a malformed record: it is logged and dropped,
  because a bad event must never break the point-of-sale flow.
- read() never raises: absent or unparsable storage reads as "no activity".
- Storage failures are logged; the log keeps working from memory for the
  operation that failed.
- Persistence is injected (ActivityStorage), one ActivityLog per process.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Iterable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LocalEntry
from ..signals import activity_log_changed
from .activity_schemas import (
    Activity,
    ActivityShapeError,
    normalize_activities,
    parse_activity,
)
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

DEFAULT_KEY = "recentActivities"
DEFAULT_MAX_ENTRIES = 500


class StorageError(Exception):
    """Raised by storage backends; never escapes ActivityLog."""


class ActivityStorage(Protocol):
    def load(self, key: str) -> str | None: ...

    def save(self, key: str, value: str) -> None: ...


# =============================================================================
# STORAGE BACKENDS
# =============================================================================

class MemoryStorage:
    """Dict-backed storage. Used in tests and for ACTIVITY_LOG_STORAGE=memory."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    def load(self, key: str) -> str | None:
        return self.data.get(key)

    def save(self, key: str, value: str) -> None:
        self.data[key] = value


class LocalEntryStorage:
    """
    One LocalEntry row per key in the terminal-local database.

    Must be used inside an application context.
    """

    def load(self, key: str) -> str | None:
        try:
            entry = db.session.query(LocalEntry).filter_by(key=key).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f"failed to load {key!r}") from exc
        return entry.value if entry else None

    def save(self, key: str, value: str) -> None:
        def _op():
            entry = db.session.query(LocalEntry).filter_by(key=key).first()
            if entry is None:
                entry = LocalEntry(key=key)
                db.session.add(entry)
            entry.value = value
            db.session.commit()

        try:
            run_with_retry(_op)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f"failed to save {key!r}") from exc


# =============================================================================
# ACTIVITY LOG
# =============================================================================

class ActivityLog:
    def __init__(
        self,
        storage: ActivityStorage,
        *,
        key: str = DEFAULT_KEY,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.storage = storage
        self.key = key
        self.max_entries = max_entries
        self._lock = threading.RLock()
        # Set only while the last write failed; read() serves it instead of storage
        self._unsaved: list[Activity] | None = None

    def append(self, activity: Any) -> Activity | None:
        """
        Validate, normalize and prepend one activity.

        Returns the stored Activity, or None when the record was discarded
        (malformed, or an id already present in the log).
        """
        try:
            record = parse_activity(activity)
        except ActivityShapeError as exc:
            logger.warning("Discarding malformed activity: %s", exc)
            return None

        with self._lock:
            current = self.read()
            if any(existing.id == record.id for existing in current):
                logger.info("Discarding duplicate activity %s", record.id)
                return None
            self._write([record, *current])
        self._notify()
        return record

    def read(self) -> list[Activity]:
        """All activities, newest first. Never raises."""
        with self._lock:
            if self._unsaved is not None:
                return list(self._unsaved)
            try:
                raw = self.storage.load(self.key)
            except StorageError:
                logger.exception("Activity log storage unreadable; treating as empty")
                return []
            if not raw:
                return []
            try:
                decoded = json.loads(raw)
            except (TypeError, ValueError):
                logger.error("Activity log under %r is not valid JSON; treating as empty", self.key)
                return []
            return normalize_activities(decoded)[: self.max_entries]

    def clear(self, ids: Iterable[str] | None = None) -> None:
        """
        Replace the persisted list with an empty one.

        With ids, only those activities are dropped; anything appended after
        a shift snapshot was taken stays for the next close.
        """
        with self._lock:
            if ids is None:
                self._write([])
            else:
                drop = set(ids)
                self._write([a for a in self.read() if a.id not in drop])
        self._notify()

    def __len__(self) -> int:
        return len(self.read())

    def _write(self, activities: list[Activity]) -> None:
        capped = activities[: self.max_entries]
        try:
            text = json.dumps([activity.to_dict() for activity in capped])
            self.storage.save(self.key, text)
        except (StorageError, TypeError, ValueError):
            logger.exception("Activity log write failed; keeping %d entries in memory", len(capped))
            self._unsaved = capped
            return
        self._unsaved = None

    def _notify(self) -> None:
        try:
            activity_log_changed.send(self)
        except Exception:
            logger.exception("activity_log_changed receiver failed")
