from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class LocalEntry(db.Model):
    """
    Terminal-local keyed entry holding one serialized JSON document.

    WHY: The activity log is advisory scratch state that belongs to this
    terminal only. It is stored as a single JSON array under one key, the
    same way a browser keeps it in localStorage, so a reload (or a process
    restart) finds it again.

    DESIGN: Last writer wins. Two terminal windows sharing the same SQLite
    file overwrite each other's value; no merge is attempted.
    """
    __tablename__ = "local_entries"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_local_entries_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False, index=True)
    value = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<LocalEntry key={self.key!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "size": len(self.value or ""),
            "updated_at": to_utc_z(self.updated_at),
        }
