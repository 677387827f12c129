from __future__ import annotations

from ..extensions import db
from shopos.time_utils import to_utc_z


class LocalStorageEntry(db.Model):
    """
    Key-value row backing the device's durable local storage.

    WHY: The local state snapshot and the pending operation queue must survive
    process restarts. Each is serialized as one JSON blob under a fixed key,
    so a single narrow table is enough.
    """
    __tablename__ = "local_storage"

    key = db.Column(db.String(128), primary_key=True)
    value = db.Column(db.Text, nullable=False)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<LocalStorageEntry key={self.key!r} size={len(self.value or '')}>"

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "size": len(self.value or ""),
            "updated_at": to_utc_z(self.updated_at),
        }
