"""
Vesta Plan Resilience Review
Key-value store table.

Models:
    - StoreEntry: one JSON document per (collection, key).

Collections mirror the workspace blob stores: ``workspaces``,
``workspace-members``, ``reports``, ``audit-logs``, ``knowledge-sources``,
``dismissal-rules``, ``custom-regulations`` (keyed by workspace id),
``user-workspaces``, ``user-invitations``, ``users`` (keyed by email) and
``enhanced-drafts`` (keyed by report id).
"""

import json
from datetime import datetime, timezone

from vesta.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class StoreEntry(db.Model):
    """Whole-collection JSON document; writes replace the payload (last-write-wins)."""

    __tablename__ = "store_entries"
    __table_args__ = (
        db.UniqueConstraint("collection", "key", name="uq_store_collection_key"),
        db.Index("idx_store_collection", "collection"),
    )

    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(64), nullable=False)
    key = db.Column(db.String(255), nullable=False)
    payload_json = db.Column(db.Text, nullable=False, default="null")
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def payload(self):
        return json.loads(self.payload_json) if self.payload_json else None

    @payload.setter
    def payload(self, value):
        self.payload_json = json.dumps(value, ensure_ascii=False)

    def __repr__(self):
        return f"<StoreEntry {self.collection}/{self.key}>"
