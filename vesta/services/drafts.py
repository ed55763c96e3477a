"""
DraftStore: holds the pre-enhance snapshot of a report while an AI
revision is under review.

The snapshot is what ``discard`` restores; it lives in the workspace store
(``enhanced-drafts`` collection, keyed by report id) so it survives a page
reload between enhance and accept/discard.
"""

from __future__ import annotations

from dataclasses import dataclass

from vesta.services.store import WorkspaceStore, get_store
from vesta.utils.helpers import utcnow_iso

COLLECTION = "enhanced-drafts"


@dataclass
class EnhancementDraft:
    report_id: str
    original_content: str
    revised_content: str | None = None
    ticket: str | None = None
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "reportId": self.report_id,
            "originalContent": self.original_content,
            "revisedContent": self.revised_content,
            "ticket": self.ticket,
            "createdAt": self.created_at or utcnow_iso(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> EnhancementDraft:
        return cls(
            report_id=data["reportId"],
            original_content=data.get("originalContent", ""),
            revised_content=data.get("revisedContent"),
            ticket=data.get("ticket"),
            created_at=data.get("createdAt", ""),
        )


class DraftStore:
    """Pre-enhance snapshots keyed by report id."""

    def __init__(self, store: WorkspaceStore | None = None):
        self._store = store

    @property
    def store(self) -> WorkspaceStore:
        return self._store or get_store()

    def get(self, report_id: str) -> EnhancementDraft | None:
        data = self.store.get(COLLECTION, report_id)
        return EnhancementDraft.from_dict(data) if data else None

    def set(self, report_id: str, draft: EnhancementDraft) -> None:
        draft.report_id = report_id
        self.store.set(COLLECTION, report_id, draft.to_dict())

    def delete(self, report_id: str) -> None:
        self.store.delete(COLLECTION, report_id)
