"""
Directory Store — members, guests and the last scan of each owner.

DirectoryStore wires a backend to the reconciliation and snapshot-edit logic.
for_owner() returns a Directory bound to one account; the owner id is
explicit context, never ambient state.

Usage:
    store = DirectoryStore(SQLiteDirectoryBackend(db_path))
    directory = store.for_owner(account.id)
    result = directory.add_or_update_members(entries, "2024-05-01")
    directory.members
"""

import logging
from collections.abc import Callable
from typing import Any

from roster import identity, timeline
from roster.errors import EmptyNameError, NotFoundError, UnknownFieldError
from roster.events import COLLECTIONS
from roster.models import ExtractedEntry, Guest, Member, ScanSnapshot
from roster.reconcile import ReconcileResult, ReconciliationProcessor
from roster.snapshot_editor import EditResult, SnapshotEditor
from roster.storage import DirectoryBackend

logger = logging.getLogger(__name__)

PROFILE_EDITABLE = ("name", "company", "sector", "phone")


def _matches(term: str, *values: str) -> bool:
    needle = term.strip().lower()
    if not needle:
        return True
    return any(needle in (v or "").lower() for v in values)


class DirectoryStore:
    def __init__(self, backend: DirectoryBackend):
        self.backend = backend
        self.processor = ReconciliationProcessor(backend)
        self.editor = SnapshotEditor(backend, self.processor)

    def for_owner(self, owner_id: str) -> "Directory":
        if not owner_id:
            raise ValueError("owner_id is required")
        return Directory(self, owner_id)


class Directory:
    """One owner's view of the directory. All reads and writes are scoped to owner_id."""

    def __init__(self, store: DirectoryStore, owner_id: str):
        self.store = store
        self.backend = store.backend
        self.owner_id = owner_id

    # ==================== Observed collections ====================

    @property
    def members(self) -> list[Member]:
        return self.backend.list_members(self.owner_id)

    @property
    def guests(self) -> list[Guest]:
        return self.backend.list_guests(self.owner_id)

    @property
    def last_scan(self) -> ScanSnapshot | None:
        return self.backend.get_snapshot(self.owner_id)

    def subscribe(self, collection: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Receive the full collection now and after every change. Returns unsubscribe."""
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection!r}")
        return self.backend.subscribe(self.owner_id, collection, callback)

    # ==================== Scans ====================

    def add_or_update_members(self, entries: list[ExtractedEntry], date: str) -> ReconcileResult:
        return self.store.processor.reconcile(self.owner_id, entries, date)

    def update_last_scan_entry(self, index: int, field: str, value: str) -> EditResult:
        return self.store.editor.edit_field(self.owner_id, index, field, value)

    # ==================== Members ====================

    def get_member(self, member_id: str) -> Member | None:
        return self.backend.get_member(self.owner_id, member_id)

    def require_member(self, member_id: str) -> Member:
        member = self.get_member(member_id)
        if member is None:
            raise NotFoundError("member", member_id)
        return member

    def delete_member(self, member_id: str) -> bool:
        """Delete a member and its references. Guests that name it as inviter are left alone."""
        deleted = self.backend.delete_member(self.owner_id, member_id)
        if deleted:
            logger.info(f"Deleted member {member_id}")
        return deleted

    def update_member_profile(self, member_id: str, fields: dict[str, str]) -> Member:
        """
        Set profile fields directly (a manual edit may blank a field).

        The member id never changes, even when the name does.
        """
        unknown = [f for f in fields if f not in PROFILE_EDITABLE]
        if unknown:
            raise UnknownFieldError(unknown[0], PROFILE_EDITABLE)

        member = self.require_member(member_id)
        changes = {}
        for name, value in fields.items():
            value = (value or "").strip()
            if name == "name":
                value = identity.display_name(value)
                if not value:
                    raise EmptyNameError(fields[name])
            changes[name] = value

        updated = member.with_fields(**changes)
        if updated != member:
            self.backend.put_member(updated)
        return updated

    def update_reference(self, member_id: str, ref_id: str, text: str) -> Member:
        member = self.require_member(member_id)
        updated = timeline.replace_text(member, ref_id, text or "")
        if updated is None:
            raise NotFoundError("reference", ref_id)
        if updated != member:
            self.backend.put_member(updated)
        return updated

    # ==================== Queries ====================

    def search_members(self, term: str) -> list[Member]:
        """Case-insensitive match on name, company or sector."""
        return [m for m in self.members if _matches(term, m.name, m.company, m.sector)]

    def search_guests(self, term: str) -> list[Guest]:
        return [
            g
            for g in self.guests
            if _matches(term, g.name, g.company, g.sector, g.invited_by_member_name)
        ]

    def guests_invited_by(self, member_id: str) -> list[Guest]:
        return [g for g in self.guests if g.invited_by_member_id == member_id]

    # ==================== Maintenance ====================

    def clear_all(self) -> dict:
        """Delete the owner's snapshot, members, references and guests."""
        counts = self.backend.clear_owner(self.owner_id)
        logger.warning(f"Cleared directory for owner {self.owner_id}: {counts}")
        return counts
