"""
Snapshot Editor — post-hoc corrections to the last scan.

An edit always rewrites the stored snapshot first, so the reviewed view keeps
the correction even if the directory write afterwards fails. Member rows are
then pushed through ReconciliationProcessor.merge_member() against the
snapshot's date:

  - profile/request edits on a row that resolves to an existing member send
    only the edited field (fill-forward, upsert-by-date);
  - name edits, and rows that resolve to no existing member, merge the whole
    edited row.

Guest rows are corrected in the view only; the Guest record keeps what was
stored at ingest time.
"""

import logging
from dataclasses import dataclass

from roster import identity
from roster.errors import NotFoundError, UnknownFieldError
from roster.models import ENTRY_TEXT_FIELDS, ExtractedEntry, Member, ScanSnapshot
from roster.reconcile import ReconciliationProcessor
from roster.storage import DirectoryBackend

logger = logging.getLogger(__name__)

# Attribute names accepted too, so Python callers can use either spelling.
_FIELD_ALIASES = {**ENTRY_TEXT_FIELDS, **{attr: attr for attr in ENTRY_TEXT_FIELDS.values()}}

_TARGETED_ATTRS = ("company", "sector", "phone", "handwritten_request")


@dataclass
class EditResult:
    snapshot: ScanSnapshot
    entry: ExtractedEntry
    member: Member | None = None
    action: str = "view_only"  # view_only | created | updated | unchanged | skipped


class SnapshotEditor:
    def __init__(self, backend: DirectoryBackend, processor: ReconciliationProcessor):
        self.backend = backend
        self.processor = processor

    def edit_field(self, owner_id: str, index: int, field: str, value: str) -> EditResult:
        """
        Set `field` of snapshot row `index` to `value` and sync the directory.

        Raises:
            UnknownFieldError: field is not an editable text field
            NotFoundError: no snapshot, or index out of range
            StorageError: snapshot or directory write failed
        """
        attr = _FIELD_ALIASES.get(field)
        if attr is None:
            raise UnknownFieldError(field, tuple(ENTRY_TEXT_FIELDS))

        snapshot = self.backend.get_snapshot(owner_id)
        if snapshot is None:
            raise NotFoundError("scan snapshot", owner_id)
        if not 0 <= index < len(snapshot.entries):
            raise NotFoundError("scan entry", index)

        entry = snapshot.entries[index]
        setattr(entry, attr, "" if value is None else str(value))
        self.backend.put_snapshot(snapshot)

        if entry.is_guest:
            return EditResult(snapshot=snapshot, entry=entry)

        if attr == "invited_by_name":
            member = None
            if identity.is_resolvable(entry.name):
                member = self.backend.get_member(owner_id, identity.resolve(owner_id, entry.name))
            return EditResult(snapshot=snapshot, entry=entry, member=member, action="unchanged")

        if not identity.is_resolvable(entry.name):
            logger.warning(f"Snapshot row {index} has no usable name; directory not updated")
            return EditResult(snapshot=snapshot, entry=entry, action="skipped")

        key = identity.resolve(owner_id, entry.name)
        existing = self.backend.get_member(owner_id, key)

        if existing is not None and attr in _TARGETED_ATTRS:
            payload = ExtractedEntry(name=entry.name, **{attr: getattr(entry, attr)})
        else:
            payload = entry

        member, action = self.processor.merge_member(owner_id, payload, snapshot.date)
        return EditResult(snapshot=snapshot, entry=entry, member=member, action=action)
