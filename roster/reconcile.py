"""
Reconciliation Processor — merges one confirmed scan into the directory.

For each row, in batch order and independently of its siblings:
  guest row  -> new Guest (never deduplicated), inviter linked by name
  member row -> resolve identity -> fill-forward profile -> upsert reference
Then the whole batch overwrites the owner's last-scan snapshot.

The batch is NOT a transaction. A storage failure on one row is recorded and
the remaining rows still run; rows already written stay written. Every step
is idempotent or additive, so re-running a failed batch converges on the same
directory state (guests excepted: a re-run adds them again).

merge_member() is the single per-member merge path. The snapshot editor
calls it too, so fresh scans and manual corrections cannot diverge.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime

from roster import identity, timeline
from roster.errors import InputQualityError, ReconciliationError, StorageError
from roster.models import ExtractedEntry, Guest, Member, ScanSnapshot, new_id, now_iso
from roster.storage import DirectoryBackend

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("company", "sector", "phone")

DATE_FORMAT = "%Y-%m-%d"


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class RowOutcome:
    """What happened to one row of the batch."""

    index: int
    name: str
    kind: str  # member | guest
    action: str  # created | updated | unchanged | skipped | failed
    entity_id: str | None = None
    reason: str | None = None


@dataclass
class ReconcileResult:
    """Directory mutations produced by one reconciliation run."""

    owner_id: str
    date: str
    outcomes: list[RowOutcome] = field(default_factory=list)
    snapshot_saved: bool = False

    def _ids(self, kind: str, action: str) -> list[str]:
        return [
            o.entity_id for o in self.outcomes if o.kind == kind and o.action == action and o.entity_id
        ]

    @property
    def members_created(self) -> list[str]:
        return self._ids("member", "created")

    @property
    def members_updated(self) -> list[str]:
        return self._ids("member", "updated")

    @property
    def guests_created(self) -> list[str]:
        return self._ids("guest", "created")

    @property
    def skipped(self) -> list[RowOutcome]:
        return [o for o in self.outcomes if o.action == "skipped"]

    @property
    def failed(self) -> list[RowOutcome]:
        return [o for o in self.outcomes if o.action == "failed"]

    @property
    def ok(self) -> bool:
        """Every usable row was applied and the snapshot was written."""
        return self.snapshot_saved and not self.failed

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "date": self.date,
            "ok": self.ok,
            "snapshot_saved": self.snapshot_saved,
            "members_created": self.members_created,
            "members_updated": self.members_updated,
            "guests_created": self.guests_created,
            "skipped": [asdict(o) for o in self.skipped],
            "failed": [asdict(o) for o in self.failed],
            "outcomes": [asdict(o) for o in self.outcomes],
        }


def validate_date(date: str) -> str:
    """Meeting dates are calendar dates, YYYY-MM-DD."""
    try:
        datetime.strptime(date, DATE_FORMAT)
    except (TypeError, ValueError) as e:
        raise InputQualityError(f"Invalid meeting date {date!r}, expected YYYY-MM-DD") from e
    return date


# =============================================================================
# PURE MERGE STEPS
# =============================================================================


def fill_forward(member: Member, entry: ExtractedEntry) -> Member:
    """Copy non-empty incoming profile fields; empty incoming values never erase."""
    changes = {}
    for name in PROFILE_FIELDS:
        incoming = (getattr(entry, name) or "").strip()
        if incoming and incoming != getattr(member, name):
            changes[name] = incoming
    return member.with_fields(**changes) if changes else member


def new_member(owner_id: str, entry: ExtractedEntry) -> Member:
    return Member(
        id=identity.resolve(owner_id, entry.name),
        owner_id=owner_id,
        name=identity.display_name(entry.name),
        company=entry.company.strip(),
        sector=entry.sector.strip(),
        phone=entry.phone.strip(),
        created_at=now_iso(),
    )


def find_inviter(members: list[Member], invited_by_name: str | None) -> Member | None:
    """
    First member whose name matches the free-text inviter, case-insensitively.

    A member matches when the inviter text appears inside the member's name
    ("Ana" -> "Ana Gómez") or the member's name appears inside the inviter text
    ("Invitado por Ana Gómez"). Order of `members` decides ties.
    """
    needle = " ".join((invited_by_name or "").lower().split())
    if not needle:
        return None
    for member in members:
        hay = " ".join(member.name.lower().split())
        if not hay:
            continue
        if needle in hay or hay in needle:
            return member
    return None


# =============================================================================
# PROCESSOR
# =============================================================================


class ReconciliationProcessor:
    """Applies scans to a DirectoryBackend. Stateless apart from the backend."""

    def __init__(self, backend: DirectoryBackend):
        self.backend = backend

    def merge_member(
        self, owner_id: str, entry: ExtractedEntry, date: str
    ) -> tuple[Member, str]:
        """
        Resolve, fill forward and upsert one member row.

        Returns (member, action) where action is created | updated | unchanged.
        Writes nothing when the merge changes nothing, so re-runs are free.

        Raises:
            EmptyNameError: the row has no usable name
            StorageError: the backend failed
        """
        key = identity.resolve(owner_id, entry.name)
        existing = self.backend.get_member(owner_id, key)

        if existing is None:
            member = timeline.upsert(new_member(owner_id, entry), date, entry.handwritten_request)
            self.backend.put_member(member)
            logger.debug(f"Created member {key}")
            return member, "created"

        member = fill_forward(existing, entry)
        member = timeline.upsert(member, date, entry.handwritten_request)
        if member == existing:
            return existing, "unchanged"

        self.backend.put_member(member)
        logger.debug(f"Updated member {key}")
        return member, "updated"

    def add_guest(self, owner_id: str, entry: ExtractedEntry, date: str) -> Guest:
        """Create a new Guest for this visit and link its inviter if one matches."""
        inviter = find_inviter(self.backend.list_members(owner_id), entry.invited_by_name)
        if inviter is None and entry.invited_by_name.strip():
            logger.info(
                f"No member matches inviter {entry.invited_by_name.strip()!r} "
                f"for guest {entry.name.strip()!r}"
            )

        guest = Guest(
            id=new_id(),
            owner_id=owner_id,
            name=identity.display_name(entry.name),
            visit_date=date,
            company=entry.company.strip(),
            sector=entry.sector.strip(),
            phone=entry.phone.strip(),
            invited_by_member_id=inviter.id if inviter else "",
            invited_by_member_name=inviter.name if inviter else "",
        )
        self.backend.put_guest(guest)
        return guest

    def reconcile(self, owner_id: str, entries: list[ExtractedEntry], date: str) -> ReconcileResult:
        """
        Merge a confirmed batch into the owner's directory.

        Row-level problems are reported in the result, never raised:
          - empty names are skipped (data-quality warning)
          - storage failures are recorded as failed rows
        The snapshot write comes last; if it fails, ReconciliationError carries
        the partial result.

        Raises:
            InputQualityError: owner_id missing or date malformed (nothing written)
            ReconciliationError: the snapshot could not be written
        """
        if not owner_id:
            raise InputQualityError("owner_id is required")
        validate_date(date)

        result = ReconcileResult(owner_id=owner_id, date=date)

        for index, entry in enumerate(entries):
            kind = "guest" if entry.is_guest else "member"
            name = entry.name or ""

            if not identity.is_resolvable(name):
                logger.warning(f"Skipping row {index}: empty name ({kind})")
                result.outcomes.append(
                    RowOutcome(index, name, kind, "skipped", reason="empty name")
                )
                continue

            try:
                if entry.is_guest:
                    guest = self.add_guest(owner_id, entry, date)
                    result.outcomes.append(RowOutcome(index, name, kind, "created", guest.id))
                else:
                    member, action = self.merge_member(owner_id, entry, date)
                    result.outcomes.append(RowOutcome(index, name, kind, action, member.id))
            except InputQualityError as e:
                logger.warning(f"Skipping row {index} ({name!r}): {e}")
                result.outcomes.append(RowOutcome(index, name, kind, "skipped", reason=str(e)))
            except StorageError as e:
                logger.error(f"Row {index} ({name!r}) could not be saved: {e}")
                result.outcomes.append(RowOutcome(index, name, kind, "failed", reason=str(e)))

        snapshot = ScanSnapshot(
            owner_id=owner_id, date=date, entries=[replace(e) for e in entries]
        )
        try:
            self.backend.put_snapshot(snapshot)
        except StorageError as e:
            logger.error(f"Scan snapshot for owner {owner_id} could not be saved: {e}")
            raise ReconciliationError(
                f"Scan of {date} partially applied; snapshot not saved: {e}", result
            ) from e
        result.snapshot_saved = True

        logger.info(
            f"Reconciled scan {date} for owner {owner_id}: "
            f"{len(result.members_created)} members created, "
            f"{len(result.members_updated)} updated, "
            f"{len(result.guests_created)} guests, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        return result
