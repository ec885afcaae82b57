"""
Storage — the persistence collaborator behind the directory.

DirectoryBackend is the contract the merge logic relies on: owner-scoped
set/merge by id, delete by id, query-all-by-owner, and a subscription that
delivers the full result set on every change. SQLiteDirectoryBackend is the
account-scoped local implementation.

Any sqlite3 failure surfaces as StorageError (transient, safe to retry).
"""

import json
import logging
import sqlite3
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

from roster import db as db_module
from roster import safe_sql
from roster.errors import InputQualityError, StorageError
from roster.events import GUESTS, LAST_SCAN, MEMBERS, ChangeFeed
from roster.models import ExtractedEntry, Guest, Member, Reference, ScanSnapshot, now_iso

logger = logging.getLogger(__name__)

MEMBER_COLUMNS = ["id", "owner_id", "name", "company", "sector", "phone", "created_at", "updated_at"]
GUEST_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "company",
    "sector",
    "phone",
    "visit_date",
    "invited_by_member_id",
    "invited_by_member_name",
    "created_at",
]
SNAPSHOT_COLUMNS = ["owner_id", "date", "entries_json", "updated_at"]

# Deleted children first; clear_owner() reports the counts under these names.
OWNED_TABLES = {
    "references": "member_references",
    "members": "members",
    "guests": "guests",
    "snapshots": "scan_snapshots",
}


class DirectoryBackend(Protocol):
    """Owner-scoped CRUD + change notification."""

    def put_member(self, member: Member) -> None: ...

    def get_member(self, owner_id: str, member_id: str) -> Member | None: ...

    def delete_member(self, owner_id: str, member_id: str) -> bool: ...

    def list_members(self, owner_id: str) -> list[Member]: ...

    def put_guest(self, guest: Guest) -> None: ...

    def delete_guest(self, owner_id: str, guest_id: str) -> bool: ...

    def list_guests(self, owner_id: str) -> list[Guest]: ...

    def put_snapshot(self, snapshot: ScanSnapshot) -> None: ...

    def get_snapshot(self, owner_id: str) -> ScanSnapshot | None: ...

    def delete_snapshot(self, owner_id: str) -> bool: ...

    def clear_owner(self, owner_id: str) -> dict: ...

    def subscribe(
        self, owner_id: str, collection: str, callback: Callable[[Any], None]
    ) -> Callable[[], None]: ...


class SQLiteDirectoryBackend:
    """
    SQLite-backed directory storage.

    One connection per operation; each operation is its own transaction.
    Nothing here spans operations, so a batch is a sequence of independent
    writes and a failure leaves earlier writes in place.
    """

    def __init__(self, db_path: str | Path | None = None, feed: ChangeFeed | None = None):
        self.db_path = Path(db_path) if db_path else db_module.get_db_path()
        self.feed = feed or ChangeFeed()
        db_module.init_db(self.db_path)
        logger.info("Directory storage ready, DB path: %s", self.db_path)

    @contextmanager
    def _get_conn(self):
        try:
            with db_module.get_connection(self.db_path) as conn:
                yield conn
        except sqlite3.Error as e:
            raise StorageError(f"Storage operation failed: {e}") from e

    # ==================== Members ====================

    def put_member(self, member: Member) -> None:
        """Set the member row and replace its reference timeline."""
        now = now_iso()
        with self._get_conn() as conn:
            row = conn.execute("SELECT owner_id FROM members WHERE id = ?", (member.id,)).fetchone()
            if row and row["owner_id"] != member.owner_id:
                raise InputQualityError(f"Entity key {member.id!r} belongs to another owner")

            conn.execute(
                safe_sql.upsert("members", MEMBER_COLUMNS, key="id", keep=("created_at",)),
                (
                    member.id,
                    member.owner_id,
                    member.name,
                    member.company,
                    member.sector,
                    member.phone,
                    member.created_at or now,
                    now,
                ),
            )
            conn.execute(
                safe_sql.delete_owned("member_references", where="member_id = ?"),
                (member.owner_id, member.id),
            )
            conn.executemany(
                """
                INSERT INTO member_references (id, member_id, owner_id, date, text, position)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (ref.id, member.id, member.owner_id, ref.date, ref.text, position)
                    for position, ref in enumerate(member.references)
                ],
            )
        self._notify(member.owner_id, MEMBERS)

    def get_member(self, owner_id: str, member_id: str) -> Member | None:
        with self._get_conn() as conn:
            row = conn.execute(
                safe_sql.select_owned("members", where="id = ?"), (owner_id, member_id)
            ).fetchone()
            if not row:
                return None
            refs = conn.execute(
                safe_sql.select_owned(
                    "member_references", where="member_id = ?", order_by="position"
                ),
                (owner_id, member_id),
            ).fetchall()
        return _member_from_row(row, refs)

    def delete_member(self, owner_id: str, member_id: str) -> bool:
        with self._get_conn() as conn:
            conn.execute(
                safe_sql.delete_owned("member_references", where="member_id = ?"),
                (owner_id, member_id),
            )
            result = conn.execute(
                safe_sql.delete_owned("members", where="id = ?"), (owner_id, member_id)
            )
            deleted = result.rowcount > 0
        if deleted:
            self._notify(owner_id, MEMBERS)
        return deleted

    def list_members(self, owner_id: str) -> list[Member]:
        """All members of the owner, alphabetical by name (case-insensitive)."""
        with self._get_conn() as conn:
            rows = conn.execute(
                safe_sql.select_owned("members", order_by="name COLLATE NOCASE, id"),
                (owner_id,),
            ).fetchall()
            refs = conn.execute(
                safe_sql.select_owned("member_references", order_by="member_id, position"),
                (owner_id,),
            ).fetchall()

        refs_by_member: dict[str, list[sqlite3.Row]] = {}
        for ref in refs:
            refs_by_member.setdefault(ref["member_id"], []).append(ref)
        return [_member_from_row(row, refs_by_member.get(row["id"], [])) for row in rows]

    # ==================== Guests ====================

    def put_guest(self, guest: Guest) -> None:
        with self._get_conn() as conn:
            conn.execute(
                safe_sql.upsert("guests", GUEST_COLUMNS, key="id", keep=("created_at",)),
                (
                    guest.id,
                    guest.owner_id,
                    guest.name,
                    guest.company,
                    guest.sector,
                    guest.phone,
                    guest.visit_date,
                    guest.invited_by_member_id,
                    guest.invited_by_member_name,
                    now_iso(),
                ),
            )
        self._notify(guest.owner_id, GUESTS)

    def delete_guest(self, owner_id: str, guest_id: str) -> bool:
        with self._get_conn() as conn:
            result = conn.execute(
                safe_sql.delete_owned("guests", where="id = ?"), (owner_id, guest_id)
            )
            deleted = result.rowcount > 0
        if deleted:
            self._notify(owner_id, GUESTS)
        return deleted

    def list_guests(self, owner_id: str) -> list[Guest]:
        """All guests of the owner, most recent visit first."""
        with self._get_conn() as conn:
            rows = conn.execute(
                safe_sql.select_owned(
                    "guests",
                    order_by="visit_date DESC, name COLLATE NOCASE, created_at, id",
                ),
                (owner_id,),
            ).fetchall()
        return [_guest_from_row(row) for row in rows]

    # ==================== Scan snapshot ====================

    def put_snapshot(self, snapshot: ScanSnapshot) -> None:
        """Overwrite the owner's last scan."""
        entries_json = json.dumps([e.to_dict() for e in snapshot.entries], ensure_ascii=False)
        snapshot.updated_at = now_iso()
        with self._get_conn() as conn:
            conn.execute(
                safe_sql.upsert("scan_snapshots", SNAPSHOT_COLUMNS, key="owner_id"),
                (snapshot.owner_id, snapshot.date, entries_json, snapshot.updated_at),
            )
        self._notify(snapshot.owner_id, LAST_SCAN)

    def get_snapshot(self, owner_id: str) -> ScanSnapshot | None:
        with self._get_conn() as conn:
            row = conn.execute(safe_sql.select_owned("scan_snapshots"), (owner_id,)).fetchone()
        if not row:
            return None

        try:
            raw_entries = json.loads(row["entries_json"])
        except json.JSONDecodeError as e:
            logger.error(
                f"Corrupt snapshot for owner {owner_id}: {e} (length={len(row['entries_json'])})"
            )
            raise StorageError(f"Stored scan for owner {owner_id} is unreadable") from e

        return ScanSnapshot(
            owner_id=owner_id,
            date=row["date"],
            entries=[ExtractedEntry.from_dict(e) for e in raw_entries if isinstance(e, dict)],
            updated_at=row["updated_at"],
        )

    def delete_snapshot(self, owner_id: str) -> bool:
        with self._get_conn() as conn:
            result = conn.execute(safe_sql.delete_owned("scan_snapshots"), (owner_id,))
            deleted = result.rowcount > 0
        if deleted:
            self._notify(owner_id, LAST_SCAN)
        return deleted

    def clear_owner(self, owner_id: str) -> dict:
        """Delete every member, reference, guest and the snapshot of an owner."""
        with self._get_conn() as conn:
            counts = {
                name: conn.execute(safe_sql.delete_owned(table), (owner_id,)).rowcount
                for name, table in OWNED_TABLES.items()
            }
        for collection in (MEMBERS, GUESTS, LAST_SCAN):
            self._notify(owner_id, collection)
        return counts

    # ==================== Change notification ====================

    def subscribe(
        self, owner_id: str, collection: str, callback: Callable[[Any], None]
    ) -> Callable[[], None]:
        """Subscribe and immediately receive the current result set."""
        unsubscribe = self.feed.subscribe(owner_id, collection, callback)
        callback(self._current(owner_id, collection))
        return unsubscribe

    def _current(self, owner_id: str, collection: str) -> Any:
        if collection == MEMBERS:
            return self.list_members(owner_id)
        if collection == GUESTS:
            return self.list_guests(owner_id)
        return self.get_snapshot(owner_id)

    def _notify(self, owner_id: str, collection: str) -> None:
        if not self.feed.has_subscribers(owner_id, collection):
            return
        try:
            payload = self._current(owner_id, collection)
        except StorageError as e:
            # The write itself succeeded; the next successful write re-syncs subscribers.
            logger.warning(f"Could not load {collection} for subscribers of {owner_id}: {e}")
            return
        self.feed.publish(owner_id, collection, payload)


# ==================== Row mapping ====================


def _member_from_row(row: sqlite3.Row, ref_rows) -> Member:
    return Member(
        id=row["id"],
        owner_id=row["owner_id"],
        name=row["name"],
        company=row["company"],
        sector=row["sector"],
        phone=row["phone"],
        created_at=row["created_at"],
        references=tuple(
            Reference(id=r["id"], date=r["date"], text=r["text"]) for r in ref_rows
        ),
    )


def _guest_from_row(row: sqlite3.Row) -> Guest:
    return Guest(
        id=row["id"],
        owner_id=row["owner_id"],
        name=row["name"],
        company=row["company"],
        sector=row["sector"],
        phone=row["phone"],
        visit_date=row["visit_date"],
        invited_by_member_id=row["invited_by_member_id"],
        invited_by_member_name=row["invited_by_member_name"],
    )
