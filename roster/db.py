"""
Database connection and schema management for Meeting Roster.

Single source of truth for:
- DB path resolution
- Connection factory
- Schema creation (idempotent)

Every table that holds directory data carries owner_id; nothing is shared
between accounts.
"""

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from roster import paths, safe_sql

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
-- Accounts
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin', 'user')),
    is_approved INTEGER NOT NULL DEFAULT 0,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Sessions (token stored as SHA-256 hash only)
CREATE TABLE IF NOT EXISTS sessions (
    token_hash TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);

-- Members (id = entity key: owner + normalized name)
CREATE TABLE IF NOT EXISTS members (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    company TEXT NOT NULL DEFAULT '',
    sector TEXT NOT NULL DEFAULT '',
    phone TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Reference timeline (position 0 = front / most recent insert)
CREATE TABLE IF NOT EXISTS member_references (
    id TEXT PRIMARY KEY,
    member_id TEXT NOT NULL REFERENCES members(id) ON DELETE CASCADE,
    owner_id TEXT NOT NULL,
    date TEXT NOT NULL,
    text TEXT NOT NULL,
    position INTEGER NOT NULL,
    UNIQUE (member_id, date)
);

-- Guests (never deduplicated)
CREATE TABLE IF NOT EXISTS guests (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    company TEXT NOT NULL DEFAULT '',
    sector TEXT NOT NULL DEFAULT '',
    phone TEXT NOT NULL DEFAULT '',
    visit_date TEXT NOT NULL,
    invited_by_member_id TEXT NOT NULL DEFAULT '',
    invited_by_member_name TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

-- Last scan, one per owner, always overwritten
CREATE TABLE IF NOT EXISTS scan_snapshots (
    owner_id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    entries_json TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_members_owner ON members(owner_id);
CREATE INDEX IF NOT EXISTS idx_references_member ON member_references(member_id);
CREATE INDEX IF NOT EXISTS idx_guests_owner ON guests(owner_id);
CREATE INDEX IF NOT EXISTS idx_guests_inviter ON guests(invited_by_member_id);
CREATE INDEX IF NOT EXISTS idx_sessions_account ON sessions(account_id);
"""


def get_db_path() -> Path:
    """
    Get the canonical DB path.

    Resolution order:
    1. ROSTER_DB env var (explicit override)
    2. ~/.meeting_roster/data/roster.db
    """
    return paths.db_path()


@contextmanager
def get_connection(db_path: str | Path | None = None) -> Generator[sqlite3.Connection, None, None]:
    """
    Get a database connection with auto-commit/rollback.

    Usage:
        with get_connection(path) as conn:
            conn.execute(...)
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path), timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except (sqlite3.Error, ValueError, OSError) as e:
        conn.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        conn.close()


def init_db(db_path: str | Path | None = None) -> None:
    """Initialize database with schema. Safe to call multiple times."""
    path = Path(db_path) if db_path else get_db_path()
    with get_connection(path) as conn:
        conn.executescript(SCHEMA)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(safe_sql.pragma_user_version_set(SCHEMA_VERSION))

    logger.info(f"Database initialized at {path}")


def integrity_check(db_path: str | Path | None = None) -> tuple[bool, str]:
    """Run SQLite integrity check. Returns (ok, message)."""
    path = Path(db_path) if db_path else get_db_path()
    if not path.exists():
        return False, "Database does not exist"

    try:
        with get_connection(path) as conn:
            result = conn.execute("PRAGMA integrity_check").fetchone()[0]
            return result == "ok", result
    except (sqlite3.Error, ValueError, OSError) as e:
        return False, str(e)
