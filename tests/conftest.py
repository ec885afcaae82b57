"""
Test configuration — repo root on sys.path, isolated app home, live-DB guard.

ROSTER_HOME is pointed at a throwaway directory at conftest load time, before
any roster module computes a path, so nothing under ~/.meeting_roster is ever
created or read. sqlite3.connect is additionally guarded against the live DB.
"""

import os
import sqlite3
import sys
import tempfile
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import roster.*, api.*, cli.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

_TEST_HOME = tempfile.mkdtemp(prefix="roster-test-home-")
os.environ["ROSTER_HOME"] = _TEST_HOME
os.environ.pop("ROSTER_DB", None)
for _var in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"):
    os.environ.pop(_var, None)

# =============================================================================
# DETERMINISM GUARD: Block live database access
# =============================================================================

HOME_DB_ABSOLUTE = Path.home() / ".meeting_roster" / "data" / "roster.db"

_original_sqlite_connect = sqlite3.connect


def _guarded_sqlite_connect(database, *args, **kwargs):
    """Intercept sqlite3.connect to block live DB access."""
    db_str = str(database)
    if db_str != ":memory:":
        try:
            abs_path = Path(db_str).resolve()
        except (OSError, ValueError):
            abs_path = Path(db_str)
        if abs_path == HOME_DB_ABSOLUTE:
            raise RuntimeError(
                f"DETERMINISM VIOLATION: Test attempted to access live DB at {database}.\n"
                "Use the db_path fixture."
            )
    return _original_sqlite_connect(database, *args, **kwargs)


@pytest.fixture(autouse=True)
def guard_live_db_access(monkeypatch):
    """Automatically guard all tests against live DB access."""
    monkeypatch.setattr(sqlite3, "connect", _guarded_sqlite_connect)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "roster.db"


@pytest.fixture
def backend(db_path):
    from roster.storage import SQLiteDirectoryBackend

    return SQLiteDirectoryBackend(db_path)


@pytest.fixture
def store(backend):
    from roster.directory import DirectoryStore

    return DirectoryStore(backend)


@pytest.fixture
def directory(store):
    return store.for_owner("u1")
