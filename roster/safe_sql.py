"""
SQL builders for the owner-scoped directory tables.

Every directory table carries owner_id and every statement built here filters
on it, so a query cannot forget the owner. The owner id is always the FIRST
parameter. Table and column names are checked against _SAFE_IDENTIFIER_RE
before interpolation; values are always passed as ? parameters.
"""

# ruff: noqa: S608 - all identifiers validated via _validate() before interpolation.

from __future__ import annotations

import re

_SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

OWNER_COLUMN = "owner_id"


def _validate(name: str) -> str:
    if not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def _owned_where(where: str | None) -> str:
    clause = f"{OWNER_COLUMN} = ?"
    return f"{clause} AND ({where})" if where else clause


def pragma_user_version_set(version: int) -> str:
    """PRAGMA user_version = N with int validation."""
    if not isinstance(version, int) or version < 0:
        raise ValueError(f"Invalid schema version: {version!r}")
    return f"PRAGMA user_version = {version}"


def select_owned(table: str, where: str | None = None, order_by: str | None = None) -> str:
    """SELECT * FROM table WHERE owner_id = ? [AND (where)] [ORDER BY ...]."""
    sql = f"SELECT * FROM {_validate(table)} WHERE {_owned_where(where)}"
    if order_by:
        sql += f" ORDER BY {order_by}"
    return sql


def delete_owned(table: str, where: str | None = None) -> str:
    """DELETE FROM table WHERE owner_id = ? [AND (where)]."""
    return f"DELETE FROM {_validate(table)} WHERE {_owned_where(where)}"


def upsert(table: str, columns: list[str], key: str, keep: tuple[str, ...] = ()) -> str:
    """
    INSERT ... ON CONFLICT(key) DO UPDATE.

    Merges by key instead of replacing the row, so ON DELETE CASCADE children
    survive. Columns in `keep` (and the key and owner) are written on insert
    only.
    """
    _validate(table)
    for col in columns:
        _validate(col)
    frozen = {key, OWNER_COLUMN, *keep}
    cols = ", ".join(columns)
    placeholders = ", ".join("?" for _ in columns)
    updates = ", ".join(f"{col} = excluded.{col}" for col in columns if col not in frozen)
    return (
        f"INSERT INTO {table} ({cols}) VALUES ({placeholders}) "
        f"ON CONFLICT({_validate(key)}) DO UPDATE SET {updates}"
    )
