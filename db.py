"""
db.py
SQLite document-store helpers + initialization.

Collections are plain tables addressed by name; records go in and come out as dicts.
sqlite3 errors are translated here, once, into BackendError kinds.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone

import config
from errors import BackendError, ErrorKind

logger = logging.getLogger(__name__)

DB_FILE = config.DB_FILE


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Replaced with the current UTC time when the record is written
SERVER_TIMESTAMP = _ServerTimestamp()

# Writable fields per collection ("id" is always generated)
COLLECTIONS: dict[str, tuple[str, ...]] = {
    "accounts": ("uid", "email", "password_hash", "failed_attempts", "locked_until", "created_at"),
    "users": ("uid", "email", "role", "status", "created_at", "last_login"),
    "members": ("name", "email", "fee_package", "status", "created_at", "updated_at"),
    "bills": ("member_id", "email", "amount", "month", "paid", "created_at", "paid_at"),
    "notifications": ("email", "message", "ts", "read"),
    "supplements": ("name", "price", "created_at"),
    "diets": ("email", "plan", "assigned_at"),
    "logs": ("uid", "action", "details", "ts"),
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@contextmanager
def get_conn():
    try:
        conn = sqlite3.connect(DB_FILE, timeout=10, check_same_thread=False)
    except sqlite3.Error as e:
        raise BackendError(ErrorKind.UNAVAILABLE, str(e)) from e
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except sqlite3.IntegrityError as e:
        raise BackendError(ErrorKind.CONSTRAINT, str(e)) from e
    except sqlite3.OperationalError as e:
        raise BackendError(ErrorKind.UNAVAILABLE, str(e)) from e
    except sqlite3.Error as e:
        raise BackendError(ErrorKind.UNKNOWN, str(e)) from e
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def execute_count(sql: str, params: tuple = ()) -> int:
    """Like execute(), but returns the number of affected rows."""
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.rowcount


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


# ---------- Collection API ----------

def _fields(collection: str) -> tuple[str, ...]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}") from None


def _check_fields(collection: str, names) -> None:
    allowed = _fields(collection)
    for name in names:
        if name != "id" and name not in allowed:
            raise ValueError(f"Unknown field {name!r} for collection {collection!r}")


def _resolve(record: dict) -> dict:
    stamp = now_iso()
    return {k: (stamp if v is SERVER_TIMESTAMP else v) for k, v in record.items()}


def insert(collection: str, record: dict) -> int:
    """
    Insert a record and return its generated id.
    """
    _check_fields(collection, record)
    data = _resolve(record)
    cols = ", ".join(data)
    marks = ", ".join("?" for _ in data)
    return execute(
        f"INSERT INTO {collection}({cols}) VALUES({marks})",
        tuple(data.values()),
    )


def get(collection: str, record_id) -> dict | None:
    _fields(collection)
    row = fetch_one(f"SELECT * FROM {collection} WHERE id = ?", (record_id,))
    return dict(row) if row else None


def query(
    collection: str,
    filters: dict | None = None,
    order_by: str | None = None,
    direction: str = "asc",
    limit: int | None = None,
) -> list[dict]:
    """
    Equality-filtered select. Ties on order_by are broken by insertion order.
    """
    filters = filters or {}
    _check_fields(collection, filters)
    sql = f"SELECT * FROM {collection} WHERE 1=1"
    params: list = []

    for field, value in filters.items():
        if value is None:
            sql += f" AND {field} IS NULL"
        else:
            sql += f" AND {field} = ?"
            params.append(value)

    if direction.lower() not in ("asc", "desc"):
        raise ValueError("direction must be 'asc' or 'desc'")
    d = direction.upper()
    if order_by:
        _check_fields(collection, [order_by])
        sql += f" ORDER BY {order_by} {d}, id {d}"
    else:
        sql += f" ORDER BY id {d}"

    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))

    return [dict(r) for r in fetch_all(sql, tuple(params))]


def update(collection: str, record_id, patch: dict) -> bool:
    """
    Partial update; returns False when no record has that id.
    """
    if not patch:
        raise ValueError("Empty patch")
    _check_fields(collection, patch)
    data = _resolve(patch)
    assignments = ", ".join(f"{k} = ?" for k in data)
    n = execute_count(
        f"UPDATE {collection} SET {assignments} WHERE id = ?",
        (*data.values(), record_id),
    )
    return n > 0


def delete(collection: str, record_id) -> bool:
    _fields(collection)
    n = execute_count(f"DELETE FROM {collection} WHERE id = ?", (record_id,))
    return n > 0


def ping() -> bool:
    """
    Liveness probe: the database opens and the schema is in place.
    """
    try:
        row = fetch_one(
            "SELECT COUNT(*) AS c FROM sqlite_master WHERE type='table' AND name='members'"
        )
    except BackendError as e:
        logger.warning("Store liveness probe failed: %s", e)
        return False
    return bool(row and row["c"])


# ---------- Schema ----------

def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            uid TEXT NOT NULL UNIQUE,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            failed_attempts INTEGER NOT NULL DEFAULT 0,
            locked_until TEXT,
            created_at TEXT NOT NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            uid TEXT NOT NULL,
            email TEXT NOT NULL,
            role TEXT NOT NULL CHECK(role IN ('admin','member')),
            status TEXT NOT NULL DEFAULT 'active',
            created_at TEXT NOT NULL,
            last_login TEXT
        )
        """
    )

    # No unique constraints below: uniqueness is checked before writes, like a document store
    execute(
        """
        CREATE TABLE IF NOT EXISTS members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL,
            fee_package TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            created_at TEXT NOT NULL,
            updated_at TEXT
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS bills (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            member_id INTEGER NOT NULL,
            email TEXT NOT NULL,
            amount REAL NOT NULL CHECK(amount > 0),
            month TEXT NOT NULL,
            paid INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            paid_at TEXT
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL,
            message TEXT NOT NULL,
            ts TEXT NOT NULL,
            read INTEGER NOT NULL DEFAULT 0
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS supplements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            price REAL NOT NULL CHECK(price > 0),
            created_at TEXT NOT NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS diets (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL,
            plan TEXT NOT NULL,
            assigned_at TEXT NOT NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            uid TEXT,
            action TEXT NOT NULL,
            details TEXT NOT NULL DEFAULT '{}',
            ts TEXT NOT NULL
        )
        """
    )


def init_db() -> None:
    """
    Initialize the database (idempotent).
    """
    _create_tables()
