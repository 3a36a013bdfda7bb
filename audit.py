"""
audit.py
Activity log: best-effort appends, newest-first reads.
"""

from __future__ import annotations

import json
import logging

import config
import db
from models import LogEntry, Session

logger = logging.getLogger(__name__)


def write_log(session: Session | None, action: str, details: dict | None = None) -> int | None:
    """
    Append one entry to the log collection.

    Never raises: a failed log write is reported on the diagnostic logger and
    the calling workflow carries on. Returns the entry id, or None on failure.
    """
    try:
        return db.insert(
            "logs",
            {
                "uid": session.uid if session else None,
                "action": action,
                "details": json.dumps(details or {}, default=str),
                "ts": db.SERVER_TIMESTAMP,
            },
        )
    except Exception:
        logger.exception("log error (action=%s)", action)
        return None


def recent_logs(limit: int = config.LOG_PAGE_LIMIT) -> list[LogEntry]:
    rows = db.query("logs", order_by="ts", direction="desc", limit=limit)
    return [LogEntry.from_row(r) for r in rows]
