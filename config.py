"""
config.py
Runtime settings, read from the environment.
"""

from __future__ import annotations

import os
from pathlib import Path

DB_FILE = Path(os.getenv("GYM_DB_FILE", str(Path(__file__).with_name("gym.db"))))

LOG_LEVEL = os.getenv("GYM_LOG_LEVEL", "INFO").upper()

# How many entries the admin log / notification lists show
LOG_PAGE_LIMIT = int(os.getenv("GYM_LOG_PAGE_LIMIT", "50"))
NOTIFICATION_PAGE_LIMIT = int(os.getenv("GYM_NOTIFICATION_PAGE_LIMIT", "100"))

FANOUT_WORKERS = int(os.getenv("GYM_FANOUT_WORKERS", "8"))

# "host:port" probed before admin writes; unset means the local store is always reachable
NETWORK_CHECK_HOST = os.getenv("GYM_NETWORK_CHECK_HOST") or None
NETWORK_CHECK_TIMEOUT = float(os.getenv("GYM_NETWORK_CHECK_TIMEOUT", "3"))

MIN_PASSWORD_LENGTH = 6
MAX_FAILED_LOGINS = 5
LOCKOUT_MINUTES = 15
