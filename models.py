"""
models.py
Lightweight domain records (dataclasses) and constants.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

ROLES = ("admin", "member")

# Fee packages offered in the admin form (free text is accepted too)
FEE_PACKAGES = ["Monthly", "Quarterly", "Half-yearly", "Yearly"]


@dataclass(frozen=True)
class Session:
    """Who is acting; passed into every workflow."""
    uid: str | None
    email: str | None
    role: str = "member"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class User:
    id: int | None
    uid: str
    email: str
    role: str  # 'admin' or 'member'
    status: str
    created_at: str
    last_login: str | None

    @classmethod
    def from_row(cls, row: dict) -> "User":
        return cls(
            id=row["id"],
            uid=row["uid"],
            email=row["email"],
            role=row["role"],
            status=row["status"],
            created_at=row["created_at"],
            last_login=row.get("last_login"),
        )


@dataclass(frozen=True)
class Member:
    id: int | None
    name: str
    email: str
    fee_package: str | None
    status: str
    created_at: str
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "Member":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            fee_package=row.get("fee_package"),
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class Bill:
    id: int | None
    member_id: int
    email: str
    amount: float
    month: str
    paid: bool
    created_at: str
    paid_at: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "Bill":
        return cls(
            id=row["id"],
            member_id=row["member_id"],
            email=row["email"],
            amount=float(row["amount"]),
            month=row["month"],
            paid=bool(row["paid"]),
            created_at=row["created_at"],
            paid_at=row.get("paid_at"),
        )


@dataclass(frozen=True)
class Notification:
    id: int | None
    email: str
    message: str
    ts: str
    read: bool

    @classmethod
    def from_row(cls, row: dict) -> "Notification":
        return cls(
            id=row["id"],
            email=row["email"],
            message=row["message"],
            ts=row["ts"],
            read=bool(row["read"]),
        )


@dataclass(frozen=True)
class Supplement:
    id: int | None
    name: str
    price: float
    created_at: str

    @classmethod
    def from_row(cls, row: dict) -> "Supplement":
        return cls(id=row["id"], name=row["name"], price=float(row["price"]), created_at=row["created_at"])


@dataclass(frozen=True)
class DietPlan:
    id: int | None
    email: str
    plan: str
    assigned_at: str

    @classmethod
    def from_row(cls, row: dict) -> "DietPlan":
        return cls(id=row["id"], email=row["email"], plan=row["plan"], assigned_at=row["assigned_at"])


@dataclass(frozen=True)
class LogEntry:
    id: int | None
    uid: str | None
    action: str
    details: dict
    ts: str

    @classmethod
    def from_row(cls, row: dict) -> "LogEntry":
        try:
            details = json.loads(row["details"] or "{}")
        except ValueError:
            # stored payload is opaque; keep the raw text visible
            details = {"raw": row["details"]}
        return cls(id=row["id"], uid=row.get("uid"), action=row["action"], details=details, ts=row["ts"])
