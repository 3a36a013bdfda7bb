"""
utils.py
Validation, dates, CSV exports.
"""

from __future__ import annotations

import csv
import math
import re
from datetime import date

import pandas as pd

import config
from errors import EmptyTargetError, ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def today_iso() -> str:
    return date.today().isoformat()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def parse_amount(value) -> float:
    """
    Parse a positive, finite number (amounts and prices). Raises ValueError otherwise.
    """
    amount = float(value)
    if not math.isfinite(amount) or amount <= 0:
        raise ValueError(f"Not a positive amount: {value!r}")
    return amount


def format_amount(value) -> str:
    """Display form for amounts: thousands separators, two decimals."""
    return f"{float(value):,.2f}"


def require_valid(errors: list[str]) -> None:
    if errors:
        raise ValidationError(errors)


# ---------- Input validation (runs before any store call) ----------

def validate_credentials(email: str, password: str) -> list[str]:
    errors: list[str] = []
    if not (email or "").strip():
        errors.append("Email is required.")
    elif not is_valid_email(email.strip()):
        errors.append("Please enter a valid email address.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < config.MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters.")
    return errors


def validate_member_inputs(name: str, email: str) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Name is required.")
    if not (email or "").strip():
        errors.append("Email is required.")
    elif "@" not in email:
        errors.append("Please enter a valid email address.")
    return errors


def validate_bill_inputs(email: str, amount, month: str) -> list[str]:
    errors: list[str] = []
    if not (email or "").strip():
        errors.append("Member email is required.")
    if not (month or "").strip():
        errors.append("Month is required.")
    try:
        parse_amount(amount)
    except (TypeError, ValueError):
        errors.append("Amount must be a number greater than 0.")
    return errors


def validate_supplement_inputs(name: str, price) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Supplement name is required.")
    try:
        parse_amount(price)
    except (TypeError, ValueError):
        errors.append("Price must be a number greater than 0.")
    return errors


def validate_diet_inputs(email: str, plan: str) -> list[str]:
    errors: list[str] = []
    if not (email or "").strip():
        errors.append("Member email is required.")
    if not (plan or "").strip():
        errors.append("Diet plan is required.")
    return errors


# ---------- CSV ----------

def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def to_csv(rows: list[dict], columns: list[str]) -> str:
    """
    Header line of bare column keys, then one line per row with every value
    double-quoted ("" escapes a quote). Missing values become "".
    Newlines inside values are only quoted, so readers must accept multi-line fields.
    """
    header = ",".join(columns)
    df = pd.DataFrame([[_cell(r.get(c)) for c in columns] for r in rows], columns=columns)
    body = df.to_csv(index=False, header=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    if not body:
        return header
    if body.endswith("\n"):
        body = body[:-1]
    return header + "\n" + body


def export_filename(entity: str, on: date | None = None) -> str:
    return f"{entity}_{(on or date.today()).isoformat()}.csv"


def members_to_csv_bytes(members) -> bytes:
    if not members:
        raise EmptyTargetError("No members found to export")
    rows = [{"name": m.name, "email": m.email, "package": m.fee_package or ""} for m in members]
    return to_csv(rows, ["name", "email", "package"]).encode("utf-8")


def bills_to_csv_bytes(bills) -> bytes:
    if not bills:
        raise EmptyTargetError("No bills found to export")
    rows = [{"email": b.email, "amount": b.amount, "month": b.month, "paid": b.paid} for b in bills]
    return to_csv(rows, ["email", "amount", "month", "paid"]).encode("utf-8")
