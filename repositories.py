"""
repositories.py
One repository per collection: validate -> existence check -> write -> audit entry.

Uniqueness (member email, supplement name, user email) is a read-before-write
check, not a transaction. Two sessions racing on the same key can both pass it.
"""

from __future__ import annotations

import logging

import audit
import config
import db
from errors import DuplicateError, NotFoundError, ValidationError
from models import (
    ROLES,
    Bill,
    DietPlan,
    Member,
    Notification,
    Session,
    Supplement,
    User,
)
from utils import (
    parse_amount,
    require_valid,
    validate_bill_inputs,
    validate_diet_inputs,
    validate_member_inputs,
    validate_supplement_inputs,
)

logger = logging.getLogger(__name__)


class Repository:
    collection: str = ""
    model = None
    order_key = "created_at"
    # fields update() may patch, and the log action it records
    updatable: frozenset[str] = frozenset()
    update_action = ""
    delete_action = ""

    def _wrap(self, rows: list[dict]) -> list:
        return [self.model.from_row(r) for r in rows]

    def list(self, order_key: str | None = None, direction: str = "desc", limit: int | None = None) -> list:
        rows = db.query(self.collection, order_by=order_key or self.order_key, direction=direction, limit=limit)
        return self._wrap(rows)

    def find_by_field(self, field: str, value) -> list:
        rows = db.query(self.collection, {field: value}, order_by=self.order_key, direction="desc")
        return self._wrap(rows)

    def get(self, record_id):
        row = db.get(self.collection, record_id)
        return self.model.from_row(row) if row else None

    def _insert(self, record: dict):
        new_id = db.insert(self.collection, record)
        return self.get(new_id)

    def update(self, session: Session, record_id, patch: dict):
        """
        Partial patch of the fields listed in `updatable`; returns the updated record.
        """
        unknown = set(patch) - self.updatable
        if unknown:
            raise ValidationError([f"Field cannot be changed: {f}" for f in sorted(unknown)])
        if not db.update(self.collection, record_id, patch):
            raise NotFoundError(f"No {self.collection} record with id {record_id}")
        details = {"id": record_id}
        details.update({k: v for k, v in patch.items() if v is not db.SERVER_TIMESTAMP})
        audit.write_log(session, self.update_action, details)
        return self.get(record_id)

    def delete(self, session: Session, record_id) -> None:
        """
        Hard delete by id. Confirming intent is up to the caller.
        """
        if not db.delete(self.collection, record_id):
            raise NotFoundError(f"No {self.collection} record with id {record_id}")
        logger.info("Deleted %s id=%s", self.collection, record_id)
        audit.write_log(session, self.delete_action, {"id": record_id})


class MemberRepository(Repository):
    collection = "members"
    model = Member
    updatable = frozenset({"name", "updated_at"})
    update_action = "edit_member"
    delete_action = "delete_member"

    def find_by_email(self, email: str) -> Member | None:
        found = self.find_by_field("email", (email or "").strip())
        return found[0] if found else None

    def require_by_email(self, email: str) -> Member:
        member = self.find_by_email(email)
        if member is None:
            raise NotFoundError("Member not found with this email")
        return member

    def create(self, session: Session, name: str, email: str, fee_package: str = "") -> Member:
        require_valid(validate_member_inputs(name, email))
        name, email, fee_package = name.strip(), email.strip(), (fee_package or "").strip()

        if self.find_by_email(email) is not None:
            raise DuplicateError("A member with this email already exists")

        member = self._insert(
            {
                "name": name,
                "email": email,
                "fee_package": fee_package,
                "status": "active",
                "created_at": db.SERVER_TIMESTAMP,
            }
        )
        logger.info("Member added: %s", email)
        audit.write_log(session, "add_member", {"name": name, "email": email, "feePackage": fee_package})
        return member

    def rename(self, session: Session, member_id, new_name: str) -> Member:
        if not (new_name or "").strip():
            raise ValidationError(["Name is required."])
        return self.update(session, member_id, {"name": new_name.strip(), "updated_at": db.SERVER_TIMESTAMP})

    def search(self, query: str) -> list[Member]:
        """Case-insensitive substring match on name or email."""
        q = (query or "").strip().lower()
        if not q:
            raise ValidationError(["Please enter a search term."])
        return [m for m in self.list() if q in (m.name or "").lower() or q in (m.email or "").lower()]


class BillRepository(Repository):
    collection = "bills"
    model = Bill
    updatable = frozenset({"paid", "paid_at"})
    update_action = "mark_paid"
    delete_action = "delete_bill"

    def __init__(self, members: MemberRepository | None = None):
        self.members = members or MemberRepository()

    def create(self, session: Session, email: str, amount, month: str) -> Bill:
        require_valid(validate_bill_inputs(email, amount, month))
        email, month, amount = email.strip(), month.strip(), parse_amount(amount)

        member = self.members.find_by_email(email)
        if member is None:
            raise NotFoundError("Member not found")

        bill = self._insert(
            {
                "member_id": member.id,
                "email": email,
                "amount": amount,
                "month": month,
                "paid": False,
                "created_at": db.SERVER_TIMESTAMP,
            }
        )
        audit.write_log(session, "create_bill", {"email": email, "amount": amount, "month": month})
        return bill

    def mark_paid(self, session: Session, bill_id) -> Bill:
        """
        Flip paid to True. A bill that is already paid keeps its first paid_at
        and nothing is written.
        """
        bill = self.get(bill_id)
        if bill is None:
            raise NotFoundError(f"No bill with id {bill_id}")
        if bill.paid:
            return bill
        return self.update(session, bill_id, {"paid": True, "paid_at": db.SERVER_TIMESTAMP})

    def for_email(self, email: str) -> list[Bill]:
        return self.find_by_field("email", email)


class NotificationRepository(Repository):
    collection = "notifications"
    model = Notification
    order_key = "ts"
    delete_action = "delete_notification"

    def deliver(self, email: str, message: str) -> Notification:
        """
        Write a single notification. No recipient check and no log entry; the
        fan-out layer does both once per send.
        """
        return self._insert({"email": email, "message": message, "ts": db.SERVER_TIMESTAMP, "read": False})

    def for_email(self, email: str) -> list[Notification]:
        return self.find_by_field("email", email)

    def recent(self, limit: int = config.NOTIFICATION_PAGE_LIMIT) -> list[Notification]:
        return self.list(limit=limit)


class SupplementRepository(Repository):
    collection = "supplements"
    model = Supplement
    delete_action = "delete_supplement"

    def create(self, session: Session, name: str, price) -> Supplement:
        require_valid(validate_supplement_inputs(name, price))
        name, price = name.strip(), parse_amount(price)

        if self.find_by_field("name", name):
            raise DuplicateError("A supplement with this name already exists")

        supp = self._insert({"name": name, "price": price, "created_at": db.SERVER_TIMESTAMP})
        audit.write_log(session, "add_supp", {"name": name, "price": price})
        return supp

    def catalogue(self) -> list[Supplement]:
        return self.list("name", "asc")


class DietRepository(Repository):
    collection = "diets"
    model = DietPlan
    order_key = "assigned_at"
    delete_action = "delete_diet"

    def __init__(self, members: MemberRepository | None = None):
        self.members = members or MemberRepository()

    def has_plan(self, email: str) -> bool:
        return bool(self.find_by_field("email", (email or "").strip()))

    def create(self, session: Session, email: str, plan: str, allow_additional: bool = True) -> DietPlan:
        """
        Assign a plan. Members may hold several plans; pass allow_additional=False
        to refuse when one already exists (the UI asks first).
        """
        require_valid(validate_diet_inputs(email, plan))
        email, plan = email.strip(), plan.strip()

        self.members.require_by_email(email)
        if not allow_additional and self.has_plan(email):
            raise DuplicateError("Member already has a diet plan")

        diet = self._insert({"email": email, "plan": plan, "assigned_at": db.SERVER_TIMESTAMP})
        audit.write_log(session, "add_diet", {"email": email})
        return diet

    def for_email(self, email: str) -> list[DietPlan]:
        return self.find_by_field("email", email)


class UserRepository(Repository):
    collection = "users"
    model = User
    updatable = frozenset({"last_login"})
    update_action = "edit_user"

    def delete(self, session: Session, record_id) -> None:
        """
        User records are never removed; the role they carry picks the view at login.
        """
        raise ValidationError(["User records cannot be deleted."])

    def get_by_uid(self, uid: str) -> User | None:
        found = self.find_by_field("uid", uid)
        return found[0] if found else None

    def create(self, session: Session | None, uid: str, email: str, role: str = "member", action: str = "register") -> User:
        if role not in ROLES:
            raise ValidationError([f"Unknown role: {role}"])
        email = (email or "").strip()
        if self.get_by_uid(uid) is not None or self.find_by_field("email", email):
            raise DuplicateError("A user with this email already exists")

        user = self._insert(
            {
                "uid": uid,
                "email": email,
                "role": role,
                "status": "active",
                "created_at": db.SERVER_TIMESTAMP,
                "last_login": db.SERVER_TIMESTAMP,
            }
        )
        audit.write_log(session, action, {"email": email, "role": role})
        return user

    def touch_login(self, user: User) -> None:
        # Bookkeeping only; the login workflow writes the audit entry
        db.update(self.collection, user.id, {"last_login": db.SERVER_TIMESTAMP})
