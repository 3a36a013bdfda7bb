"""
notifications.py
Notification fan-out: one recipient, every member, or the monthly fee reminder.

Broadcast writes are submitted together to a thread pool and complete in any
order. Nothing is rolled back; each recipient's outcome is collected so a
partial broadcast is reported as such.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

import audit
import config
from errors import EmptyTargetError, ValidationError
from models import Session
from repositories import MemberRepository, NotificationRepository

logger = logging.getLogger(__name__)

MONTHLY_REMINDER = "Monthly fee reminder: please pay your {package}"


@dataclass(frozen=True)
class DeliveryOutcome:
    email: str
    notification_id: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BatchResult:
    outcomes: tuple[DeliveryOutcome, ...]

    @property
    def sent(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def status(self) -> str:
        """'sent', 'partial' or 'failed'."""
        if not self.failed:
            return "sent"
        if self.sent:
            return "partial"
        return "failed"

    @property
    def ok(self) -> bool:
        return self.status == "sent"


def reminder_message(fee_package: str | None) -> str:
    return MONTHLY_REMINDER.format(package=fee_package or "fee")


class Notifier:
    def __init__(
        self,
        members: MemberRepository | None = None,
        notifications: NotificationRepository | None = None,
        max_workers: int = config.FANOUT_WORKERS,
    ):
        self.members = members or MemberRepository()
        self.notifications = notifications or NotificationRepository()
        self.max_workers = max(1, max_workers)

    def send(self, session: Session, message: str, email: str | None = None) -> BatchResult:
        """
        Notify one member by email, or every member when email is empty.
        """
        message = (message or "").strip()
        if not message:
            raise ValidationError(["Please enter a message."])
        email = (email or "").strip()
        if not email:
            return self.broadcast(session, message)

        self.members.require_by_email(email)
        n = self.notifications.deliver(email, message)
        result = BatchResult((DeliveryOutcome(email, n.id),))
        audit.write_log(session, "send_notification", {"email": email, "msg": message, "sent": 1, "failed": 0})
        return result

    def broadcast(self, session: Session, message: str) -> BatchResult:
        message = (message or "").strip()
        if not message:
            raise ValidationError(["Please enter a message."])
        recipients = self._recipients()
        result = self._fan_out([(m.email, message) for m in recipients])
        audit.write_log(
            session,
            "send_notification",
            {"email": "broadcast", "msg": message, "sent": len(result.sent), "failed": len(result.failed)},
        )
        return result

    def monthly_reminders(self, session: Session) -> BatchResult:
        """Broadcast with the message built from each member's fee package."""
        recipients = self._recipients()
        result = self._fan_out([(m.email, reminder_message(m.fee_package)) for m in recipients])
        audit.write_log(
            session,
            "monthly_notifications",
            {"count": len(recipients), "sent": len(result.sent), "failed": len(result.failed)},
        )
        return result

    def _recipients(self):
        members = self.members.list()
        if not members:
            raise EmptyTargetError("No members found to send notifications")
        return members

    def _fan_out(self, deliveries: list[tuple[str, str]]) -> BatchResult:
        outcomes: list[DeliveryOutcome] = []
        workers = min(self.max_workers, len(deliveries))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as pool:
            futures = {pool.submit(self.notifications.deliver, email, msg): email for email, msg in deliveries}
            for fut in as_completed(futures):
                email = futures[fut]
                try:
                    n = fut.result()
                except Exception as e:
                    logger.warning("Notification to %s failed: %s", email, e)
                    outcomes.append(DeliveryOutcome(email, error=str(e) or type(e).__name__))
                else:
                    outcomes.append(DeliveryOutcome(email, n.id))

        result = BatchResult(tuple(outcomes))
        if not result.ok:
            logger.error("Fan-out %s: %d sent, %d failed", result.status, len(result.sent), len(result.failed))
        return result
