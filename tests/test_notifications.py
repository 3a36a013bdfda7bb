import json

import pytest

from errors import BackendError, EmptyTargetError, ErrorKind, NotFoundError, ValidationError
from notifications import BatchResult, DeliveryOutcome, Notifier, reminder_message
from repositories import MemberRepository, NotificationRepository


@pytest.fixture
def members():
    return MemberRepository()


@pytest.fixture
def notes():
    return NotificationRepository()


@pytest.fixture
def notifier(members, notes):
    return Notifier(members, notes, max_workers=4)


@pytest.fixture
def roster(admin, members):
    emails = ["ann@x.com", "bob@x.com", "cat@x.com", "dan@x.com", "eve@x.com"]
    for i, email in enumerate(emails):
        members.create(admin, f"Member {i}", email, "Quarterly" if i % 2 else "")
    return emails


def test_single_recipient(admin, notifier, notes, roster, logs):
    result = notifier.send(admin, "Gym closed Sunday", "bob@x.com")
    assert result.status == "sent"
    assert [n.email for n in notes.list()] == ["bob@x.com"]
    details = json.loads(logs("send_notification")[0]["details"])
    assert details["email"] == "bob@x.com"
    assert details["msg"] == "Gym closed Sunday"


def test_single_recipient_must_be_member(admin, notifier, notes):
    with pytest.raises(NotFoundError):
        notifier.send(admin, "hello", "ghost@x.com")
    assert notes.list() == []


def test_blank_message_is_rejected(admin, notifier, roster):
    with pytest.raises(ValidationError):
        notifier.send(admin, "   ", "ann@x.com")
    with pytest.raises(ValidationError):
        notifier.broadcast(admin, "")


def test_broadcast_reaches_every_member(admin, notifier, notes, roster, logs):
    result = notifier.send(admin, "New classes!")
    assert result.ok
    assert len(result.sent) == len(roster)
    assert sorted(n.email for n in notes.list()) == sorted(roster)
    assert {n.message for n in notes.list()} == {"New classes!"}

    entries = logs("send_notification")
    assert len(entries) == 1
    details = json.loads(entries[0]["details"])
    assert details == {"email": "broadcast", "msg": "New classes!", "sent": 5, "failed": 0}


def test_broadcast_with_no_members(admin, notifier, notes):
    with pytest.raises(EmptyTargetError):
        notifier.send(admin, "anyone there?")
    with pytest.raises(EmptyTargetError):
        notifier.monthly_reminders(admin)
    assert notes.list() == []


def test_partial_broadcast_is_reported(admin, notifier, notes, roster, logs, monkeypatch):
    failing = {"bob@x.com", "dan@x.com"}
    real_deliver = notes.deliver

    def flaky(email, message):
        if email in failing:
            raise BackendError(ErrorKind.UNAVAILABLE, "write timed out")
        return real_deliver(email, message)

    monkeypatch.setattr(notes, "deliver", flaky)
    result = notifier.broadcast(admin, "Pay up")

    assert result.status == "partial"
    assert not result.ok
    assert {o.email for o in result.failed} == failing
    assert all(o.error == "write timed out" for o in result.failed)
    assert len(notes.list()) == len(roster) - len(failing)

    details = json.loads(logs("send_notification")[0]["details"])
    assert (details["sent"], details["failed"]) == (3, 2)


def test_broadcast_where_every_write_fails(admin, notifier, notes, roster, monkeypatch):
    def down(email, message):
        raise BackendError(ErrorKind.UNAVAILABLE)

    monkeypatch.setattr(notes, "deliver", down)
    result = notifier.broadcast(admin, "hello")
    assert result.status == "failed"
    assert notes.list() == []


def test_monthly_reminders_use_fee_package(admin, notifier, notes, roster, logs):
    result = notifier.monthly_reminders(admin)
    assert result.ok

    by_email = {n.email: n.message for n in notes.list()}
    assert by_email["ann@x.com"] == "Monthly fee reminder: please pay your fee"
    assert by_email["bob@x.com"] == "Monthly fee reminder: please pay your Quarterly"

    details = json.loads(logs("monthly_notifications")[0]["details"])
    assert details == {"count": 5, "sent": 5, "failed": 0}


def test_reminder_message():
    assert reminder_message(None) == "Monthly fee reminder: please pay your fee"
    assert reminder_message("Yearly") == "Monthly fee reminder: please pay your Yearly"


def test_batch_result_status():
    ok = DeliveryOutcome("a@x.com", 1)
    bad = DeliveryOutcome("b@x.com", error="boom")
    assert BatchResult((ok,)).status == "sent"
    assert BatchResult((ok, bad)).status == "partial"
    assert BatchResult((bad,)).status == "failed"
