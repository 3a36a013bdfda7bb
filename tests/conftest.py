import pytest

import db
from models import Session


@pytest.fixture(autouse=True)
def tmp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "gym_test.db")
    db.init_db()
    return db.DB_FILE


@pytest.fixture
def admin():
    return Session("admin-uid", "admin@gym.test", "admin")


@pytest.fixture
def logs():
    """Audit entries for one action, oldest first."""
    def _logs(action):
        return db.query("logs", {"action": action})
    return _logs
