import pytest

import auth
import config
import db
from errors import AuthError, BackendError, ErrorKind, ValidationError
from repositories import UserRepository


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    real_gensalt = auth.bcrypt.gensalt
    monkeypatch.setattr(auth.bcrypt, "gensalt", lambda rounds=12: real_gensalt(rounds=4))


@pytest.fixture
def client():
    return auth.AuthClient()


def test_hash_and_verify():
    h = auth.hash_password("secret123")
    assert h != "secret123"
    assert auth.verify_password("secret123", h)
    assert not auth.verify_password("wrong", h)


def test_long_passwords_are_truncated_to_72_bytes():
    h = auth.hash_password("x" * 80)
    assert auth.verify_password("x" * 72 + "different", h)


def test_sign_up_then_sign_in(client):
    uid = client.sign_up("ann@x.com", "secret1")
    assert client.current_principal() is None
    assert client.sign_in("ann@x.com", "secret1") == uid
    assert client.current_principal() == auth.Principal(uid, "ann@x.com")
    client.sign_out()
    assert client.current_principal() is None


def test_sign_up_errors(client):
    client.sign_up("ann@x.com", "secret1")
    with pytest.raises(AuthError) as exc:
        client.sign_up("ann@x.com", "another1")
    assert exc.value.kind is ErrorKind.ALREADY_REGISTERED
    with pytest.raises(AuthError) as exc:
        client.sign_up("bob@x.com", "123")
    assert exc.value.kind is ErrorKind.WEAK_SECRET


def test_sign_in_with_bad_credentials(client):
    client.sign_up("ann@x.com", "secret1")
    for email, password in (("ann@x.com", "wrong-pw"), ("ghost@x.com", "secret1")):
        with pytest.raises(AuthError) as exc:
            client.sign_in(email, password)
        assert exc.value.kind is ErrorKind.INVALID_CREDENTIAL
    assert client.current_principal() is None


def test_repeated_failures_lock_the_account(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_FAILED_LOGINS", 3)
    client.sign_up("ann@x.com", "secret1")

    for _ in range(2):
        with pytest.raises(AuthError) as exc:
            client.sign_in("ann@x.com", "wrong-pw")
        assert exc.value.kind is ErrorKind.INVALID_CREDENTIAL
    with pytest.raises(AuthError) as exc:
        client.sign_in("ann@x.com", "wrong-pw")
    assert exc.value.kind is ErrorKind.RATE_LIMITED

    # locked even with the right password
    with pytest.raises(AuthError) as exc:
        client.sign_in("ann@x.com", "secret1")
    assert exc.value.kind is ErrorKind.RATE_LIMITED


def test_successful_sign_in_resets_failure_count(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_FAILED_LOGINS", 2)
    client.sign_up("ann@x.com", "secret1")
    with pytest.raises(AuthError):
        client.sign_in("ann@x.com", "wrong-pw")
    client.sign_in("ann@x.com", "secret1")
    with pytest.raises(AuthError) as exc:
        client.sign_in("ann@x.com", "wrong-pw")
    assert exc.value.kind is ErrorKind.INVALID_CREDENTIAL


def test_unreachable_store_is_network_unavailable(client, tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "offline" / "gym.db")
    with pytest.raises(AuthError) as exc:
        client.sign_in("ann@x.com", "secret1")
    assert exc.value.kind is ErrorKind.NETWORK_UNAVAILABLE


def test_auth_state_listeners(client):
    seen = []
    unsubscribe = client.on_auth_state_changed(seen.append)
    uid = client.sign_up("ann@x.com", "secret1")
    client.sign_in("ann@x.com", "secret1")
    client.sign_out()
    unsubscribe()
    client.sign_in("ann@x.com", "secret1")

    assert seen == [None, auth.Principal(uid, "ann@x.com"), None]


def test_resolve_role_creates_missing_user_as_member(logs):
    users = UserRepository()
    assert auth.resolve_role("uid-1", "ann@x.com", users) == "member"
    user = users.get_by_uid("uid-1")
    assert user.role == "member"
    assert len(logs("create_user")) == 1

    # second sign-in finds the record
    assert auth.resolve_role("uid-1", "ann@x.com", users) == "member"
    assert len(users.list()) == 1


def test_resolve_role_returns_stored_role():
    users = UserRepository()
    users.create(None, "uid-9", "boss@x.com", "admin")
    assert auth.resolve_role("uid-9", "boss@x.com", users) == "admin"


def test_register_and_login_workflows(client, logs):
    uid = auth.register(client, "boss@x.com", "secret1", role="admin")
    assert UserRepository().get_by_uid(uid).role == "admin"
    assert len(logs("register")) == 1

    session = auth.login(client, "boss@x.com", "secret1")
    assert session.uid == uid
    assert session.is_admin
    assert logs("login")[0]["uid"] == uid

    auth.logout(client, session)
    assert client.current_principal() is None
    assert len(logs("logout")) == 1


def test_register_validates_before_sign_up(client):
    with pytest.raises(ValidationError):
        auth.register(client, "not-an-email", "secret1")
    with pytest.raises(ValidationError):
        auth.register(client, "ann@x.com", "secret1", role="owner")
    assert db.query("accounts") == []


def test_failed_user_record_removes_new_account(client, monkeypatch):
    def broken_create(self, *args, **kwargs):
        raise BackendError(ErrorKind.UNAVAILABLE, "disk I/O error")

    real_create = UserRepository.create
    monkeypatch.setattr(UserRepository, "create", broken_create)
    with pytest.raises(BackendError):
        auth.register(client, "boss@x.com", "secret1", role="admin")
    assert db.query("accounts") == []

    monkeypatch.setattr(UserRepository, "create", real_create)
    auth.register(client, "boss@x.com", "secret1", role="admin")
    assert auth.login(client, "boss@x.com", "secret1").role == "admin"


def test_member_logout_is_logged_as_member_logout(client, logs):
    auth.register(client, "ann@x.com", "secret1")
    session = auth.login(client, "ann@x.com", "secret1")
    assert session.role == "member"
    auth.logout(client, session)
    assert len(logs("member_logout")) == 1
