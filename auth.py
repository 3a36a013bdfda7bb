"""
auth.py
Authentication (bcrypt hashing, sign-up/sign-in/sign-out), role resolution
and the register/login/logout workflows.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import bcrypt

import audit
import config
import db
from errors import AuthError, BackendError, ErrorKind, GymError, ValidationError
from models import ROLES, Session
from repositories import UserRepository
from utils import require_valid, validate_credentials

logger = logging.getLogger(__name__)


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt is called directly (no passlib); it only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in SQLite).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored bcrypt hash.
    """
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def _auth_error(err: BackendError) -> AuthError:
    kind = {
        ErrorKind.CONSTRAINT: ErrorKind.ALREADY_REGISTERED,
        ErrorKind.UNAVAILABLE: ErrorKind.NETWORK_UNAVAILABLE,
    }.get(err.kind, ErrorKind.UNKNOWN)
    return AuthError(kind, str(err))


@dataclass(frozen=True)
class Principal:
    uid: str
    email: str


class AuthClient:
    """
    Email/password accounts kept in the "accounts" collection.

    Holds the signed-in principal for one UI session and notifies listeners
    whenever it changes.
    """

    def __init__(self):
        self._principal: Principal | None = None
        self._listeners: list[Callable[[Principal | None], None]] = []

    def _get_account(self, email: str) -> dict | None:
        try:
            found = db.query("accounts", {"email": email})
        except BackendError as e:
            raise _auth_error(e) from e
        return found[0] if found else None

    def _set_principal(self, principal: Principal | None) -> None:
        self._principal = principal
        for listener in list(self._listeners):
            listener(principal)

    def sign_up(self, email: str, password: str) -> str:
        """
        Create an account and return its principal id. Does not sign in.
        """
        email = (email or "").strip()
        if len(password or "") < config.MIN_PASSWORD_LENGTH:
            raise AuthError(ErrorKind.WEAK_SECRET)
        if self._get_account(email) is not None:
            raise AuthError(ErrorKind.ALREADY_REGISTERED)

        uid = uuid.uuid4().hex
        try:
            db.insert(
                "accounts",
                {
                    "uid": uid,
                    "email": email,
                    "password_hash": hash_password(password),
                    "failed_attempts": 0,
                    "created_at": db.SERVER_TIMESTAMP,
                },
            )
        except BackendError as e:
            raise _auth_error(e) from e
        logger.info("Account created: %s", email)
        return uid

    def sign_in(self, email: str, password: str) -> str:
        email = (email or "").strip()
        account = self._get_account(email)
        if account is None:
            logger.info("Sign-in for unknown email %s", email)
            raise AuthError(ErrorKind.INVALID_CREDENTIAL)

        now = datetime.now(timezone.utc)
        locked_until = account.get("locked_until")
        if locked_until and datetime.fromisoformat(locked_until) > now:
            raise AuthError(ErrorKind.RATE_LIMITED)

        try:
            if not verify_password(password or "", account["password_hash"]):
                failures = int(account["failed_attempts"] or 0) + 1
                if failures >= config.MAX_FAILED_LOGINS:
                    until = now + timedelta(minutes=config.LOCKOUT_MINUTES)
                    db.update("accounts", account["id"], {
                        "failed_attempts": 0,
                        "locked_until": until.isoformat(timespec="seconds"),
                    })
                    logger.warning("Account %s locked until %s", email, until)
                    raise AuthError(ErrorKind.RATE_LIMITED)
                db.update("accounts", account["id"], {"failed_attempts": failures})
                raise AuthError(ErrorKind.INVALID_CREDENTIAL)

            db.update("accounts", account["id"], {"failed_attempts": 0, "locked_until": None})
        except AuthError:
            raise
        except BackendError as e:
            raise _auth_error(e) from e

        self._set_principal(Principal(account["uid"], email))
        return account["uid"]

    def delete_account(self, uid: str) -> None:
        """
        Remove the account with this principal id, if any.
        """
        try:
            for account in db.query("accounts", {"uid": uid}):
                db.delete("accounts", account["id"])
        except BackendError as e:
            raise _auth_error(e) from e
        logger.info("Account removed: %s", uid)

    def sign_out(self) -> None:
        self._set_principal(None)

    def current_principal(self) -> Principal | None:
        return self._principal

    def on_auth_state_changed(self, callback: Callable[[Principal | None], None]) -> Callable[[], None]:
        """
        Subscribe to sign-in/sign-out. The callback fires once right away with
        the current principal. Returns an unsubscribe function.
        """
        self._listeners.append(callback)
        callback(self._principal)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe


# ---------- Role resolution + workflows ----------

def resolve_role(uid: str, email: str, users: UserRepository | None = None) -> str:
    """
    Role of a freshly signed-in principal. A missing user record is created as
    'member'. Only used to pick a view; it is not an access check.
    """
    users = users or UserRepository()
    user = users.get_by_uid(uid)
    if user is None:
        logger.info("No user record for %s, creating one", email)
        user = users.create(Session(uid, email, "member"), uid, email, "member", action="create_user")
    else:
        users.touch_login(user)
    return user.role


def register(client: AuthClient, email: str, password: str, role: str = "member",
             users: UserRepository | None = None) -> str:
    require_valid(validate_credentials(email, password))
    if role not in ROLES:
        raise ValidationError([f"Unknown role: {role}"])
    email = email.strip()
    uid = client.sign_up(email, password)
    users = users or UserRepository()
    try:
        users.create(Session(uid, email, role), uid, email, role)
    except GymError:
        # An account with no user record would log in as 'member'
        logger.warning("User record for %s not written, removing the account", email)
        client.delete_account(uid)
        raise
    return uid


def login(client: AuthClient, email: str, password: str, users: UserRepository | None = None) -> Session:
    require_valid(validate_credentials(email, password))
    email = email.strip()
    uid = client.sign_in(email, password)
    role = resolve_role(uid, email, users)
    session = Session(uid, email, role)
    audit.write_log(session, "login", {"email": email, "role": role})
    return session


def logout(client: AuthClient, session: Session | None) -> None:
    if session is not None:
        action = "logout" if session.is_admin else "member_logout"
        audit.write_log(session, action, {"email": session.email})
    client.sign_out()
