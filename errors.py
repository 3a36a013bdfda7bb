"""
errors.py
Error taxonomy shared by the store adapter, repositories and views.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    # store
    UNAVAILABLE = "unavailable"
    CONSTRAINT = "constraint"
    # auth
    ALREADY_REGISTERED = "already-registered"
    INVALID_CREDENTIAL = "invalid-credential"
    WEAK_SECRET = "weak-secret"
    NETWORK_UNAVAILABLE = "network-unavailable"
    RATE_LIMITED = "rate-limited"
    UNKNOWN = "unknown"


class GymError(Exception):
    """Base class for every error a workflow reports to the user."""


class ValidationError(GymError):
    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DuplicateError(GymError):
    pass


class NotFoundError(GymError):
    pass


class EmptyTargetError(GymError):
    pass


class ConnectivityError(GymError):
    pass


class BackendError(GymError):
    def __init__(self, kind: ErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)


class AuthError(BackendError):
    pass


_MESSAGES = {
    ErrorKind.ALREADY_REGISTERED: "This email is already registered. Please log in instead.",
    ErrorKind.INVALID_CREDENTIAL: "Invalid email or password. Please try again.",
    ErrorKind.WEAK_SECRET: "Password must be at least 6 characters long.",
    ErrorKind.NETWORK_UNAVAILABLE: "Unable to connect to server. Please check your connection and try again.",
    ErrorKind.RATE_LIMITED: "Too many failed attempts. Please try again later.",
    ErrorKind.UNAVAILABLE: "The database is unavailable. Please try again in a few moments.",
    ErrorKind.CONSTRAINT: "The change was rejected by the database.",
}


def user_message(err: Exception) -> str:
    """
    Text shown to the user for a failed workflow.
    """
    if isinstance(err, ValidationError):
        return "\n".join(err.errors)
    if isinstance(err, BackendError):
        return _MESSAGES.get(err.kind, f"Unexpected error: {err}")
    return str(err)
