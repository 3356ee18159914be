"""Error taxonomy for the realtime layer.

Every error carries a short machine-readable ``code`` that is sent to the
client alongside the human message.
"""

from __future__ import annotations


class RealtimeError(Exception):
    code = "error"
    default_message = "Realtime error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredential(RealtimeError):
    code = "invalid_credential"
    default_message = "Invalid token"


class UnknownUser(RealtimeError):
    code = "unknown_user"
    default_message = "User not found"


class AuthenticationRequired(RealtimeError):
    code = "authentication_required"
    default_message = "Authentication required"


class AccessDenied(RealtimeError):
    code = "access_denied"
    default_message = "Access denied to project"


class AlreadyBound(RealtimeError):
    """A connection was bound to a user twice. Always a programming error."""

    code = "already_bound"
    default_message = "Connection is already authenticated"


class ConnectionNotFound(RealtimeError):
    code = "connection_not_found"
    default_message = "Connection is not registered"


# Failures reported to the client as `auth_error` rather than `error`.
AUTH_FAILURES = (InvalidCredential, UnknownUser)
