"""
core/errors.py -- Error taxonomy shared by auth/, cache/, api/ and client/.

Every failure an auth operation can report is one AuthError subclass. Each
class carries the HTTP status and the stable machine-readable code the
transport puts into the error envelope, so route handlers never choose status
codes themselves -- they let the exception propagate and api/main.py renders it.

Client faults (4xx):
  AlreadyExists, NotFound, InvalidLogin, InvalidToken, InvalidInput, RateLimited

Server faults (5xx):
  StoreFailure, HashingFailure -- never retried by the core. The message sent to
  the caller is generic; the underlying exception is chained via __cause__ and
  logged server-side only.

InvalidLogin deliberately covers both "no such user" and "wrong password".

Layer rule: core/ is the kernel. No imports from api/, auth/, cache/, client/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error an auth operation reports to its caller."""

    status_code: int = 400
    code: str = "auth_error"
    default_message: str = "The request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def is_server_fault(self) -> bool:
        return self.status_code >= 500


class AlreadyExists(AuthError):
    status_code = 409
    code = "already_exists"
    default_message = "That username is already taken."


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "No matching account."


class UserNotFound(NotFound):
    default_message = "That user does not exist."


class AddressNotFound(NotFound):
    default_message = "That address does not exist."


class InvalidLogin(AuthError):
    status_code = 401
    code = "invalid_login"
    default_message = "The username and password combination was incorrect or the user does not exist."


class InvalidToken(AuthError):
    status_code = 401
    code = "invalid_token"
    default_message = "The given token is invalid."


class InvalidInput(AuthError):
    status_code = 400
    code = "invalid_input"
    default_message = "The request was invalid."


class RateLimited(AuthError):
    status_code = 429
    code = "rate_limited"
    default_message = "You are sending too many requests. Please slow down."

    def __init__(self, message: str | None = None, retry_after: int = 60) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class StoreFailure(AuthError):
    status_code = 500
    code = "store_failure"
    default_message = "The account store could not complete the request."


class HashingFailure(AuthError):
    status_code = 500
    code = "hashing_failure"
    default_message = "Error securely storing password."
