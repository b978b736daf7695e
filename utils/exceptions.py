"""
Domain errors raised by the session services.

Each error carries the code/status pair the API error envelope renders, so the
HTTP layer never has to guess how a failure maps to a response.
"""
from __future__ import annotations


class AuthError(Exception):
    code = "AUTH_ERROR"
    status = 400
    message = "Authentication failed"
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCredentials(AuthError):
    # same message for unknown email and wrong password
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class InvalidRefreshToken(AuthError):
    # same message for unknown, revoked and expired tokens
    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid refresh token"


class InvalidAccessToken(AuthError):
    code = "INVALID_ACCESS_TOKEN"
    status = 401
    message = "Invalid access token"


class DuplicateEmail(AuthError):
    code = "CONFLICT"
    status = 409
    message = "Email already registered"


class StoreUnavailable(AuthError):
    code = "STORE_UNAVAILABLE"
    status = 503
    message = "Storage is temporarily unavailable"
    retryable = True
