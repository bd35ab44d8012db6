"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure a sign-in, status-check or reset operation can produce is an
AuthError subclass carrying a stable machine code, an HTTP status, and a
public message that is safe to show to the client. Internal detail (which half
of an email/password pair was wrong, notifier error text) is passed as
`internal` and only ever logged.

api/main.py maps AuthError to the JSON error envelope in a single exception
handler. Gate-level outcomes (unauthorized, tenant mismatch) are decisions in
auth/gate.py, not exceptions.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 400
    code: str = "auth_error"
    public_message: str = "Authentication failed."

    def __init__(self, message: str | None = None, *, internal: str | None = None) -> None:
        self.message = message or self.public_message
        self.internal = internal
        super().__init__(self.message)


class AccountNotFound(AuthError):
    status_code = 404
    code = "account_not_found"
    public_message = "No account found with this email address."


class InvalidCredentials(AuthError):
    status_code = 401
    code = "invalid_credentials"
    public_message = "Invalid email or password."


class InvalidCode(AuthError):
    status_code = 401
    code = "invalid_code"
    public_message = "The sign-in code is invalid or has expired."


class NoPasswordConfigured(AuthError):
    status_code = 400
    code = "no_password_configured"
    public_message = "Please use the email code sign-in or set up your password first."


class TokenExpired(AuthError):
    status_code = 400
    code = "token_expired"
    public_message = "This reset link has expired. Please request a new one."


class TokenNotFound(AuthError):
    status_code = 400
    code = "token_not_found"
    public_message = "Invalid or expired reset token."


class NotificationFailed(AuthError):
    status_code = 502
    code = "notification_failed"
    public_message = "Failed to process request."


class ValidationFailed(AuthError):
    status_code = 422
    code = "validation_error"
    public_message = "Request validation failed."


class PasswordAlreadySet(AuthError):
    status_code = 409
    code = "password_already_set"
    public_message = "A password is already set for this account. Use forgot password to change it."
