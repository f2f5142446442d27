"""
auth/errors.py -- Typed failures raised by the identity core.

Each class carries the HTTP status and stable error code used at the
transport boundary, so api/main.py renders every one of them with a single
exception handler. Messages are deliberately generic: nothing here says
whether an email, phone or username exists.

Layer rule: no imports from api/, core/, or realtime/.
"""

from __future__ import annotations

from typing import Any


class IdentityError(Exception):
    """Base class for identity-core failures mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "bad_request"
    default_message: str = "Request could not be processed."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        detail: Any = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail


class ValidationFailed(IdentityError):
    status_code = 400
    error_code = "validation_error"
    default_message = "Request validation failed."


class DuplicateIdentity(IdentityError):
    status_code = 400
    error_code = "duplicate_identity"
    default_message = "User with this email, phone, username, or membership number already exists."


class NotFound(IdentityError):
    status_code = 404
    error_code = "not_found"
    default_message = "User not found."


class InvalidCredentials(IdentityError):
    """Unknown identifier and wrong password share this one signal."""

    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid credentials."


class NotVerified(IdentityError):
    status_code = 401
    error_code = "not_verified"
    default_message = "Account not activated. Please verify your email."


class AccountBlocked(IdentityError):
    status_code = 403
    error_code = "account_blocked"
    default_message = "Account is blocked. Please contact administrator."


class AlreadyVerified(IdentityError):
    status_code = 400
    error_code = "already_verified"
    default_message = "User is already verified."


class InvalidOrExpiredOtp(IdentityError):
    status_code = 400
    error_code = "invalid_otp"
    default_message = "Invalid or expired OTP."


class MissingToken(IdentityError):
    status_code = 401
    error_code = "unauthorized"
    default_message = "Access token required."


class InvalidToken(IdentityError):
    status_code = 401
    error_code = "invalid_token"
    default_message = "Invalid token."


class Forbidden(IdentityError):
    status_code = 403
    error_code = "forbidden"
    default_message = "Admin access required."


class ProtectedRole(IdentityError):
    status_code = 400
    error_code = "protected_role"
    default_message = "Admin users cannot be modified."


class UpstreamFailure(IdentityError):
    status_code = 502
    error_code = "upstream_failure"
    default_message = "A dependent service is unavailable. Please try again."


class ConfigurationError(RuntimeError):
    """Deployment error: the process is missing required configuration."""
