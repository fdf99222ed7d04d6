# gatepass/core/errors.py
"""
Domain error taxonomy.

Services raise these; main.py renders them into the standard error envelope
({"error": CODE, "message": str, "details"?: dict}). Routes never need to
translate them into HTTPException by hand.
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code: int = 500
    error: str = "INTERNAL_ERROR"
    message: str = "Request failed"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


# -----------------------------
# Base categories
# -----------------------------
class ValidationError(AppError):
    status_code = 400
    error = "VALIDATION_ERROR"
    message = "Invalid request"


class AuthenticationError(AppError):
    status_code = 401
    error = "UNAUTHORIZED"
    message = "Could not validate credentials"


class AuthorizationError(AppError):
    status_code = 403
    error = "FORBIDDEN"
    message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    error = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    error = "CONFLICT"
    message = "Conflict"


class TransientStoreError(AppError):
    status_code = 500
    error = "TRANSIENT_STORE_ERROR"
    message = "Storage temporarily unavailable, please retry"


class RateLimitedError(AppError):
    status_code = 429
    error = "RATE_LIMITED"
    message = "Too many requests"


# -----------------------------
# Credentials / sessions
# -----------------------------
class InvalidCredentials(AuthenticationError):
    # Login failures are reported as 400 with one generic message.
    status_code = 400
    error = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class EmailInUse(ValidationError):
    error = "EMAIL_IN_USE"
    message = "Email already in use"


class InvalidOrExpiredToken(AuthenticationError):
    message = "Invalid or expired token"


class InvalidRefreshToken(AuthenticationError):
    message = "Invalid refresh token"


class InvalidResetToken(ValidationError):
    error = "INVALID_RESET_TOKEN"
    message = "Invalid or expired reset request"


# -----------------------------
# Claims
# -----------------------------
class ResourceNotFound(NotFoundError):
    message = "Invalid code"


class AlreadyUsed(ConflictError):
    status_code = 400
    error = "ALREADY_USED"
    message = "Code is invalid or already used"


class Expired(ConflictError):
    status_code = 400
    error = "EXPIRED"
    message = "Code expired"


class ClaimForbidden(AuthorizationError):
    message = "Not allowed to validate this code"


class DailyLimitReached(RateLimitedError):
    message = "Daily limit reached for generic code creation"
