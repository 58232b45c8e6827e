"""Custom exceptions for application-specific error handling."""

from __future__ import annotations

from typing import Any, Dict, Optional


class SessionGuardException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class BadRequestError(SessionGuardException):
    """Raised when request is invalid."""

    def __init__(self, message: str = "bad_request", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="BAD_REQUEST", details=details, status_code=400)


# ===== AUTHENTICATION EXCEPTIONS =====


class AuthenticationException(SessionGuardException):
    """Base exception for authentication errors."""


class ExpiredTokenError(AuthenticationException):
    """Raised when an access token has expired."""

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message, error_code="EXPIRED_TOKEN", status_code=401)


class RotationRejected(AuthenticationException):
    """Raised when a refresh token cannot be rotated.

    The reason doubles as the wire error code so clients can tell a dead
    session apart from a transient failure.
    """

    def __init__(self, reason: str, *, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        super().__init__(reason, error_code=reason, details=details, status_code=401)


class IdentityVerificationError(AuthenticationException):
    """Raised when a third-party identity assertion cannot be verified."""

    def __init__(self, message: str = "invalid_identity_assertion"):
        super().__init__(message, error_code="INVALID_IDENTITY_ASSERTION", status_code=401)


# ===== CLIENT SESSION EXCEPTIONS =====


class NotAuthenticated(AuthenticationException):
    """Raised client-side when a request is attempted without any session."""

    def __init__(self, message: str = "not_authenticated"):
        super().__init__(message, error_code="NOT_AUTHENTICATED", status_code=401)


class SessionTerminated(AuthenticationException):
    """Raised client-side once the server has definitively refused the session."""

    def __init__(self, reason: str | None = None):
        super().__init__(
            "session_terminated",
            error_code="SESSION_TERMINATED",
            details={"reason": reason} if reason else {},
            status_code=401,
        )
        self.reason = reason


# ===== STORAGE EXCEPTIONS =====


class TokenStoreUnavailable(SessionGuardException):
    """Raised when the token store cannot be reached; callers may retry."""

    def __init__(self, message: str = "token_store_unavailable"):
        super().__init__(
            message,
            error_code="TOKEN_STORE_UNAVAILABLE",
            status_code=503,
            headers={"Retry-After": "1"},
        )
