"""Common FastAPI dependencies for access-token authentication."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from sessionguard.core.exceptions import AuthenticationException, ExpiredTokenError
from sessionguard.core.security import decode_access_token
from sessionguard.db.session import get_db
from sessionguard.integrations.google.identity import GoogleIdentityVerifier, IdentityVerifier
from sessionguard.models.user import User


def _extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization", "")
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    cleaned = token.strip()
    return cleaned or None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = _extract_bearer_token(request)
    if not token:
        raise AuthenticationException(
            "not_authenticated",
            error_code="NOT_AUTHENTICATED",
            status_code=401,
        )

    # Verification failures always mean "refresh and retry"; nothing is recorded.
    try:
        payload = decode_access_token(token)
    except ValueError as exc:
        if str(exc) == "expired_token":
            raise ExpiredTokenError("access_token_expired")
        raise AuthenticationException(
            "invalid_token",
            error_code="INVALID_TOKEN",
            status_code=401,
        )

    user_id = payload.get("sub")
    user = db.get(User, _parse_uuid(user_id)) if user_id else None
    if not user:
        raise AuthenticationException(
            "user_not_found",
            error_code="USER_NOT_FOUND",
            status_code=401,
        )
    return user


def get_identity_verifier() -> IdentityVerifier:
    return GoogleIdentityVerifier()


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise AuthenticationException("invalid_token", error_code="INVALID_TOKEN", status_code=401)
