"""Security helpers for refresh-token secrets and signed access tokens."""

from __future__ import annotations

import datetime as dt
import hashlib
import secrets
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from sessionguard.core.config import settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_SECRET_BYTES = 48


def generate_refresh_secret() -> str:
    return secrets.token_urlsafe(REFRESH_SECRET_BYTES)


def hash_refresh_secret(secret: str) -> str:
    # Deterministic so the hash can serve as the lookup key; the secret itself
    # carries enough entropy that a slow KDF buys nothing.
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def create_access_token(
    data: dict[str, Any],
    *,
    issued_at: dt.datetime,
    expires_at: dt.datetime,
) -> str:
    to_encode = data.copy()
    to_encode.update(
        {
            "type": ACCESS_TOKEN_TYPE,
            "iss": settings.JWT_ISSUER,
            "aud": settings.JWT_AUDIENCE,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
    )
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, *, verify_exp: bool = True) -> dict[str, Any]:
    """Verify signature, expiry, issuer and audience of an access token."""
    options = {"verify_exp": verify_exp}
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise ValueError("expired_token") from exc
    except JWTError as exc:
        raise ValueError("invalid_token") from exc
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise ValueError("invalid_token")
    return payload
