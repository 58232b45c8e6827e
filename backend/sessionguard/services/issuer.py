"""Minting of access tokens and refresh-token records."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Callable
from uuid import UUID, uuid4

from sessionguard.core.config import settings
from sessionguard.core.security import create_access_token, generate_refresh_secret, hash_refresh_secret
from sessionguard.models.enums import TokenStatus
from sessionguard.models.refresh_token import RefreshToken


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: dt.datetime


@dataclass(frozen=True)
class IssuedRefreshToken:
    token_id: str
    family_id: str
    plaintext_secret: str
    hashed_secret: str
    issued_at: dt.datetime
    expires_at: dt.datetime


@dataclass(frozen=True)
class IssuedSession:
    """What a successful login or rotation hands back to the caller."""

    user_id: UUID
    family_id: str
    access_token: str
    access_expires_at: dt.datetime
    refresh_token: str
    refresh_expires_at: dt.datetime

    def expires_in(self, now: dt.datetime) -> int:
        return max(int((self.access_expires_at - now).total_seconds()), 0)


class SessionIssuer:
    def __init__(
        self,
        *,
        access_ttl: dt.timedelta | None = None,
        refresh_ttl: dt.timedelta | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.access_ttl = access_ttl or settings.access_token_ttl
        self.refresh_ttl = refresh_ttl or settings.refresh_token_ttl
        self.clock = clock

    def issue_access_token(self, user_id: UUID) -> AccessToken:
        now = self.clock()
        expires_at = now + self.access_ttl
        token = create_access_token(
            {"sub": str(user_id), "jti": str(uuid4())},
            issued_at=now,
            expires_at=expires_at,
        )
        return AccessToken(token=token, expires_at=expires_at)

    def issue_refresh_token(
        self,
        user_id: UUID,
        family_id: str | None = None,
        *,
        expires_at: dt.datetime | None = None,
    ) -> IssuedRefreshToken:
        now = self.clock()
        secret = generate_refresh_secret()
        return IssuedRefreshToken(
            token_id=str(uuid4()),
            family_id=family_id or str(uuid4()),
            plaintext_secret=secret,
            hashed_secret=hash_refresh_secret(secret),
            issued_at=now,
            expires_at=expires_at or now + self.refresh_ttl,
        )

    @staticmethod
    def build_record(issued: IssuedRefreshToken, user_id: UUID, *, reissued_from: str | None = None) -> RefreshToken:
        return RefreshToken(
            token_id=issued.token_id,
            user_id=user_id,
            family_id=issued.family_id,
            hashed_secret=issued.hashed_secret,
            status=TokenStatus.active,
            issued_at=issued.issued_at,
            expires_at=issued.expires_at,
            reissued_from=reissued_from,
        )

    def session_for(self, user_id: UUID, issued: IssuedRefreshToken) -> IssuedSession:
        access = self.issue_access_token(user_id)
        return IssuedSession(
            user_id=user_id,
            family_id=issued.family_id,
            access_token=access.token,
            access_expires_at=access.expires_at,
            refresh_token=issued.plaintext_secret,
            refresh_expires_at=issued.expires_at,
        )
