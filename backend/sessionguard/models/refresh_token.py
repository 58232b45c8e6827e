"""Refresh token model used for rotation, reuse detection and family revocation."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from sessionguard.db.base import Base, UTCDateTime
from sessionguard.models.enums import TokenStatus


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    token_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    family_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # sha256 hex of the plaintext; the plaintext is never stored
    hashed_secret: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[TokenStatus] = mapped_column(
        Enum(TokenStatus, name="refresh_token_status", values_callable=lambda x: [e.value for e in x]),
        default=TokenStatus.active,
        nullable=False,
        index=True,
    )
    issued_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    expires_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    used_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    replaced_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    revoked_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reissued_from: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def __repr__(self) -> str:
        return f"<RefreshToken {self.token_id} family={self.family_id} status={self.status.value}>"
