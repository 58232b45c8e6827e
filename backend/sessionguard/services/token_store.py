"""Durable refresh-token storage with conditional (compare-and-set) transitions.

All rotation correctness rests on :meth:`TokenStore.conditional_transition`:
the status update of the presented token and the insert of its replacement
share one database transaction, and the update only matches while the row is
still in the expected status. Two API workers racing on the same token can
therefore never both win, whatever process they live in.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sessionguard.core.exceptions import TokenStoreUnavailable
from sessionguard.models.enums import ALLOWED_TRANSITIONS, TokenStatus
from sessionguard.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


class TokenStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, hashed_secret: str) -> RefreshToken | None:
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.hashed_secret == hashed_secret)
            .execution_options(populate_existing=True)
        )
        return self._read(stmt)

    def get_by_id(self, token_id: str) -> RefreshToken | None:
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.token_id == token_id)
            .execution_options(populate_existing=True)
        )
        return self._read(stmt)

    def list_family(self, family_id: str) -> list[RefreshToken]:
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.family_id == family_id)
            .order_by(RefreshToken.issued_at)
            .execution_options(populate_existing=True)
        )
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TokenStoreUnavailable() from exc

    def put(self, record: RefreshToken) -> None:
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TokenStoreUnavailable() from exc

    def conditional_transition(
        self,
        token_id: str,
        from_status: TokenStatus,
        to_status: TokenStatus,
        extra: dict[str, Any] | None = None,
        new_record: RefreshToken | None = None,
    ) -> bool:
        """Move ``token_id`` from ``from_status`` to ``to_status`` and insert ``new_record``.

        Returns ``False`` without changing anything when the row is no longer
        in ``from_status``.
        """
        if (from_status, to_status) not in ALLOWED_TRANSITIONS:
            raise ValueError(f"illegal transition {from_status.value} -> {to_status.value}")

        values: dict[str, Any] = {"status": to_status, **(extra or {})}
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.token_id == token_id, RefreshToken.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                self.db.rollback()
                logger.debug("Conditional transition lost for %s (%s -> %s)", token_id, from_status.value, to_status.value)
                return False
            if new_record is not None:
                self.db.add(new_record)
                self.db.flush()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TokenStoreUnavailable() from exc
        return True

    def conditional_reissue(
        self,
        origin_id: str,
        replacement_id: str | None,
        new_record: RefreshToken,
    ) -> bool:
        """Insert a grace sibling of ``origin_id`` only while its lineage is live.

        The origin must still be USED and, when given, its replacement still
        ACTIVE. Both checks are no-op updates so they take the row locks a
        concurrent revocation needs; a revocation therefore either commits
        first (and this returns ``False``) or also revokes ``new_record``.
        """
        guards = [(origin_id, TokenStatus.used)]
        if replacement_id is not None:
            guards.append((replacement_id, TokenStatus.active))
        try:
            for token_id, status in guards:
                stmt = (
                    update(RefreshToken)
                    .where(RefreshToken.token_id == token_id, RefreshToken.status == status)
                    .values(status=status)
                    .execution_options(synchronize_session=False)
                )
                if self.db.execute(stmt).rowcount != 1:
                    self.db.rollback()
                    logger.debug("Grace reissue guard failed for %s (expected %s)", token_id, status.value)
                    return False
            self.db.add(new_record)
            self.db.flush()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TokenStoreUnavailable() from exc
        return True

    def revoke_family(self, family_id: str, now: dt.datetime) -> int:
        return self._revoke_where(RefreshToken.family_id == family_id, now)

    def revoke_user(self, user_id: UUID, now: dt.datetime) -> int:
        return self._revoke_where(RefreshToken.user_id == user_id, now)

    def purge_expired(
        self,
        now: dt.datetime,
        *,
        grace_period: dt.timedelta,
        used_margin: dt.timedelta,
        revoked_retention: dt.timedelta,
    ) -> int:
        used_cutoff = now - grace_period - used_margin
        revoked_cutoff = now - revoked_retention
        stmt = delete(RefreshToken).where(
            or_(
                and_(RefreshToken.status == TokenStatus.active, RefreshToken.expires_at <= now),
                and_(
                    RefreshToken.status == TokenStatus.used,
                    or_(RefreshToken.used_at <= used_cutoff, RefreshToken.expires_at <= now),
                ),
                and_(
                    RefreshToken.status == TokenStatus.revoked,
                    or_(
                        RefreshToken.revoked_at <= revoked_cutoff,
                        and_(RefreshToken.revoked_at.is_(None), RefreshToken.expires_at <= now),
                    ),
                ),
            )
        )
        try:
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TokenStoreUnavailable() from exc
        return int(result.rowcount or 0)

    def _read(self, stmt) -> RefreshToken | None:  # noqa: ANN001
        try:
            return self.db.scalars(stmt).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TokenStoreUnavailable() from exc

    def _revoke_where(self, criterion, now: dt.datetime) -> int:  # noqa: ANN001
        stmt = (
            update(RefreshToken)
            .where(criterion, RefreshToken.status != TokenStatus.revoked)
            .values(status=TokenStatus.revoked, revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TokenStoreUnavailable() from exc
        return int(result.rowcount or 0)
