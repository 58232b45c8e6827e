"""Refresh-token rotation state machine.

Each presented token is classified into exactly one state and handled by the
branch for that state:

* ``Expired``  - past ``expires_at`` whatever its stored status; rejected.
* ``Revoked``  - terminal; rejected and logged as a possible compromise.
* ``Used``     - already rotated. Inside the grace window, and while its
  replacement is still ``Active``, this is a benign race between callers that
  all started from the same token, and a sibling pair is reissued in the same
  family through the store's conditional reissue. Outside the window, or once
  the replacement has itself been rotated, the token is a replay and the
  whole family is revoked.
* ``Active``   - rotated through the store's conditional transition. Losing
  that transition means another request rotated first; the record is re-read
  and classified again, which lands in ``Used`` (grace) or a rejection.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, NoReturn, Union
from uuid import UUID

from sessionguard.core.config import settings
from sessionguard.core.exceptions import RotationRejected, TokenStoreUnavailable
from sessionguard.core.security import hash_refresh_secret
from sessionguard.models.enums import RejectReason, TokenStatus
from sessionguard.models.refresh_token import RefreshToken
from sessionguard.services.issuer import IssuedSession, SessionIssuer
from sessionguard.services.token_store import TokenStore

logger = logging.getLogger(__name__)

MAX_TRANSITION_ATTEMPTS = 3


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class Active:
    expires_at: dt.datetime


@dataclass(frozen=True)
class Used:
    used_at: dt.datetime
    replaced_by: str | None


@dataclass(frozen=True)
class Revoked:
    revoked_at: dt.datetime | None


@dataclass(frozen=True)
class Expired:
    expires_at: dt.datetime


TokenState = Union[Active, Used, Revoked, Expired]


def classify(record: RefreshToken, now: dt.datetime) -> TokenState:
    if record.expires_at <= now:
        return Expired(expires_at=record.expires_at)
    if record.status == TokenStatus.revoked:
        return Revoked(revoked_at=record.revoked_at)
    if record.status == TokenStatus.used:
        # used_at is always written together with the USED status
        return Used(used_at=record.used_at or record.issued_at, replaced_by=record.replaced_by)
    return Active(expires_at=record.expires_at)


class RotationEngine:
    def __init__(
        self,
        store: TokenStore,
        issuer: SessionIssuer,
        *,
        grace_period: dt.timedelta | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.grace_period = settings.refresh_grace_period if grace_period is None else grace_period
        self.clock = clock

    def start_family(self, user_id: UUID) -> IssuedSession:
        """Open a new token family for a fresh login."""
        issued = self.issuer.issue_refresh_token(user_id)
        self.store.put(self.issuer.build_record(issued, user_id))
        logger.info("Token family %s opened for user %s", issued.family_id, user_id)
        return self.issuer.session_for(user_id, issued)

    def rotate(self, refresh_token: str) -> IssuedSession:
        if not refresh_token:
            raise RotationRejected(RejectReason.token_not_found.value)

        record = self.store.get(hash_refresh_secret(refresh_token))
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            if record is None:
                raise RotationRejected(RejectReason.token_not_found.value)

            now = self.clock()
            state = classify(record, now)
            if isinstance(state, Expired):
                raise RotationRejected(RejectReason.token_expired.value)
            if isinstance(state, Revoked):
                logger.error(
                    "Revoked refresh token presented: token=%s family=%s user=%s",
                    record.token_id,
                    record.family_id,
                    record.user_id,
                )
                raise RotationRejected(RejectReason.token_revoked.value)
            if isinstance(state, Used):
                session = self._handle_used(record, state, now)
                if session is not None:
                    return session
                logger.info("Grace reissue for %s lost to a concurrent change; re-reading", record.token_id)
                record = self.store.get_by_id(record.token_id)
                continue

            issued = self.issuer.issue_refresh_token(record.user_id, record.family_id)
            won = self.store.conditional_transition(
                record.token_id,
                TokenStatus.active,
                TokenStatus.used,
                extra={"used_at": now, "replaced_by": issued.token_id},
                new_record=self.issuer.build_record(issued, record.user_id),
            )
            if won:
                logger.info(
                    "Rotated refresh token %s -> %s (family=%s)",
                    record.token_id,
                    issued.token_id,
                    record.family_id,
                )
                return self.issuer.session_for(record.user_id, issued)

            logger.info("Rotation of %s lost to a concurrent request; re-reading", record.token_id)
            record = self.store.get_by_id(record.token_id)

        raise TokenStoreUnavailable("rotation_not_settled")

    def revoke_presented(self, refresh_token: str) -> int:
        """Revoke the family of a presented token; unknown tokens revoke nothing."""
        if not refresh_token:
            return 0
        record = self.store.get(hash_refresh_secret(refresh_token))
        if record is None:
            return 0
        count = self.store.revoke_family(record.family_id, self.clock())
        logger.info("Token family %s revoked on logout (%s tokens)", record.family_id, count)
        return count

    def _handle_used(self, record: RefreshToken, state: Used, now: dt.datetime) -> IssuedSession | None:
        """Reissue inside the grace window; returns ``None`` when the reissue lost a race."""
        elapsed = now - state.used_at
        if elapsed > self.grace_period:
            self._reject_reuse(record, now, f"presented {elapsed.total_seconds():.1f}s after rotation")

        replacement = self.store.get_by_id(state.replaced_by) if state.replaced_by else None
        successor = classify(replacement, now) if replacement is not None else None
        if isinstance(successor, Revoked):
            logger.error(
                "Refresh token %s presented after its family was revoked (family=%s user=%s)",
                record.token_id,
                record.family_id,
                record.user_id,
            )
            raise RotationRejected(RejectReason.token_revoked.value)
        if not isinstance(successor, Active):
            self._reject_reuse(record, now, "presented after its successor was rotated")

        logger.warning(
            "Refresh token %s presented again %.1fs after rotation; reissuing within grace (family=%s)",
            record.token_id,
            elapsed.total_seconds(),
            record.family_id,
        )
        # The origin stays USED; the sibling shares the family and never
        # outlives the pair the winning request received.
        issued = self.issuer.issue_refresh_token(record.user_id, record.family_id, expires_at=replacement.expires_at)
        sibling = self.issuer.build_record(issued, record.user_id, reissued_from=record.token_id)
        if not self.store.conditional_reissue(record.token_id, replacement.token_id, sibling):
            return None
        return self.issuer.session_for(record.user_id, issued)

    def _reject_reuse(self, record: RefreshToken, now: dt.datetime, detail: str) -> NoReturn:
        count = self.store.revoke_family(record.family_id, now)
        logger.error(
            "Refresh token reuse: token=%s family=%s user=%s %s; revoked %s tokens",
            record.token_id,
            record.family_id,
            record.user_id,
            detail,
            count,
        )
        raise RotationRejected(RejectReason.token_reuse_blocked.value)
