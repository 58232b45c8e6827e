"""Service helpers for login, rotation and logout."""

from __future__ import annotations

import datetime as dt
import logging
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from sessionguard.integrations.google.identity import IdentityClaims, IdentityVerifier
from sessionguard.models.user import User
from sessionguard.services.issuer import IssuedSession, SessionIssuer
from sessionguard.services.rotation import RotationEngine
from sessionguard.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def build_rotation_engine(db: Session) -> RotationEngine:
    return RotationEngine(TokenStore(db), SessionIssuer())


def build_default_name_from_email(email: str) -> str:
    local_part = email.split("@", 1)[0].strip()
    cleaned = re.sub(r"[^a-zA-Z0-9]+", " ", local_part).strip()
    formatted = " ".join(piece.capitalize() for piece in cleaned.split() if piece)
    return formatted[:80] or "New User"


def find_or_create_user(db: Session, claims: IdentityClaims) -> User:
    user = db.scalars(select(User).where(User.subject_id == claims.subject_id)).first()
    if user is None:
        user = db.scalars(select(User).where(User.email == claims.email)).first()
        if user is not None:
            # same mailbox, new provider subject: the subject is authoritative
            user.subject_id = claims.subject_id
    if user is None:
        user = User(
            subject_id=claims.subject_id,
            email=claims.email,
            name=(claims.name or build_default_name_from_email(claims.email))[:255],
        )
        logger.info("User created: %s", claims.email)
    elif claims.name and user.name != claims.name:
        user.name = claims.name[:255]
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def login_with_identity(
    db: Session,
    verifier: IdentityVerifier,
    assertion: str,
    *,
    engine: RotationEngine | None = None,
) -> tuple[User, IssuedSession]:
    claims = verifier.verify(assertion)
    user = find_or_create_user(db, claims)
    session = (engine or build_rotation_engine(db)).start_family(user.id)
    logger.info("User authenticated: %s", user.email)
    return user, session


def logout(db: Session, refresh_token: str, *, engine: RotationEngine | None = None) -> bool:
    return (engine or build_rotation_engine(db)).revoke_presented(refresh_token) > 0


def logout_everywhere(db: Session, user: User) -> int:
    count = TokenStore(db).revoke_user(user.id, _utcnow())
    logger.info("All token families revoked for user %s (%s tokens)", user.email, count)
    return count
