"""Authentication endpoints (login, refresh rotation, logout, me)."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sessionguard.core.deps import get_current_user, get_identity_verifier
from sessionguard.db.session import get_db
from sessionguard.integrations.google.identity import IdentityVerifier
from sessionguard.models.user import User
from sessionguard.schemas.auth import (
    IdentityLoginRequest,
    LogoutRequest,
    MessageResponse,
    TokenPairResponse,
    TokenRefreshRequest,
    UserOut,
)
from sessionguard.services.auth import build_rotation_engine, login_with_identity, logout, logout_everywhere
from sessionguard.services.issuer import IssuedSession
from sessionguard.services.rotation import RotationEngine

router = APIRouter()


def get_rotation_engine(db: Session = Depends(get_db)) -> RotationEngine:
    return build_rotation_engine(db)


def _token_pair(session: IssuedSession, engine: RotationEngine) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in(engine.clock()),
    )


@router.post("/login", response_model=TokenPairResponse)
def login(
    payload: IdentityLoginRequest,
    db: Session = Depends(get_db),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    engine: RotationEngine = Depends(get_rotation_engine),
) -> TokenPairResponse:
    _, session = login_with_identity(db, verifier, payload.id_token, engine=engine)
    return _token_pair(session, engine)


@router.post("/refresh", response_model=TokenPairResponse)
def refresh(
    payload: TokenRefreshRequest,
    engine: RotationEngine = Depends(get_rotation_engine),
) -> TokenPairResponse:
    session = engine.rotate(payload.refresh_token)
    return _token_pair(session, engine)


@router.post("/logout", response_model=MessageResponse)
def logout_session(
    payload: LogoutRequest,
    db: Session = Depends(get_db),
    engine: RotationEngine = Depends(get_rotation_engine),
) -> MessageResponse:
    logout(db, payload.refresh_token, engine=engine)
    return MessageResponse(message="logged_out")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all_sessions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    count = logout_everywhere(db, current_user)
    return MessageResponse(message="logged_out_everywhere", revoked=count)


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.model_validate(current_user)
