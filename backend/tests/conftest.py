from __future__ import annotations

import datetime as dt
import os
import sys
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TOKEN_PURGE_ENABLED", "false")
os.environ.setdefault("ENV", "development")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from sessionguard.db.base import Base  # noqa: E402
from sessionguard.models.user import User  # noqa: E402
from sessionguard.services.issuer import SessionIssuer  # noqa: E402
from sessionguard.services.rotation import RotationEngine  # noqa: E402
from sessionguard.services.token_store import TokenStore  # noqa: E402


class FakeClock:
    def __init__(self, start: dt.datetime) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + dt.timedelta(seconds=seconds)


@pytest.fixture()
def db_engine():
    import sessionguard.models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(dt.datetime.now(dt.timezone.utc).replace(microsecond=0))


@pytest.fixture()
def user(db) -> User:
    account = User(subject_id="google-oauth2|1001", email="ada@example.com", name="Ada Lovelace")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture()
def make_engine(clock):
    def _make(db, *, grace_seconds: float = 30) -> RotationEngine:
        return RotationEngine(
            TokenStore(db),
            SessionIssuer(clock=clock),
            grace_period=dt.timedelta(seconds=grace_seconds),
            clock=clock,
        )

    return _make
