from __future__ import annotations

import datetime as dt

import pytest

from sessionguard.core.exceptions import RotationRejected
from sessionguard.core.security import hash_refresh_secret
from sessionguard.models.enums import TokenStatus
from sessionguard.models.refresh_token import RefreshToken
from sessionguard.services.rotation import Active, Expired, Revoked, Used, classify
from sessionguard.services.token_store import TokenStore

STATUS_ORDER = {TokenStatus.active: 0, TokenStatus.used: 1, TokenStatus.revoked: 2}


def _reject_reason(engine, token: str) -> str:
    with pytest.raises(RotationRejected) as excinfo:
        engine.rotate(token)
    return excinfo.value.reason


def _snapshot(record: RefreshToken) -> RefreshToken:
    """Detached copy of a record as a slower request would have read it."""
    return RefreshToken(
        token_id=record.token_id,
        user_id=record.user_id,
        family_id=record.family_id,
        hashed_secret=record.hashed_secret,
        status=record.status,
        issued_at=record.issued_at,
        expires_at=record.expires_at,
        used_at=record.used_at,
        replaced_by=record.replaced_by,
    )


def test_classify_derives_expired_before_stored_status(user, clock) -> None:
    now = clock()
    record = RefreshToken(
        token_id="t",
        user_id=user.id,
        family_id="F",
        hashed_secret="h",
        status=TokenStatus.revoked,
        issued_at=now,
        expires_at=now,
    )
    assert isinstance(classify(record, now), Expired)

    record.expires_at = now + dt.timedelta(days=1)
    assert isinstance(classify(record, now), Revoked)

    record.status = TokenStatus.used
    record.used_at = now
    assert classify(record, now) == Used(used_at=now, replaced_by=None)

    record.status = TokenStatus.active
    assert isinstance(classify(record, now), Active)


def test_rotation_grace_and_reuse_scenario(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=30)
    store = TokenStore(db)

    login = engine.start_family(user.id)
    t1 = store.get(hash_refresh_secret(login.refresh_token))
    assert t1.status == TokenStatus.active

    rotated = engine.rotate(login.refresh_token)
    t1 = store.get_by_id(t1.token_id)
    t2 = store.get(hash_refresh_secret(rotated.refresh_token))
    assert rotated.family_id == login.family_id
    assert t1.status == TokenStatus.used
    assert t1.replaced_by == t2.token_id
    assert t2.status == TokenStatus.active
    first_used_at = t1.used_at

    clock.advance(5)
    raced = engine.rotate(login.refresh_token)
    assert raced.family_id == login.family_id
    assert raced.refresh_token != rotated.refresh_token
    t1 = store.get_by_id(t1.token_id)
    assert t1.status == TokenStatus.used
    assert t1.used_at == first_used_at
    assert t1.replaced_by == t2.token_id
    sibling = store.get(hash_refresh_secret(raced.refresh_token))
    assert sibling.reissued_from == t1.token_id
    assert sibling.expires_at == t2.expires_at

    clock.advance(60)
    assert _reject_reason(engine, login.refresh_token) == "token_reuse_blocked"
    assert _reject_reason(engine, rotated.refresh_token) == "token_revoked"
    assert _reject_reason(engine, raced.refresh_token) == "token_revoked"
    assert {r.status for r in store.list_family(login.family_id)} == {TokenStatus.revoked}


def test_unknown_token_is_not_found(db, make_engine) -> None:
    engine = make_engine(db)

    assert _reject_reason(engine, "never-issued") == "token_not_found"
    assert _reject_reason(engine, "") == "token_not_found"


def test_expired_rejection_is_idempotent(db, user, clock, make_engine) -> None:
    engine = make_engine(db)
    store = TokenStore(db)
    login = engine.start_family(user.id)

    clock.advance(31 * 24 * 3600)

    assert _reject_reason(engine, login.refresh_token) == "token_expired"
    assert _reject_reason(engine, login.refresh_token) == "token_expired"
    family = store.list_family(login.family_id)
    assert len(family) == 1
    assert family[0].status == TokenStatus.active


def test_revoked_family_rejects_every_member_including_active(db, user, clock, make_engine) -> None:
    engine = make_engine(db)
    store = TokenStore(db)
    login = engine.start_family(user.id)
    rotated = engine.rotate(login.refresh_token)

    store.revoke_family(login.family_id, clock())

    assert _reject_reason(engine, rotated.refresh_token) == "token_revoked"
    assert _reject_reason(engine, login.refresh_token) == "token_revoked"
    assert len(store.list_family(login.family_id)) == 2


def test_reuse_outside_grace_revokes_whole_family_only(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=30)
    store = TokenStore(db)
    victim = engine.start_family(user.id)
    bystander = engine.start_family(user.id)
    rotated = engine.rotate(victim.refresh_token)

    clock.advance(31)

    assert _reject_reason(engine, victim.refresh_token) == "token_reuse_blocked"
    assert {r.status for r in store.list_family(victim.family_id)} == {TokenStatus.revoked}
    assert _reject_reason(engine, rotated.refresh_token) == "token_revoked"
    assert engine.rotate(bystander.refresh_token).family_id == bystander.family_id


def test_grace_boundary_is_inclusive(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=30)
    login = engine.start_family(user.id)
    engine.rotate(login.refresh_token)

    clock.advance(30)

    assert engine.rotate(login.refresh_token).family_id == login.family_id


def test_too_short_grace_turns_benign_race_into_reuse(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=0)
    login = engine.start_family(user.id)
    engine.rotate(login.refresh_token)

    clock.advance(1)

    assert _reject_reason(engine, login.refresh_token) == "token_reuse_blocked"


def test_too_long_grace_lets_a_replayed_token_through(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=3600)
    login = engine.start_family(user.id)
    engine.rotate(login.refresh_token)

    clock.advance(600)
    replayed = engine.rotate(login.refresh_token)

    assert replayed.family_id == login.family_id


def test_losing_the_conditional_transition_falls_into_grace(db, user, clock, make_engine) -> None:
    winner = make_engine(db)
    login = winner.start_family(user.id)
    origin = TokenStore(db).get(hash_refresh_secret(login.refresh_token))
    stale = _snapshot(origin)

    winner_session = winner.rotate(login.refresh_token)
    clock.advance(1)

    loser = make_engine(db)
    loser.store.get = lambda _hashed: stale
    loser_session = loser.rotate(login.refresh_token)

    store = TokenStore(db)
    family = store.list_family(login.family_id)
    assert loser_session.family_id == winner_session.family_id
    assert loser_session.refresh_token != winner_session.refresh_token
    assert [r.token_id for r in family if r.replaced_by] == [origin.token_id]
    assert sum(1 for r in family if r.status == TokenStatus.used) == 1


def test_status_never_moves_backward(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=30)
    store = TokenStore(db)
    login = engine.start_family(user.id)
    token_id = store.get(hash_refresh_secret(login.refresh_token)).token_id
    seen = [store.get_by_id(token_id).status]

    # rotate, race inside grace, replay after grace, replay after revocation
    for advance in (0, 5, 60, 1):
        clock.advance(advance)
        try:
            engine.rotate(login.refresh_token)
        except RotationRejected:
            pass
        seen.append(store.get_by_id(token_id).status)

    ranks = [STATUS_ORDER[status] for status in seen]
    assert ranks == sorted(ranks)
    assert seen[-1] == TokenStatus.revoked


def test_family_revoked_during_grace_reissue_leaves_no_active_token(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=30)
    store = TokenStore(db)
    login = engine.start_family(user.id)
    rotated = engine.rotate(login.refresh_token)
    clock.advance(5)

    read_by_id = store.get_by_id
    revoked: list[int] = []

    def read_then_logout(token_id: str):  # noqa: ANN202
        record = read_by_id(token_id)
        if not revoked:
            # logout on another device commits right after the engine's read
            revoked.append(store.revoke_family(login.family_id, clock()))
        return record

    engine.store.get_by_id = read_then_logout

    assert _reject_reason(engine, login.refresh_token) == "token_revoked"
    assert revoked == [2]
    family = TokenStore(db).list_family(login.family_id)
    assert len(family) == 2
    assert {r.status for r in family} == {TokenStatus.revoked}
    assert _reject_reason(make_engine(db), rotated.refresh_token) == "token_revoked"


def test_replaying_a_token_whose_successor_already_rotated_is_reuse(db, user, clock, make_engine) -> None:
    engine = make_engine(db, grace_seconds=30)
    store = TokenStore(db)
    login = engine.start_family(user.id)
    second = engine.rotate(login.refresh_token)
    clock.advance(2)
    third = engine.rotate(second.refresh_token)
    clock.advance(2)

    assert _reject_reason(engine, login.refresh_token) == "token_reuse_blocked"
    assert {r.status for r in store.list_family(login.family_id)} == {TokenStatus.revoked}
    assert _reject_reason(engine, third.refresh_token) == "token_revoked"
