from __future__ import annotations

import asyncio
import datetime as dt

from sessionguard.core.config import settings
from sessionguard.services import retention
from sessionguard.services.token_store import TokenStore


def test_purge_uses_configured_windows(db, user, clock, make_engine) -> None:
    engine = make_engine(db)
    login = engine.start_family(user.id)
    engine.rotate(login.refresh_token)
    store = TokenStore(db)

    assert retention.purge_expired_tokens(db, clock()) == 0

    later = clock() + settings.refresh_grace_period + settings.used_retention_margin + dt.timedelta(seconds=1)
    assert retention.purge_expired_tokens(db, later) == 1
    assert len(store.list_family(login.family_id)) == 1


def test_purge_loop_is_not_started_when_disabled(monkeypatch) -> None:
    monkeypatch.setattr(settings, "TOKEN_PURGE_ENABLED", False)

    async def scenario():
        await retention.start_token_purge()
        return retention._task

    assert asyncio.run(scenario()) is None


def test_purge_loop_runs_and_stops(monkeypatch) -> None:
    runs: list[int] = []
    monkeypatch.setattr(settings, "TOKEN_PURGE_ENABLED", True)
    monkeypatch.setattr(settings, "TOKEN_PURGE_STARTUP_DELAY_SECONDS", 0)
    monkeypatch.setattr(retention, "_run_once", lambda: runs.append(1))

    async def scenario():
        await retention.start_token_purge()
        started = retention._task is not None
        for _ in range(50):
            if runs:
                break
            await asyncio.sleep(0.01)
        await retention.stop_token_purge()
        return started

    assert asyncio.run(scenario()) is True
    assert runs == [1]
    assert retention._task is None
