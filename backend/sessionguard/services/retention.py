"""Retention purge for refresh-token records and its background loop."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging

from sqlalchemy.orm import Session

from sessionguard.core.config import settings
from sessionguard.db.session import SessionLocal
from sessionguard.services.token_store import TokenStore

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None


def purge_expired_tokens(db: Session, now: dt.datetime | None = None) -> int:
    """Delete records whose status-specific retention window has elapsed.

    ACTIVE rows go at ``expires_at``; USED rows once the grace window plus a
    safety margin has passed; REVOKED rows after the audit window.
    """
    now = now or dt.datetime.now(dt.timezone.utc)
    return TokenStore(db).purge_expired(
        now,
        grace_period=settings.refresh_grace_period,
        used_margin=settings.used_retention_margin,
        revoked_retention=settings.revoked_retention,
    )


def _run_once() -> None:
    db = SessionLocal()
    try:
        purged = purge_expired_tokens(db)
        if purged:
            logger.info("Token purge removed %s refresh token records", purged)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Token purge failed: %s", exc)
    finally:
        db.close()


async def _loop() -> None:
    startup_delay = max(0, settings.TOKEN_PURGE_STARTUP_DELAY_SECONDS)
    interval = max(30, settings.TOKEN_PURGE_INTERVAL_SECONDS)
    if startup_delay:
        await asyncio.sleep(startup_delay)
    while True:
        await asyncio.to_thread(_run_once)
        await asyncio.sleep(interval)


async def start_token_purge() -> None:
    global _task
    if _task is not None:
        return
    if not settings.TOKEN_PURGE_ENABLED:
        return
    _task = asyncio.create_task(_loop(), name="refresh-token-purge")
    logger.info("Token purge loop started (every %s seconds)", max(30, settings.TOKEN_PURGE_INTERVAL_SECONDS))


async def stop_token_purge() -> None:
    global _task
    task = _task
    _task = None
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
