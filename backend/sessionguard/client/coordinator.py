"""Single-flight refresh coordination for one client process.

Any number of coroutines may call :meth:`RefreshCoordinator.ensure_valid_token`
at once; at most one rotation request is on the wire at any time and every
caller that arrived while it was in flight gets its outcome.

The decision "join the running rotation or start a new one" is taken under
``self._lock``, so two callers can never both see an empty slot. The rotation
runs as its own task and callers wait through ``asyncio.shield``: a caller
that times out or is cancelled leaves the rotation running for everyone else.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from sessionguard.client.credentials import CredentialStore, TokenBundle
from sessionguard.client.transport import RotationTransport
from sessionguard.core.config import settings
from sessionguard.models.enums import RejectReason

logger = logging.getLogger(__name__)

DEFINITIVE_ERROR_CODES = frozenset(reason.value for reason in RejectReason)
DEFINITIVE_STATUS_CODES = frozenset({400, 401, 403, 422})


class OutcomeKind(str, enum.Enum):
    success = "success"
    definitive_failure = "definitive_failure"
    transient_failure = "transient_failure"


@dataclass(frozen=True)
class RefreshOutcome:
    kind: OutcomeKind
    tokens: TokenBundle | None = None
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.success


def _error_code(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    code = data.get("error_code")
    return str(code) if code else None


def _collect_failure(task: asyncio.Task) -> None:
    # callers may all have timed out, so nobody else retrieves the exception
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Token refresh task failed: %r", exc)


class RefreshCoordinator:
    def __init__(
        self,
        credentials: CredentialStore,
        transport: RotationTransport,
        *,
        timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.transport = transport
        self.timeout = settings.CLIENT_REFRESH_TIMEOUT_SECONDS if timeout is None else timeout
        self.clock = clock
        self.rotations_started = 0
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task | None = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def ensure_valid_token(self) -> RefreshOutcome:
        async with self._lock:
            task = self._inflight
            if task is None:
                task = asyncio.create_task(self._run(), name="refresh-token-rotation")
                task.add_done_callback(_collect_failure)
                self._inflight = task
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Token refresh did not settle within %.1fs", self.timeout)
            return RefreshOutcome(OutcomeKind.transient_failure, error_code="refresh_timeout")

    async def _run(self) -> RefreshOutcome:
        try:
            return await self._rotate()
        finally:
            self._inflight = None

    async def _rotate(self) -> RefreshOutcome:
        bundle = self.credentials.get()
        if bundle is None or not bundle.refresh_token:
            return RefreshOutcome(OutcomeKind.definitive_failure, error_code="no_session")

        self.rotations_started += 1
        try:
            response = await self.transport.rotate(bundle.refresh_token)
        except httpx.HTTPError as exc:
            logger.warning("Token refresh failed transiently: %s", exc)
            return RefreshOutcome(OutcomeKind.transient_failure, error_code="network_error")

        if response.status_code == 200:
            try:
                tokens = TokenBundle.from_response(response.json(), now=self.clock())
            except ValueError:
                logger.warning("Token refresh returned an unusable body")
                return RefreshOutcome(OutcomeKind.transient_failure, error_code="malformed_response")
            self.credentials.update(tokens)
            return RefreshOutcome(OutcomeKind.success, tokens=tokens)

        error_code = _error_code(response)
        if error_code in DEFINITIVE_ERROR_CODES or response.status_code in DEFINITIVE_STATUS_CODES:
            logger.info("Session rejected by server (status=%s code=%s)", response.status_code, error_code)
            self.credentials.clear(if_refresh_token=bundle.refresh_token)
            return RefreshOutcome(OutcomeKind.definitive_failure, error_code=error_code or str(response.status_code))

        logger.warning("Token refresh failed transiently (status=%s)", response.status_code)
        return RefreshOutcome(OutcomeKind.transient_failure, error_code=error_code or str(response.status_code))
