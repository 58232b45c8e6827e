"""Authenticated request pipeline with proactive and reactive token refresh."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from sessionguard.client.coordinator import OutcomeKind, RefreshCoordinator, RefreshOutcome
from sessionguard.client.credentials import CredentialStore, TokenBundle
from sessionguard.client.transport import RotationTransport
from sessionguard.core.config import settings
from sessionguard.core.exceptions import NotAuthenticated, SessionTerminated

logger = logging.getLogger(__name__)


class ApiClient:
    """Wraps outbound calls to the API with bearer auth.

    Before sending, a token expiring within ``lookahead_seconds`` is refreshed
    through the coordinator. A 401 triggers one reactive refresh followed by a
    single retry. Request bodies must therefore be replayable (``json=``,
    ``data=``, ``content=`` bytes), not streams.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        coordinator: RefreshCoordinator,
        *,
        lookahead_seconds: float | None = None,
        on_session_terminated: Callable[[str | None], None] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.coordinator = coordinator
        self.lookahead_seconds = (
            settings.CLIENT_REFRESH_LOOKAHEAD_SECONDS if lookahead_seconds is None else lookahead_seconds
        )
        self.on_session_terminated = on_session_terminated
        self.clock = clock
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    @classmethod
    def for_session(
        cls,
        base_url: str,
        bundle: TokenBundle,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> ApiClient:
        """Wire credentials, rotation transport and coordinator for one session."""
        credentials = CredentialStore(bundle)
        coordinator = RefreshCoordinator(credentials, RotationTransport(base_url, transport=transport))
        return cls(base_url, credentials, coordinator, transport=transport, **kwargs)

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self.credentials.get() is None:
            raise NotAuthenticated()

        if self.credentials.expires_within(self.lookahead_seconds, now=self.clock()):
            outcome = await self.coordinator.ensure_valid_token()
            if outcome.kind is OutcomeKind.definitive_failure:
                self._terminate(outcome)
            if outcome.kind is OutcomeKind.transient_failure:
                logger.debug("Proactive refresh failed transiently; sending with current token")

        response, used_token = await self._send(method, path, **kwargs)
        if response.status_code != 401:
            return response

        current = self.credentials.get()
        if current is not None and current.access_token != used_token:
            # another caller already refreshed while this request was out
            retried, _ = await self._send(method, path, **kwargs)
            return retried

        outcome = await self.coordinator.ensure_valid_token()
        if outcome.kind is OutcomeKind.success:
            retried, _ = await self._send(method, path, **kwargs)
            return retried
        if outcome.kind is OutcomeKind.definitive_failure:
            self._terminate(outcome)
        return response

    async def _send(self, method: str, path: str, **kwargs: Any) -> tuple[httpx.Response, str]:
        bundle = self.credentials.get()
        if bundle is None:
            raise SessionTerminated()
        headers = {**(kwargs.get("headers") or {}), "Authorization": f"Bearer {bundle.access_token}"}
        options = {key: value for key, value in kwargs.items() if key != "headers"}
        response = await self._client.request(method, path, headers=headers, **options)
        return response, bundle.access_token

    def _terminate(self, outcome: RefreshOutcome) -> None:
        self.credentials.clear()
        logger.info("Session terminated (%s)", outcome.error_code)
        if self.on_session_terminated is not None:
            self.on_session_terminated(outcome.error_code)
        raise SessionTerminated(outcome.error_code)
