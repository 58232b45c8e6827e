"""Client-side holder for the current access/refresh token pair."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass(frozen=True)
class TokenBundle:
    access_token: str
    refresh_token: str
    access_expires_at: float

    @classmethod
    def from_response(cls, payload: Any, *, now: float | None = None) -> TokenBundle:
        if not isinstance(payload, dict):
            raise ValueError("token_response_incomplete")
        access_token = str(payload.get("access_token") or "")
        refresh_token = str(payload.get("refresh_token") or "")
        if not access_token or not refresh_token:
            raise ValueError("token_response_incomplete")
        try:
            expires_in = float(payload.get("expires_in") or 0)
        except (TypeError, ValueError) as exc:
            raise ValueError("token_response_incomplete") from exc
        issued = time.time() if now is None else now
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=issued + expires_in,
        )


class CredentialStore:
    def __init__(self, bundle: TokenBundle | None = None) -> None:
        self._bundle = bundle
        self._lock = Lock()

    def get(self) -> TokenBundle | None:
        with self._lock:
            return self._bundle

    def update(self, bundle: TokenBundle) -> None:
        with self._lock:
            self._bundle = bundle

    def clear(self, *, if_refresh_token: str | None = None) -> bool:
        """Drop the session; with ``if_refresh_token`` only if it is still current."""
        with self._lock:
            if self._bundle is None:
                return False
            if if_refresh_token is not None and self._bundle.refresh_token != if_refresh_token:
                return False
            self._bundle = None
            return True

    def expires_within(self, seconds: float, *, now: float | None = None) -> bool:
        bundle = self.get()
        if bundle is None:
            return False
        current = time.time() if now is None else now
        return bundle.access_expires_at - current <= seconds
