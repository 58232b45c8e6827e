"""Google ID-token verification used only to open a first session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from sessionguard.core.config import settings
from sessionguard.core.exceptions import IdentityVerificationError

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


@dataclass(frozen=True)
class IdentityClaims:
    subject_id: str
    email: str
    name: str | None


class IdentityVerifier(Protocol):
    def verify(self, assertion: str) -> IdentityClaims: ...


class GoogleIdentityVerifier:
    def __init__(
        self,
        *,
        client_id: str | None = None,
        tokeninfo_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client_id = (client_id if client_id is not None else settings.GOOGLE_CLIENT_ID).strip()
        self.tokeninfo_url = tokeninfo_url or settings.GOOGLE_TOKENINFO_URL
        self.transport = transport
        self.timeout = 10.0

    def _fetch_claims(self, assertion: str) -> dict[str, Any]:
        with httpx.Client(
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept": "application/json"},
        ) as client:
            response = client.get(self.tokeninfo_url, params={"id_token": assertion})
        if response.status_code == 400:
            raise IdentityVerificationError()
        response.raise_for_status()
        data = response.json()
        return data if isinstance(data, dict) else {}

    def verify(self, assertion: str) -> IdentityClaims:
        if not self.client_id:
            raise IdentityVerificationError("identity_provider_not_configured")
        try:
            claims = self._fetch_claims(assertion)
        except httpx.HTTPError:
            logger.exception("Google token verification request failed")
            raise IdentityVerificationError("identity_provider_unreachable")

        if str(claims.get("aud") or "") != self.client_id:
            raise IdentityVerificationError()
        if str(claims.get("iss") or "") not in GOOGLE_ISSUERS:
            raise IdentityVerificationError()
        if str(claims.get("email_verified") or "").lower() != "true":
            raise IdentityVerificationError("identity_email_not_verified")

        subject_id = str(claims.get("sub") or "").strip()
        email = str(claims.get("email") or "").strip().lower()
        if not subject_id or not email:
            raise IdentityVerificationError("identity_profile_incomplete")
        name = str(claims.get("name") or "").strip() or None
        return IdentityClaims(subject_id=subject_id, email=email, name=name)
