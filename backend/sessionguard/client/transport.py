"""Raw call to the rotation endpoint.

This deliberately opens its own ``httpx.AsyncClient`` instead of going
through :class:`sessionguard.client.pipeline.ApiClient`: a refresh that got
routed through the reactive-401 layer would try to refresh itself.
"""

from __future__ import annotations

import httpx

REFRESH_PATH = "/api/auth/refresh"


class RotationTransport:
    def __init__(
        self,
        base_url: str,
        *,
        refresh_path: str = REFRESH_PATH,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.refresh_path = refresh_path
        self.timeout = timeout
        self.transport = transport

    async def rotate(self, refresh_token: str) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept": "application/json"},
        ) as client:
            return await client.post(self.refresh_path, json={"refresh_token": refresh_token})
