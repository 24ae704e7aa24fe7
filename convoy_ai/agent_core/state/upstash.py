"""Upstash Redis REST client.

Commands are issued as ``POST {url}/<command>/<args...>`` with a bearer token;
the reply body carries the command result under ``result``.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx

from ..errors import StoreUnavailableError


class UpstashKeyValueClient:
    provider = "upstash"

    def __init__(
        self,
        url: str,
        token: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._token = token
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def _command(self, *parts: Any) -> Any:
        path = "/".join(quote(str(part), safe="") for part in parts)
        response = await self._http.post(
            f"{self._base_url}/{path}",
            headers={"Authorization": f"Bearer {self._token}"},
        )
        response.raise_for_status()
        body = response.json()
        if isinstance(body, dict) and body.get("error"):
            raise StoreUnavailableError(self.provider, str(body["error"]))
        return body.get("result") if isinstance(body, dict) else None

    async def get(self, key: str) -> Optional[str]:
        result = await self._command("get", key)
        return None if result is None else str(result)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            await self._command("setex", key, ttl, value)
        else:
            await self._command("set", key, value)

    async def delete(self, key: str) -> None:
        await self._command("del", key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
