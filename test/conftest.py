from __future__ import annotations

from typing import Iterable

import httpx
import pytest


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    """Fail fast on any real outbound HTTP request made during tests."""
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://test",
        "http://localhost",
        "http://127.0.0.1",
        "/",  # Allow relative paths (used by ASGI transport)
    )

    orig_async = httpx._client.AsyncClient.send

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    async def offline_async(self, request, *args, **kwargs):
        url_str = str(request.url)
        if _is_allowed(url_str) or not isinstance(self._transport, httpx.AsyncHTTPTransport):
            return await orig_async(self, request, *args, **kwargs)
        raise RuntimeError(f"Blocked outbound HTTP request during tests: {request.method} {url_str}")

    monkeypatch.setattr(httpx._client.AsyncClient, "send", offline_async)
    yield
