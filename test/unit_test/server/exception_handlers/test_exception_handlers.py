from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from convoy_ai.agent_core.errors import (
    ApprovalNotFoundError,
    ConversationNotFoundError,
    RunConflictError,
    StoreUnavailableError,
)
from convoy_ai.server.exception_handlers import setup_exception_handlers

pytestmark = pytest.mark.asyncio


def _app() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/conflict")
    async def conflict():
        raise RunConflictError("conv_1")

    @app.get("/missing")
    async def missing():
        raise ConversationNotFoundError("conv_1")

    @app.get("/approval")
    async def approval():
        raise ApprovalNotFoundError("approval_1")

    @app.get("/store")
    async def store():
        raise StoreUnavailableError("sql", "down")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    return app


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://localhost") as client:
        yield client


@pytest.mark.parametrize(
    "path, status",
    [("/conflict", 409), ("/missing", 404), ("/approval", 404)],
)
async def test_domain_errors_map_to_status(client: AsyncClient, path: str, status: int) -> None:
    response = await client.get(path)
    assert response.status_code == status
    assert "detail" in response.json()


@pytest.mark.parametrize("path", ["/store", "/boom"])
async def test_other_errors_are_500_with_error_id(client: AsyncClient, path: str) -> None:
    response = await client.get(path)
    assert response.status_code == 500
    body = response.json()
    assert body["detail"] == "Internal server error"
    assert "error_id" in body
