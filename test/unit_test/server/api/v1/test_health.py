from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from convoy_ai.agent_core.coordinator import ConversationCoordinator
from convoy_ai.agent_core.runtime.engine import RunEngine
from convoy_ai.agent_core.schemas.config import StateConfig, StateProvider
from convoy_ai.agent_core.state import create_conversation_store
from convoy_ai.server.main import create_app

from ....agent_core.fakes import ScriptedModelClient, make_agent, text

pytestmark = pytest.mark.asyncio


async def test_health_ok(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["storage"]["conversations"] == {"provider": "memory", "degraded": False, "reason": None}
    assert "state" in body["storage"]


async def test_health_reports_degraded_storage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CONVOY_STATE_TABLE", raising=False)
    coordinator = ConversationCoordinator(
        engine=RunEngine(agent=make_agent(), model_client=ScriptedModelClient([text("ok")])),
        conversation_store=create_conversation_store(StateConfig(provider=StateProvider.dynamodb)),
    )
    app = create_app(coordinator=coordinator)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as client:
        body = (await client.get("/health")).json()

    assert body["status"] == "degraded"
    assert body["storage"]["conversations"]["degraded"] is True
    assert body["storage"]["conversations"]["reason"] == "table is required"


async def test_version(client: AsyncClient) -> None:
    assert (await client.get("/version")).json() == {"version": "0.1.0", "schema_version": "v1"}
