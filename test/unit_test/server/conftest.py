from __future__ import annotations

import pytest
import pytest_asyncio
import sse_starlette.sse as sse_module
from httpx import ASGITransport, AsyncClient

from convoy_ai.agent_core.coordinator import ConversationCoordinator
from convoy_ai.server.main import create_app

from ..agent_core.fakes import text, tool_call
from .helpers import build_coordinator


@pytest.fixture(autouse=True)
def _reset_sse_app_status(monkeypatch: pytest.MonkeyPatch) -> None:
    """sse_starlette keeps a process-wide exit event bound to the first event loop."""
    app_status = getattr(sse_module, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        monkeypatch.setattr(app_status, "should_exit_event", None)


@pytest.fixture
def coordinator() -> ConversationCoordinator:
    return build_coordinator([tool_call("danger"), text("done")])


@pytest_asyncio.fixture
async def client(coordinator: ConversationCoordinator):
    app = create_app(coordinator=coordinator)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as client:
        yield client
