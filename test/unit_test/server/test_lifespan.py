"""
Unit tests for FastAPI application lifespan management.

Tests verify that startup configures logging and that shutdown stops active
runs and closes the coordinator's stores.
"""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from convoy_ai.server.core.config import Settings
from convoy_ai.server.main import create_app

from .helpers import build_coordinator
from ..agent_core.fakes import text

pytestmark = pytest.mark.asyncio


@pytest.fixture
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.usefixtures("_restore_root_logger")
async def test_lifespan_configures_logging_and_closes_coordinator() -> None:
    coordinator = build_coordinator([text("ok")])
    app = create_app(coordinator=coordinator, app_settings=Settings(_env_file=None, log_level="WARNING"))

    with patch("convoy_ai.server.main.setup_logging") as setup_logging, patch.object(
        coordinator, "aclose", AsyncMock()
    ) as aclose:
        async with app.router.lifespan_context(app):
            setup_logging.assert_called_once_with("WARNING")
            aclose.assert_not_awaited()
        aclose.assert_awaited_once()


@pytest.mark.usefixtures("_restore_root_logger")
async def test_shutdown_cancels_active_run() -> None:
    coordinator = build_coordinator([text("ok")])
    app = create_app(coordinator=coordinator, app_settings=Settings(_env_file=None))
    conversation = await coordinator.create_conversation("alice")

    with patch("convoy_ai.server.main.setup_logging"):
        async with app.router.lifespan_context(app):
            events = await coordinator.start_run(conversation.conversation_id, "alice", "hi")

    assert not coordinator.has_active_run(conversation.conversation_id)
    assert [e.type async for e in events][-1] in ("run:completed", "run:cancelled")
