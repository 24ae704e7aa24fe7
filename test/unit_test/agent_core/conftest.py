from __future__ import annotations

import pytest

from convoy_ai.agent_core.schemas.config import AgentDefinition

from .fakes import make_agent


@pytest.fixture
def agent() -> AgentDefinition:
    return make_agent()
