"""Coordinator wiring and SSE parsing shared by the server tests."""

from __future__ import annotations

import re
from typing import Any, List, Sequence

from convoy_ai.agent_core.coordinator import ConversationCoordinator
from convoy_ai.agent_core.runtime.engine import RunEngine
from convoy_ai.agent_core.state.kv import KeyValueConversationStore, KeyValueStateStore, ResilientKeyValueClient
from convoy_ai.agent_core.tools.dispatcher import ToolDispatcher

from ..agent_core.fakes import ScriptedModelClient, make_agent, make_tool

_EVENT_LINE = re.compile(r"^event: (.+?)\r?$", re.MULTILINE)


def sse_event_types(body: str) -> List[str]:
    return _EVENT_LINE.findall(body)


def build_coordinator(script: Sequence[Any]) -> ConversationCoordinator:
    client = ResilientKeyValueClient(None, provider="memory")
    engine = RunEngine(
        agent=make_agent(),
        model_client=ScriptedModelClient(script),
        dispatcher=ToolDispatcher([make_tool("danger", requires_approval=True), make_tool("echo")]),
    )
    return ConversationCoordinator(
        engine=engine,
        conversation_store=KeyValueConversationStore(client, namespace="convoy:v1:test"),
        state_store=KeyValueStateStore(client, namespace="convoy:v1:test"),
    )
