from __future__ import annotations

"""Convenience factories for wiring the agent core.

These helpers build a ``RunEngine`` and a ``ConversationCoordinator`` from
configuration models, so application wiring and tests stay concise while
deployments can still pass their own dispatcher, stores or telemetry.
"""

from typing import Iterable, Optional

from ..core.monitoring import TelemetryEmitter
from .coordinator import ConversationCoordinator
from .memory import create_memory_store
from .runtime import ModelClient, RunEngine
from .schemas.config import AgentDefinition, MemoryConfig, StateConfig
from .state import create_conversation_store, create_state_store
from .tools import ToolDefinition, ToolDispatcher, create_workspace_tools


def build_dispatcher(
    tools: Optional[Iterable[ToolDefinition]] = None,
    *,
    workspace_tools: bool = True,
    allow_write: bool = True,
) -> ToolDispatcher:
    """
    Build a ``ToolDispatcher`` with the workspace tools and the host-provided tools.

    Host tools are registered last, so a host tool replaces a built-in of the same name.
    """
    dispatcher = ToolDispatcher()
    if workspace_tools:
        dispatcher.register_many(create_workspace_tools(allow_write=allow_write))
    if tools:
        dispatcher.register_many(tools)
    return dispatcher


def build_engine(
    *,
    agent: AgentDefinition,
    model_client: ModelClient,
    tools: Optional[Iterable[ToolDefinition]] = None,
    memory: Optional[MemoryConfig] = None,
    working_dir: str = ".",
    workspace_tools: bool = True,
    allow_write: bool = True,
) -> RunEngine:
    """Construct a ``RunEngine``; memory tools are added when ``memory.enabled``."""
    memory_store = None
    max_recall = 20
    if memory is not None and memory.enabled:
        memory_store = create_memory_store(memory.state, working_dir=working_dir, agent_id=agent.id)
        max_recall = memory.max_recall_conversations
    return RunEngine(
        agent=agent,
        model_client=model_client,
        dispatcher=build_dispatcher(tools, workspace_tools=workspace_tools, allow_write=allow_write),
        memory_store=memory_store,
        working_dir=working_dir,
        max_recall_conversations=max_recall,
    )


def build_coordinator(
    *,
    agent: AgentDefinition,
    model_client: ModelClient,
    state: StateConfig,
    tools: Optional[Iterable[ToolDefinition]] = None,
    memory: Optional[MemoryConfig] = None,
    working_dir: str = ".",
    workspace_tools: bool = True,
    allow_write: bool = True,
    telemetry: Optional[TelemetryEmitter] = None,
    event_buffer_size: int = 1000,
    buffer_grace_seconds: float = 30.0,
) -> ConversationCoordinator:
    """Construct a ``ConversationCoordinator`` with stores selected by ``state``."""
    engine = build_engine(
        agent=agent,
        model_client=model_client,
        tools=tools,
        memory=memory,
        working_dir=working_dir,
        workspace_tools=workspace_tools,
        allow_write=allow_write,
    )
    return ConversationCoordinator(
        engine=engine,
        conversation_store=create_conversation_store(state, working_dir=working_dir, agent_id=agent.id),
        state_store=create_state_store(state, working_dir=working_dir, agent_id=agent.id),
        telemetry=telemetry,
        event_buffer_size=event_buffer_size,
        buffer_grace_seconds=buffer_grace_seconds,
        max_recall_conversations=memory.max_recall_conversations if memory is not None else 20,
    )
