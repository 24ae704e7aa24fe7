"""Agent execution engine: tools, runs, conversations and storage.

Design overview
---------------

- ``tools``: ``ToolDispatcher`` owns the name-keyed tool registry and executes
  calls sequentially with cooperative cancellation.
- ``runtime``: ``RunEngine`` drives the model/tool step loop as a LangGraph
  state machine and publishes typed ``AgentEvent`` objects.
- ``coordinator``: ``ConversationCoordinator`` enforces one active run per
  conversation, resolves approvals, fans events out and checkpoints progress.
- ``state`` / ``memory``: pluggable stores with an in-process fallback.

Typical usage
-------------

Most applications should use ``agent_core.factory.build_coordinator``.
"""

from .coordinator import ConversationCoordinator
from .errors import ConversationNotFoundError, ConvoyError, ModelCallError, RunConflictError, StoreUnavailableError
from .factory import build_coordinator, build_engine
from .runtime import ModelClient, RunEngine, RunInput
from .schemas import AgentDefinition, AgentEvent, Conversation, StateConfig
from .tools import ToolDefinition, ToolDispatcher

__all__ = [
    "ConversationCoordinator",
    "RunEngine",
    "RunInput",
    "ModelClient",
    "ToolDefinition",
    "ToolDispatcher",
    "AgentDefinition",
    "AgentEvent",
    "Conversation",
    "StateConfig",
    "ConvoyError",
    "ConversationNotFoundError",
    "ModelCallError",
    "RunConflictError",
    "StoreUnavailableError",
    "build_coordinator",
    "build_engine",
]
