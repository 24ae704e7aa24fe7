"""Convoy-AI.

This package contains the agent execution engine used to turn a user task into a
streamed, persisted, multi-step conversation with a language model.

High-level architecture
-----------------------

- **Tools**: a name-keyed registry of handlers executed sequentially and
  cancellably on behalf of the model (``agent_core.tools``).
- **Runs**: a LangGraph state machine that alternates model calls and tool
  batches, gates sensitive tools behind human approval and enforces step and
  time budgets (``agent_core.runtime``).
- **Conversations**: a coordinator that guarantees at most one active run per
  conversation, fans run events out to live subscribers and checkpoints
  progress to storage (``agent_core.coordinator``).
- **Storage**: pluggable state, conversation and memory stores with an
  in-process fallback (``agent_core.state`` and ``agent_core.memory``).

Typical workflow
----------------

1. Build a ``ConversationCoordinator`` with ``agent_core.factory.build_coordinator``.
2. Create a conversation and call ``start_run`` with a task.
3. Consume the event stream; resolve approvals with ``resolve_approval``.
4. Reconnecting clients call ``subscribe`` to replay buffered events.
"""
