from __future__ import annotations

"""Model client protocol, run I/O types and LangGraph state types.

The run engine is dependency-injected:

- ``ModelClient`` is the single opaque interface to the language model.
- ``RunInput`` describes one run; ``RunOutput`` collects a finished run.
- ``_GraphState`` is the state passed between LangGraph nodes and
  ``_RunContext`` carries the per-run collaborators that are not state
  (event sink, token, clocks).
"""

import asyncio
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    NotRequired,
    Optional,
    Protocol,
    Required,
    TypedDict,
    runtime_checkable,
)

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import Message, RunErrorInfo, RunResult, TokenUsage
from ..tools.base import CancellationToken, ToolCall, ToolSpec

class ModelUsage(BaseSchema):
    input: int = 0
    output: int = 0


class ModelCallInput(BaseSchema):
    model_name: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    system_prompt: str
    messages: List[Message] = Field(default_factory=list)
    tools: List[ToolSpec] = Field(default_factory=list)


class ModelResponse(BaseSchema):
    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: ModelUsage = Field(default_factory=ModelUsage)


class ModelStreamEvent(BaseSchema):
    """One item of ``ModelClient.generate_stream``: a text chunk or the final response."""

    type: Literal["chunk", "final"]
    content: str = ""
    response: Optional[ModelResponse] = None


@runtime_checkable
class ModelClient(Protocol):
    """Protocol for language model clients.

    ``generate_stream`` is optional; the engine uses it when the client defines it
    and falls back to ``generate`` otherwise.
    """

    async def generate(self, input: ModelCallInput) -> ModelResponse: ...


@dataclass(frozen=True)
class ApprovalRequest:
    """Details handed to the approval callback for a gated tool call."""

    approval_id: str
    run_id: str
    tool: str
    input: Dict[str, Any]


ApprovalHandler = Callable[[ApprovalRequest], Awaitable[bool]]


@dataclass(frozen=True)
class RunInput:
    """Immutable description of one run."""

    task: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    messages: List[Message] = field(default_factory=list)
    cancellation_token: Optional[CancellationToken] = None


@dataclass(frozen=True)
class RunOutput:
    run_id: str
    result: Optional[RunResult]
    events: List[Any]
    messages: List[Message]
    error: Optional[RunErrorInfo] = None
    cancelled: bool = False


@dataclass
class _RunContext:
    """Per-run collaborators handed to graph nodes through the runnable config."""

    run_id: str
    input: RunInput
    token: CancellationToken
    approval_handler: Optional[ApprovalHandler]
    queue: "asyncio.Queue[Any]"
    started_at: float
    system_prompt: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    response_text: str = ""
    chunk_count: int = 0
    messages: List[Message] = field(default_factory=list)

    def emit(self, event: Any) -> None:
        self.queue.put_nowait(event)


class _GraphState(TypedDict):
    """Mutable LangGraph state for a single run.

    Required keys:

    - ``step``: current 1-based step index.
    - ``messages``: full history (the model only sees a window of it).

    Optional keys:

    - ``step_started_at``: monotonic start time of the current step.
    - ``pending_text`` / ``pending_calls``: the model turn awaiting tool execution.
    - ``_outcome``: set when the graph must stop (completed, cancelled,
      timeout, max_steps, error).
    - ``_error``: error payload for the ``error`` outcome.
    """

    step: Required[int]
    messages: Required[List[Message]]
    step_started_at: NotRequired[float]
    pending_text: NotRequired[str]
    pending_calls: NotRequired[List[ToolCall]]
    _outcome: NotRequired[Optional[str]]
    _error: NotRequired[Optional[RunErrorInfo]]
