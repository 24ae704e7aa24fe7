"""Agent event variants emitted by the run engine.

Every state transition of a run is published as one of the models below. The
``type`` discriminator and the camelCase field names form the wire contract
shared with UIs, telemetry and persisted replays, so both must stay stable.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import Field, TypeAdapter

from .base import BaseSchema
from .domain import RunErrorInfo, RunResult, TokenUsage


class _EventBase(BaseSchema):
    type: str

    def to_sse(self) -> Dict[str, str]:
        """Frame the event for ``sse_starlette`` (``event: <type>`` / ``data: <json>``)."""
        return {"event": self.type, "data": json.dumps(self.to_wire())}


class RunStartedEvent(_EventBase):
    type: Literal["run:started"] = "run:started"
    run_id: str
    agent_id: str


class StepStartedEvent(_EventBase):
    type: Literal["step:started"] = "step:started"
    step: int


class ModelRequestEvent(_EventBase):
    type: Literal["model:request"] = "model:request"
    tokens: int = 0


class ModelChunkEvent(_EventBase):
    type: Literal["model:chunk"] = "model:chunk"
    content: str


class ModelResponseEvent(_EventBase):
    type: Literal["model:response"] = "model:response"
    usage: TokenUsage


class ToolStartedEvent(_EventBase):
    type: Literal["tool:started"] = "tool:started"
    tool: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolCompletedEvent(_EventBase):
    type: Literal["tool:completed"] = "tool:completed"
    tool: str
    output: Any = None
    duration: int


class ToolErrorEvent(_EventBase):
    type: Literal["tool:error"] = "tool:error"
    tool: str
    error: str
    recoverable: bool = True


class ToolApprovalRequiredEvent(_EventBase):
    type: Literal["tool:approval:required"] = "tool:approval:required"
    tool: str
    input: Dict[str, Any] = Field(default_factory=dict)
    approval_id: str


class ToolApprovalGrantedEvent(_EventBase):
    type: Literal["tool:approval:granted"] = "tool:approval:granted"
    approval_id: str


class ToolApprovalDeniedEvent(_EventBase):
    type: Literal["tool:approval:denied"] = "tool:approval:denied"
    approval_id: str
    reason: str


class StepCompletedEvent(_EventBase):
    type: Literal["step:completed"] = "step:completed"
    step: int
    duration: int


class RunCompletedEvent(_EventBase):
    type: Literal["run:completed"] = "run:completed"
    run_id: str
    result: RunResult


class RunErrorEvent(_EventBase):
    type: Literal["run:error"] = "run:error"
    run_id: str
    error: RunErrorInfo


class RunCancelledEvent(_EventBase):
    type: Literal["run:cancelled"] = "run:cancelled"
    run_id: str


AgentEvent = Annotated[
    Union[
        RunStartedEvent,
        StepStartedEvent,
        ModelRequestEvent,
        ModelChunkEvent,
        ModelResponseEvent,
        ToolStartedEvent,
        ToolCompletedEvent,
        ToolErrorEvent,
        ToolApprovalRequiredEvent,
        ToolApprovalGrantedEvent,
        ToolApprovalDeniedEvent,
        StepCompletedEvent,
        RunCompletedEvent,
        RunErrorEvent,
        RunCancelledEvent,
    ],
    Field(discriminator="type"),
]

AGENT_EVENT_ADAPTER: TypeAdapter[AgentEvent] = TypeAdapter(AgentEvent)

TERMINAL_EVENT_TYPES = frozenset({"run:completed", "run:error", "run:cancelled"})
APPROVAL_EVENT_TYPES = frozenset({"tool:approval:required", "tool:approval:granted", "tool:approval:denied"})


def parse_event(payload: Dict[str, Any]) -> AgentEvent:
    """Validate a wire payload back into its event model."""
    return AGENT_EVENT_ADAPTER.validate_python(payload)


def is_terminal(event: _EventBase) -> bool:
    return event.type in TERMINAL_EVENT_TYPES
