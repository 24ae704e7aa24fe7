from __future__ import annotations

"""Tool protocol and execution data models.

A tool is a named handler the model may request during a run. Tools are
registered on a ``ToolDispatcher`` at startup and executed with a
``ToolContext`` describing the run that invoked them.

Handlers should:

- accept the model-supplied input mapping and the context,
- return a JSON-serialisable output (sync or awaitable),
- raise to signal failure; the dispatcher folds the exception into a result.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from pydantic import Field

from ..schemas.base import BaseSchema


class CancellationToken:
    """Cooperative cancellation signal shared by every await point of a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()


@dataclass(frozen=True)
class ToolContext:
    """Execution context passed to tool handlers.

    Attributes
    ----------
    run_id:
        Identifier of the run requesting the tool.
    agent_id:
        Identifier of the agent definition being executed.
    step:
        1-based step index the call belongs to.
    working_dir:
        Directory tools should treat as their workspace root.
    parameters:
        Run parameters supplied by the caller (e.g. the recall corpus).
    cancellation_token:
        Token observed before and after the handler runs.
    """

    run_id: str
    agent_id: str
    step: int
    working_dir: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    cancellation_token: Optional[CancellationToken] = None


ToolHandler = Callable[[Dict[str, Any], ToolContext], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class ToolDefinition:
    """A named tool with its model-facing schema and handler."""

    name: str
    description: str
    handler: ToolHandler
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    requires_approval: bool = False

    def spec(self) -> "ToolSpec":
        return ToolSpec(name=self.name, description=self.description, input_schema=self.input_schema)


class ToolSpec(BaseSchema):
    """Handler-free view of a tool, as exposed to the model client."""

    name: str
    description: str
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class ToolCall(BaseSchema):
    """A tool invocation requested by the model; ``id`` correlates the result."""

    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class ToolExecutionResult:
    """Outcome of one tool call: either ``output`` or ``error``, never both."""

    call_id: str
    tool: str
    output: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, call: ToolCall, output: Any) -> "ToolExecutionResult":
        return cls(call_id=call.id, tool=call.name, output=output)

    @classmethod
    def failure(cls, call: ToolCall, error: str) -> "ToolExecutionResult":
        return cls(call_id=call.id, tool=call.name, error=error)
