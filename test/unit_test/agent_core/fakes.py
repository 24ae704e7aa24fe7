from __future__ import annotations

"""Scripted model clients and tool helpers shared by the agent core tests."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from convoy_ai.agent_core.runtime.models import ModelCallInput, ModelResponse, ModelStreamEvent, ModelUsage
from convoy_ai.agent_core.schemas.config import AgentDefinition, AgentLimits
from convoy_ai.agent_core.tools.base import ToolCall, ToolContext, ToolDefinition

ScriptItem = Union[ModelResponse, BaseException, Callable[[ModelCallInput], Awaitable[ModelResponse]]]


class ScriptedModelClient:
    """Model client replaying a fixed script; the last item repeats once exhausted."""

    def __init__(self, script: Sequence[ScriptItem]) -> None:
        self._script: List[ScriptItem] = list(script)
        self.calls: List[ModelCallInput] = []

    async def generate(self, input: ModelCallInput) -> ModelResponse:
        self.calls.append(input)
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return await item(input)
        return item


class StreamingModelClient(ScriptedModelClient):
    """Streams each scripted response text in fixed-size chunks."""

    def __init__(self, script: Sequence[ScriptItem], chunk_size: int = 3) -> None:
        super().__init__(script)
        self._chunk_size = chunk_size

    async def generate_stream(self, input: ModelCallInput):
        response = await self.generate(input)
        for i in range(0, len(response.text), self._chunk_size):
            yield ModelStreamEvent(type="chunk", content=response.text[i : i + self._chunk_size])
        yield ModelStreamEvent(type="final", response=response.model_copy(update={"text": ""}))


def text(content: str, *, input_tokens: int = 0, output_tokens: int = 0) -> ModelResponse:
    return ModelResponse(text=content, usage=ModelUsage(input=input_tokens, output=output_tokens))


def tool_call(name: str, call_id: str = "call_1", text_: str = "", **tool_input: Any) -> ModelResponse:
    return ModelResponse(text=text_, tool_calls=[ToolCall(id=call_id, name=name, input=tool_input)])


def make_tool(
    name: str,
    handler: Optional[Callable[[Dict[str, Any], ToolContext], Any]] = None,
    *,
    requires_approval: bool = False,
) -> ToolDefinition:
    async def _echo(input: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        return dict(input)

    return ToolDefinition(
        name=name,
        description=f"{name} tool",
        handler=handler or _echo,
        requires_approval=requires_approval,
    )


def make_agent(*, max_steps: int = 50, timeout: float = 300.0) -> AgentDefinition:
    return AgentDefinition(id="test-agent", limits=AgentLimits(max_steps=max_steps, timeout=timeout))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


