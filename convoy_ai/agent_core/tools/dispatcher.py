from __future__ import annotations

"""Tool dispatcher.

The dispatcher maps tool names to ``ToolDefinition`` objects and executes model
requested calls. It is the only owner of the registry; the run engine resolves
every ``ToolCall`` through it.

Execution never raises: unknown tools, handler exceptions and cancellation are
all reported through ``ToolExecutionResult.error``.
"""

import asyncio
import inspect
from typing import Any, Dict, Iterable, List, Optional

from ...core.logging_config import get_logger
from .base import CancellationToken, ToolCall, ToolContext, ToolDefinition, ToolExecutionResult

logger = get_logger(__name__)

CANCELLED_ERROR = "Tool execution cancelled"

_CANCELLED = object()


class ToolDispatcher:
    """
    In-memory mapping of tool names to tool definitions.

    Notes:
        - ``register`` overwrites any existing tool with the same name.
        - ``execute_batch`` runs calls sequentially so results keep the call order
          and side effects of one model turn never overlap.
    """

    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None) -> None:
        """Initialize the dispatcher, optionally pre-registering ``tools``."""
        self._tools: Dict[str, ToolDefinition] = {}
        if tools:
            self.register_many(tools)

    def register(self, tool: ToolDefinition) -> None:
        """
        Register a tool definition.

        Args:
            tool: The tool to register. An existing tool with the same name is replaced.
        """
        self._tools[tool.name] = tool

    def register_many(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register(tool)

    def unregister(self, name: str) -> bool:
        """
        Remove a tool by name.

        Returns:
            True if a tool was removed, False if the name was unknown.
        """
        return self._tools.pop(name, None) is not None

    def unregister_many(self, names: Iterable[str]) -> None:
        for name in names:
            self.unregister(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Optional[ToolDefinition]:
        """
        Retrieve a registered tool by name.

        Args:
            name: The tool name.

        Returns:
            The tool definition, or None if no tool is registered under ``name``.
        """
        return self._tools.get(name)

    def list(self) -> List[ToolDefinition]:
        """Return registered tools in registration order."""
        return list(self._tools.values())

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolExecutionResult:
        """
        Execute a single tool call.

        The cancellation token is checked before the handler starts and again after
        it resolves. A handler still running when the token fires is cancelled and
        not awaited further.

        Args:
            call: The model-requested call.
            context: Execution context for the handler.

        Returns:
            A result carrying either the handler output or an error string.
        """
        tool = self._tools.get(call.name)
        if tool is None:
            return ToolExecutionResult.failure(call, f"Tool not found: {call.name}")

        token = context.cancellation_token
        if token is not None and token.cancelled:
            return ToolExecutionResult.failure(call, CANCELLED_ERROR)

        try:
            output = await self._invoke(tool, call, token, context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Tool '{call.name}' failed in run {context.run_id}: {exc}")
            return ToolExecutionResult.failure(call, str(exc) or type(exc).__name__)

        if output is _CANCELLED or (token is not None and token.cancelled):
            return ToolExecutionResult.failure(call, CANCELLED_ERROR)
        return ToolExecutionResult.success(call, output)

    async def execute_batch(self, calls: Iterable[ToolCall], context: ToolContext) -> List[ToolExecutionResult]:
        """
        Execute calls one after another, preserving order.

        Once cancellation is observed the remaining calls are short-circuited with
        cancellation errors instead of being executed.
        """
        results: List[ToolExecutionResult] = []
        token = context.cancellation_token
        for call in calls:
            if token is not None and token.cancelled:
                results.append(ToolExecutionResult.failure(call, CANCELLED_ERROR))
                continue
            results.append(await self.execute(call, context))
        return results

    @staticmethod
    async def _invoke(
        tool: ToolDefinition, call: ToolCall, token: Optional[CancellationToken], context: ToolContext
    ) -> Any:
        result = tool.handler(dict(call.input), context)
        if not inspect.isawaitable(result):
            return result
        if token is None:
            return await result

        handler_task = asyncio.ensure_future(result)
        cancel_wait = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({handler_task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
            if not handler_task.done():
                handler_task.cancel()
        if handler_task in done:
            return handler_task.result()
        return _CANCELLED
