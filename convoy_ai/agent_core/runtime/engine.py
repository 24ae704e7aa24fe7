from __future__ import annotations

"""LangGraph run engine.

``RunEngine`` executes one run of an agent: it repeatedly calls the model,
executes the tools it requests and feeds the results back until the model
answers without tool calls, a budget is exhausted or the run is cancelled.

Execution model
---------------

- The graph has three nodes: ``begin_step`` (budget and cancellation checks),
  ``call_model`` and ``run_tools``. ``run_tools`` loops back to ``begin_step``.
- The graph runs in a dedicated task that publishes every ``AgentEvent`` onto
  an ``asyncio.Queue``; ``run`` consumes the queue until the terminal event.
- The timeout is checked at step boundaries only. A slow model call is not
  interrupted, so the timeout bounds latency rather than guaranteeing it.

Approval gating
---------------

Tools registered with ``requires_approval`` are announced with
``tool:approval:required`` and held until the approval callback answers. The
wait has no timeout. Denied calls are answered with an error tool result and
never executed; approved calls are executed as one sequential batch.
"""

import asyncio
import json
import time
from typing import Any, AsyncIterator, List, Optional, Tuple, cast
from uuid import uuid4

import httpx
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from ...core.logging_config import get_logger
from ..errors import ModelCallError
from ..memory.store import MemoryStore
from ..memory.tools import create_memory_tools
from ..schemas.config import AgentDefinition
from ..schemas.domain import Message, MessageMetadata, MessageRole, RunErrorInfo, RunResult, TokenUsage
from ..schemas.events import (
    AgentEvent,
    ModelChunkEvent,
    ModelRequestEvent,
    ModelResponseEvent,
    RunCancelledEvent,
    RunCompletedEvent,
    RunErrorEvent,
    RunStartedEvent,
    StepCompletedEvent,
    StepStartedEvent,
    ToolApprovalDeniedEvent,
    ToolApprovalGrantedEvent,
    ToolApprovalRequiredEvent,
    ToolCompletedEvent,
    ToolErrorEvent,
    ToolStartedEvent,
)
from ..tools.base import CancellationToken, ToolCall, ToolContext, ToolExecutionResult
from ..tools.dispatcher import ToolDispatcher
from .models import (
    ApprovalHandler,
    ApprovalRequest,
    ModelCallInput,
    ModelClient,
    ModelResponse,
    ModelStreamEvent,
    RunInput,
    RunOutput,
    _GraphState,
    _RunContext,
)

logger = get_logger(__name__)

MAX_CONTEXT_MESSAGES = 40
MAX_MEMORY_PROMPT_CHARS = 4000
MAX_TRANSIENT_MODEL_RETRIES = 2
TRANSIENT_RETRY_DELAY_SECONDS = 0.5

APPROVAL_DENIED_REASON = "No approval handler granted execution"
APPROVAL_DENIED_ERROR = "Tool execution denied by approval policy"

_END = object()


def is_retryable_model_error(exc: BaseException) -> bool:
    """Transient failures worth retrying within the same step."""
    if isinstance(exc, ModelCallError):
        return exc.retryable or (exc.status is not None and (exc.status == 429 or exc.status >= 500))
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def to_run_error(exc: BaseException) -> RunErrorInfo:
    code = exc.code if isinstance(exc, ModelCallError) else "MODEL_ERROR"
    return RunErrorInfo(code=code, message=str(exc) or type(exc).__name__)


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


def _jsonable(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


def format_tool_result(result: ToolExecutionResult) -> str:
    if result.error is not None:
        return f"Tool error: {result.error}"
    return json.dumps(result.output, default=str)


class RunEngine:
    """Execute runs of one agent definition against a model client.

    The engine is orchestration-only: tools are resolved and executed through
    the ``ToolDispatcher`` and approvals are delegated to an injected callback.
    """

    def __init__(
        self,
        *,
        agent: AgentDefinition,
        model_client: ModelClient,
        dispatcher: Optional[ToolDispatcher] = None,
        memory_store: Optional[MemoryStore] = None,
        approval_handler: Optional[ApprovalHandler] = None,
        working_dir: str = ".",
        max_recall_conversations: int = 20,
    ) -> None:
        """
        Initialize the RunEngine.

        Args:
            agent: Identity, prompt and budgets of the agent.
            model_client: Client used for every model call.
            dispatcher: Tool registry; a fresh one is created when omitted.
            memory_store: When given, memory tools are registered and the main
                memory is added to the system prompt.
            approval_handler: Default approval callback; without one every gated
                call is denied.
            working_dir: Workspace root exposed to tools.
            max_recall_conversations: Cap on the conversation recall corpus.
        """
        self._agent = agent
        self._model_client = model_client
        self._dispatcher = dispatcher or ToolDispatcher()
        self._memory_store = memory_store
        self._approval_handler = approval_handler
        self._working_dir = working_dir
        if memory_store is not None:
            self._dispatcher.register_many(
                create_memory_tools(memory_store, max_recall_conversations=max_recall_conversations)
            )
        self._graph = self._build_graph()

    @property
    def agent(self) -> AgentDefinition:
        return self._agent

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    @property
    def memory_store(self) -> Optional[MemoryStore]:
        return self._memory_store

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("begin_step", self._node_begin_step)
        g.add_node("call_model", self._node_call_model)
        g.add_node("run_tools", self._node_run_tools)

        g.set_entry_point("begin_step")
        g.add_conditional_edges("begin_step", self._route, {"continue": "call_model", "stop": END})
        g.add_conditional_edges("call_model", self._route, {"continue": "run_tools", "stop": END})
        g.add_conditional_edges("run_tools", self._route, {"continue": "begin_step", "stop": END})
        return g.compile()

    @staticmethod
    def _route(state: _GraphState) -> str:
        return "stop" if state.get("_outcome") else "continue"

    async def run(
        self, input: RunInput, *, approval_handler: Optional[ApprovalHandler] = None
    ) -> AsyncIterator[AgentEvent]:
        """Start a run and yield its events until (and including) the terminal event.

        Args:
            input: The task, parameters, prior messages and cancellation token.
            approval_handler: Overrides the engine's default approval callback
                for this run.
        """
        ctx, task = self._start(input, approval_handler)
        events = self._consume(ctx, task)
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()

    async def execute(self, input: RunInput, *, approval_handler: Optional[ApprovalHandler] = None) -> RunOutput:
        """Run to completion and collect events, result and the full message history."""
        ctx, task = self._start(input, approval_handler)
        events: List[Any] = [event async for event in self._consume(ctx, task)]
        terminal = events[-1] if events else None
        return RunOutput(
            run_id=ctx.run_id,
            result=terminal.result if isinstance(terminal, RunCompletedEvent) else None,
            events=events,
            messages=ctx.messages,
            error=terminal.error if isinstance(terminal, RunErrorEvent) else None,
            cancelled=isinstance(terminal, RunCancelledEvent),
        )

    def _start(self, input: RunInput, approval_handler: Optional[ApprovalHandler]) -> Tuple[_RunContext, asyncio.Task]:
        ctx = _RunContext(
            run_id=f"run_{uuid4().hex}",
            input=input,
            token=input.cancellation_token or CancellationToken(),
            approval_handler=approval_handler or self._approval_handler,
            queue=asyncio.Queue(),
            started_at=time.monotonic(),
            system_prompt=self._agent.system_prompt,
        )
        return ctx, asyncio.create_task(self._drive(ctx))

    @staticmethod
    async def _consume(ctx: _RunContext, task: asyncio.Task) -> AsyncIterator[AgentEvent]:
        try:
            while True:
                event = await ctx.queue.get()
                if event is _END:
                    return
                yield event
        finally:
            if not task.done():
                task.cancel()

    async def _drive(self, ctx: _RunContext) -> None:
        try:
            terminal = await self._execute_graph(ctx)
        except asyncio.CancelledError:
            ctx.queue.put_nowait(_END)
            raise
        except Exception as exc:
            logger.error(f"Run {ctx.run_id} failed unexpectedly: {exc}", exc_info=True)
            terminal = RunErrorEvent(
                run_id=ctx.run_id, error=RunErrorInfo(code="RUN_ERROR", message=str(exc) or type(exc).__name__)
            )
        logger.info(f"Run {ctx.run_id} finished: {terminal.type}")
        ctx.emit(terminal)
        ctx.queue.put_nowait(_END)

    async def _execute_graph(self, ctx: _RunContext) -> AgentEvent:
        limits = self._agent.limits
        logger.info(f"Run {ctx.run_id} started for agent '{self._agent.id}'")
        ctx.emit(RunStartedEvent(run_id=ctx.run_id, agent_id=self._agent.id))
        ctx.system_prompt = await self._build_system_prompt()

        user = Message(
            role=MessageRole.user,
            content=ctx.input.task,
            metadata=MessageMetadata(run_id=ctx.run_id, step=1),
        )
        state: _GraphState = {
            "step": 1,
            "messages": [*ctx.input.messages, user],
            "_outcome": None,
            "_error": None,
        }
        config: RunnableConfig = {
            "recursion_limit": limits.max_steps * 3 + 10,
            "configurable": {"run_context": ctx},
        }
        final = cast(_GraphState, await self._graph.ainvoke(state, config=config))
        ctx.messages = list(final["messages"])
        return self._terminal_event(ctx, final)

    def _terminal_event(self, ctx: _RunContext, final: _GraphState) -> AgentEvent:
        limits = self._agent.limits
        outcome = final.get("_outcome")
        if outcome == "completed":
            result = RunResult(
                response=ctx.response_text,
                steps=final["step"],
                tokens=ctx.usage,
                duration=_elapsed_ms(ctx.started_at),
            )
            return RunCompletedEvent(run_id=ctx.run_id, result=result)
        if outcome == "cancelled":
            return RunCancelledEvent(run_id=ctx.run_id)
        if outcome == "timeout":
            error = RunErrorInfo(code="TIMEOUT", message=f"Run exceeded timeout of {limits.timeout:g}s")
        elif outcome == "max_steps":
            error = RunErrorInfo(
                code="MAX_STEPS_EXCEEDED", message=f"Run reached max steps ({limits.max_steps}) without completing"
            )
        else:
            error = final.get("_error") or RunErrorInfo(code="RUN_ERROR", message=f"Run stopped: {outcome}")
        return RunErrorEvent(run_id=ctx.run_id, error=error)

    async def _build_system_prompt(self) -> str:
        prompt = self._agent.system_prompt
        if self._memory_store is None:
            return prompt
        memory = await self._memory_store.get_main_memory()
        content = memory.content.strip()
        if not content:
            return prompt
        return f"{prompt}\n\n## Persistent Memory\n\n{content[:MAX_MEMORY_PROMPT_CHARS]}"

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    @staticmethod
    def _context(config: RunnableConfig) -> _RunContext:
        return config["configurable"]["run_context"]

    async def _node_begin_step(self, state: _GraphState, config: RunnableConfig) -> _GraphState:
        ctx = self._context(config)
        limits = self._agent.limits
        step = state["step"]

        if step > limits.max_steps:
            state["_outcome"] = "max_steps"
            return state
        if ctx.token.cancelled:
            state["_outcome"] = "cancelled"
            return state
        if time.monotonic() - ctx.started_at > limits.timeout:
            state["_outcome"] = "timeout"
            return state

        logger.debug(f"Run {ctx.run_id} step {step} started")
        state["step_started_at"] = time.monotonic()
        ctx.emit(StepStartedEvent(step=step))
        ctx.emit(ModelRequestEvent(tokens=0))
        return state

    async def _node_call_model(self, state: _GraphState, config: RunnableConfig) -> _GraphState:
        ctx = self._context(config)
        step = state["step"]
        model = self._agent.model
        model_input = ModelCallInput(
            model_name=model.name,
            temperature=model.temperature,
            max_tokens=model.max_tokens,
            system_prompt=ctx.system_prompt,
            messages=state["messages"][-MAX_CONTEXT_MESSAGES:],
            tools=[tool.spec() for tool in self._dispatcher.list()],
        )

        try:
            response, streamed = await self._call_model_with_retry(ctx, model_input)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if ctx.token.cancelled:
                state["_outcome"] = "cancelled"
                return state
            logger.warning(f"Run {ctx.run_id} model call failed at step {step}: {exc}")
            state["_outcome"] = "error"
            state["_error"] = to_run_error(exc)
            return state

        if ctx.token.cancelled:
            state["_outcome"] = "cancelled"
            return state

        if not streamed and response.text:
            ctx.emit(ModelChunkEvent(content=response.text))
        ctx.usage.input += response.usage.input
        ctx.usage.output += response.usage.output
        ctx.emit(ModelResponseEvent(usage=TokenUsage(input=response.usage.input, output=response.usage.output)))
        if not response.tool_calls:
            ctx.response_text = response.text
            assistant = Message(
                role=MessageRole.assistant,
                content=response.text,
                metadata=MessageMetadata(run_id=ctx.run_id, step=step),
            )
            state["messages"] = [*state["messages"], assistant]
            ctx.emit(StepCompletedEvent(step=step, duration=_elapsed_ms(state["step_started_at"])))
            state["_outcome"] = "completed"
            return state

        state["pending_text"] = response.text
        state["pending_calls"] = list(response.tool_calls)
        return state

    async def _node_run_tools(self, state: _GraphState, config: RunnableConfig) -> _GraphState:
        ctx = self._context(config)
        step = state["step"]
        calls: List[ToolCall] = state.get("pending_calls") or []
        outcomes: List[Optional[ToolExecutionResult]] = [None] * len(calls)
        approved: List[int] = []

        for idx, call in enumerate(calls):
            if ctx.token.cancelled:
                state["_outcome"] = "cancelled"
                return state
            ctx.emit(ToolStartedEvent(tool=call.name, input=call.input))
            tool = self._dispatcher.get(call.name)
            if tool is not None and tool.requires_approval:
                approval_id = f"approval_{uuid4().hex}"
                ctx.emit(ToolApprovalRequiredEvent(tool=call.name, input=call.input, approval_id=approval_id))
                granted = await self._request_approval(
                    ctx, ApprovalRequest(approval_id=approval_id, run_id=ctx.run_id, tool=call.name, input=call.input)
                )
                if ctx.token.cancelled:
                    state["_outcome"] = "cancelled"
                    return state
                if not granted:
                    ctx.emit(ToolApprovalDeniedEvent(approval_id=approval_id, reason=APPROVAL_DENIED_REASON))
                    ctx.emit(ToolErrorEvent(tool=call.name, error=APPROVAL_DENIED_ERROR, recoverable=True))
                    outcomes[idx] = ToolExecutionResult.failure(call, APPROVAL_DENIED_ERROR)
                    continue
                ctx.emit(ToolApprovalGrantedEvent(approval_id=approval_id))
            approved.append(idx)

        if ctx.token.cancelled:
            state["_outcome"] = "cancelled"
            return state

        context = ToolContext(
            run_id=ctx.run_id,
            agent_id=self._agent.id,
            step=step,
            working_dir=self._working_dir,
            parameters=ctx.input.parameters,
            cancellation_token=ctx.token,
        )
        batch_started = time.monotonic()
        results = await self._dispatcher.execute_batch([calls[idx] for idx in approved], context)
        if ctx.token.cancelled:
            state["_outcome"] = "cancelled"
            return state

        for idx, result in zip(approved, results):
            outcomes[idx] = result
            if result.ok:
                ctx.emit(
                    ToolCompletedEvent(
                        tool=result.tool, output=_jsonable(result.output), duration=_elapsed_ms(batch_started)
                    )
                )
            else:
                ctx.emit(ToolErrorEvent(tool=result.tool, error=result.error, recoverable=True))

        assistant = Message(
            role=MessageRole.assistant,
            content=json.dumps(
                {
                    "text": state.get("pending_text", ""),
                    "tool_calls": [{"id": c.id, "name": c.name, "input": c.input} for c in calls],
                }
            ),
            metadata=MessageMetadata(run_id=ctx.run_id, step=step),
        )
        tool_results = Message(
            role=MessageRole.tool,
            content=json.dumps(
                [
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "tool_name": call.name,
                        "content": format_tool_result(outcome),
                    }
                    for call, outcome in zip(calls, outcomes)
                    if outcome is not None
                ]
            ),
            metadata=MessageMetadata(run_id=ctx.run_id, step=step),
        )
        state["messages"] = [*state["messages"], assistant, tool_results]
        state["pending_calls"] = []
        state["pending_text"] = ""
        ctx.emit(StepCompletedEvent(step=step, duration=_elapsed_ms(state["step_started_at"])))
        logger.debug(f"Run {ctx.run_id} step {step} completed with {len(calls)} tool call(s)")
        state["step"] = step + 1
        return state

    # ------------------------------------------------------------------
    # Model and approval helpers
    # ------------------------------------------------------------------

    async def _request_approval(self, ctx: _RunContext, request: ApprovalRequest) -> bool:
        if ctx.approval_handler is None:
            return False
        try:
            return bool(await ctx.approval_handler(request))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Approval handler failed for {request.approval_id}, denying: {exc}")
            return False

    async def _call_model_with_retry(self, ctx: _RunContext, model_input: ModelCallInput) -> Tuple[ModelResponse, bool]:
        attempt = 0
        while True:
            chunks_before = ctx.chunk_count
            try:
                return await self._call_model(ctx, model_input)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                retryable = (
                    attempt < MAX_TRANSIENT_MODEL_RETRIES
                    and ctx.chunk_count == chunks_before
                    and not ctx.token.cancelled
                    and is_retryable_model_error(exc)
                )
                if not retryable:
                    raise
                attempt += 1
                logger.warning(f"Run {ctx.run_id} retrying transient model error ({attempt}): {exc}")
                await asyncio.sleep(TRANSIENT_RETRY_DELAY_SECONDS * attempt)

    async def _call_model(self, ctx: _RunContext, model_input: ModelCallInput) -> Tuple[ModelResponse, bool]:
        """Call the model, streaming chunks when the client supports it.

        Returns:
            The final response and whether any chunk was streamed.
        """
        generate_stream = getattr(self._model_client, "generate_stream", None)
        if generate_stream is None:
            return await self._model_client.generate(model_input), False

        parts: List[str] = []
        final: Optional[ModelResponse] = None
        async for item in generate_stream(model_input):
            event = item if isinstance(item, ModelStreamEvent) else ModelStreamEvent.model_validate(item)
            if event.type == "chunk" and event.content:
                parts.append(event.content)
                ctx.chunk_count += 1
                ctx.emit(ModelChunkEvent(content=event.content))
            elif event.type == "final" and event.response is not None:
                final = event.response
            if ctx.token.cancelled:
                break
        text = "".join(parts)
        if final is None:
            return ModelResponse(text=text), bool(parts)
        if not final.text and text:
            final = final.model_copy(update={"text": text})
        return final, bool(parts)
