from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest

from convoy_ai.agent_core.tools.base import CancellationToken, ToolCall, ToolContext, ToolDefinition
from convoy_ai.agent_core.tools.dispatcher import CANCELLED_ERROR, ToolDispatcher

from ..fakes import make_tool


def _ctx(token: CancellationToken | None = None, **parameters: Any) -> ToolContext:
    return ToolContext(
        run_id="run_1",
        agent_id="test-agent",
        step=1,
        working_dir=".",
        parameters=parameters,
        cancellation_token=token,
    )


def test_register_get_list_and_unregister() -> None:
    d = ToolDispatcher([make_tool("a"), make_tool("b")])
    assert d.has("a") and d.has("b")
    assert [t.name for t in d.list()] == ["a", "b"]
    assert d.get("missing") is None

    assert d.unregister("a") is True
    assert d.unregister("a") is False
    assert [t.name for t in d.list()] == ["b"]

    d.unregister_many(["b", "c"])
    assert d.list() == []


def test_register_overwrites_same_name() -> None:
    d = ToolDispatcher()
    first = make_tool("dup")
    second = ToolDefinition(name="dup", description="replacement", handler=lambda i, c: "second")
    d.register(first)
    d.register(second)
    assert d.get("dup") is second
    assert len(d.list()) == 1


def test_spec_omits_handler() -> None:
    spec = make_tool("echo").spec()
    assert spec.to_wire() == {
        "name": "echo",
        "description": "echo tool",
        "inputSchema": {"type": "object", "properties": {}},
    }


@pytest.mark.asyncio
async def test_execute_async_and_sync_handlers() -> None:
    def _upper(input: Dict[str, Any], context: ToolContext) -> str:
        return str(input["text"]).upper()

    d = ToolDispatcher([make_tool("echo"), ToolDefinition(name="upper", description="", handler=_upper)])

    echoed = await d.execute(ToolCall(id="c1", name="echo", input={"x": 1}), _ctx())
    assert echoed.ok and echoed.output == {"x": 1} and echoed.call_id == "c1"

    upper = await d.execute(ToolCall(id="c2", name="upper", input={"text": "hi"}), _ctx())
    assert upper.output == "HI"


@pytest.mark.asyncio
async def test_execute_unknown_tool_returns_error() -> None:
    result = await ToolDispatcher().execute(ToolCall(id="c1", name="nope"), _ctx())
    assert not result.ok
    assert result.error == "Tool not found: nope"


@pytest.mark.asyncio
async def test_execute_folds_handler_exception() -> None:
    async def _boom(input: Dict[str, Any], context: ToolContext) -> None:
        raise ValueError("boom")

    d = ToolDispatcher([make_tool("boom", _boom)])
    result = await d.execute(ToolCall(id="c1", name="boom"), _ctx())
    assert result.error == "boom"
    assert result.output is None


@pytest.mark.asyncio
async def test_execute_receives_context_and_copy_of_input() -> None:
    seen: List[ToolContext] = []

    def _capture(input: Dict[str, Any], context: ToolContext) -> str:
        input["mutated"] = True
        seen.append(context)
        return "ok"

    call = ToolCall(id="c1", name="capture", input={"a": 1})
    d = ToolDispatcher([make_tool("capture", _capture)])
    await d.execute(call, _ctx(flag="on"))

    assert call.input == {"a": 1}
    assert seen[0].parameters["flag"] == "on"
    assert seen[0].run_id == "run_1"


@pytest.mark.asyncio
async def test_execute_with_cancelled_token_skips_handler() -> None:
    calls: List[str] = []

    def _track(input: Dict[str, Any], context: ToolContext) -> str:
        calls.append("called")
        return "ok"

    token = CancellationToken()
    token.cancel()
    result = await ToolDispatcher([make_tool("t", _track)]).execute(ToolCall(id="c1", name="t"), _ctx(token))
    assert result.error == CANCELLED_ERROR
    assert calls == []


@pytest.mark.asyncio
async def test_cancellation_interrupts_running_handler() -> None:
    token = CancellationToken()
    finished: List[bool] = []

    async def _slow(input: Dict[str, Any], context: ToolContext) -> str:
        await asyncio.sleep(5)
        finished.append(True)
        return "late"

    d = ToolDispatcher([make_tool("slow", _slow)])
    asyncio.get_running_loop().call_later(0.02, token.cancel)
    result = await asyncio.wait_for(d.execute(ToolCall(id="c1", name="slow"), _ctx(token)), 1.0)

    assert result.error == CANCELLED_ERROR
    assert finished == []


@pytest.mark.asyncio
async def test_token_cancelled_during_handler_discards_output() -> None:
    def _cancel_then_return(input: Dict[str, Any], context: ToolContext) -> str:
        assert context.cancellation_token is not None
        context.cancellation_token.cancel()
        return "ignored"

    token = CancellationToken()
    d = ToolDispatcher([make_tool("t", _cancel_then_return)])
    result = await d.execute(ToolCall(id="c1", name="t"), _ctx(token))
    assert result.error == CANCELLED_ERROR


@pytest.mark.asyncio
async def test_execute_batch_preserves_order_and_short_circuits() -> None:
    order: List[str] = []
    token = CancellationToken()

    def _record(input: Dict[str, Any], context: ToolContext) -> str:
        order.append(input["id"])
        if input.get("stop"):
            token.cancel()
        return input["id"]

    d = ToolDispatcher([make_tool("rec", _record)])
    calls = [
        ToolCall(id="c1", name="rec", input={"id": "1"}),
        ToolCall(id="c2", name="rec", input={"id": "2", "stop": True}),
        ToolCall(id="c3", name="rec", input={"id": "3"}),
    ]
    results = await d.execute_batch(calls, _ctx(token))

    assert order == ["1", "2"]
    assert [r.call_id for r in results] == ["c1", "c2", "c3"]
    assert results[0].output == "1"
    assert results[1].error == CANCELLED_ERROR
    assert results[2].error == CANCELLED_ERROR
