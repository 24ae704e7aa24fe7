from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from convoy_ai.agent_core.memory.store import KeyValueMemoryStore
from convoy_ai.agent_core.memory.tools import (
    RECALL_CORPUS_PARAMETER,
    RecallDocument,
    build_snippet,
    create_memory_tools,
    rank_conversations,
    score_document,
)
from convoy_ai.agent_core.state.kv import ResilientKeyValueClient
from convoy_ai.agent_core.tools.base import ToolCall, ToolContext
from convoy_ai.agent_core.tools.dispatcher import ToolDispatcher

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _doc(conversation_id: str, content: str, *, minutes_ago: int = 0, title: str = "") -> RecallDocument:
    return RecallDocument(
        conversation_id=conversation_id,
        title=title,
        content=content,
        updated_at=NOW - timedelta(minutes=minutes_ago),
    )


def _ctx(corpus: List[Dict[str, Any]]) -> ToolContext:
    return ToolContext(
        run_id="run_1", agent_id="a", step=1, working_dir=".", parameters={RECALL_CORPUS_PARAMETER: corpus}
    )


def test_score_document_phrase_and_tokens() -> None:
    assert score_document("Blue  Green", "we use blue green deploys") == 5 + 2
    assert score_document("blue green", "green then blue") == 2
    assert score_document("a blue", "blue") == 1
    assert score_document("   ", "anything") == 0
    assert score_document("red", "blue") == 0


def test_build_snippet_windows_around_match() -> None:
    content = "x" * 500 + " needle " + "y" * 500
    snippet = build_snippet("needle", content)
    assert "needle" in snippet
    assert len(snippet) <= 120 + len("needle") + 180

    assert build_snippet("absent", "z" * 1000) == "z" * 360


def test_rank_orders_by_score_then_recency() -> None:
    docs = [
        _doc("conv_old", "deploy pipeline notes", minutes_ago=30),
        _doc("conv_new", "deploy pipeline notes", minutes_ago=1),
        _doc("conv_partial", "pipeline only"),
        _doc("conv_none", "unrelated"),
    ]
    ranked = rank_conversations("deploy pipeline", docs, limit=5)
    assert [m.conversation_id for m in ranked] == ["conv_new", "conv_old", "conv_partial"]
    assert ranked[0].score == 7

    assert [m.conversation_id for m in rank_conversations("deploy pipeline", docs, limit=1)] == ["conv_new"]
    excluded = rank_conversations("deploy pipeline", docs, exclude_conversation_id="conv_new")
    assert "conv_new" not in [m.conversation_id for m in excluded]


def test_title_counts_towards_score() -> None:
    ranked = rank_conversations("budget", [_doc("conv_1", "nothing here", title="Budget review")])
    assert [m.conversation_id for m in ranked] == ["conv_1"]


@pytest.mark.asyncio
async def test_memory_tools_through_dispatcher() -> None:
    store = KeyValueMemoryStore(ResilientKeyValueClient(None, provider="memory"), namespace="convoy:v1:test")
    dispatcher = ToolDispatcher(create_memory_tools(store))
    ctx = _ctx([])

    update = await dispatcher.execute(
        ToolCall(id="c1", name="memory_main_update", input={"content": "likes tea", "mode": "append"}), ctx
    )
    assert update.ok
    assert update.output["ok"] is True
    assert update.output["mode"] == "append"
    assert update.output["memory"]["content"] == "likes tea"

    read = await dispatcher.execute(ToolCall(id="c2", name="memory_main_get"), ctx)
    assert read.output["memory"]["content"] == "likes tea"

    missing = await dispatcher.execute(ToolCall(id="c3", name="memory_main_update", input={"content": " "}), ctx)
    assert missing.error == "content is required"


@pytest.mark.asyncio
async def test_conversation_recall_tool() -> None:
    store = KeyValueMemoryStore(ResilientKeyValueClient(None, provider="memory"), namespace="convoy:v1:test")
    dispatcher = ToolDispatcher(create_memory_tools(store, max_recall_conversations=2))
    corpus = [
        _doc("conv_1", "postgres tuning tips").to_wire(),
        _doc("conv_2", "postgres backups").to_wire(),
        _doc("conv_3", "postgres replicas").to_wire(),
    ]

    result = await dispatcher.execute(
        ToolCall(id="c1", name="conversation_recall", input={"query": "postgres", "limit": 10}), _ctx(corpus)
    )
    assert result.output["query"] == "postgres"
    assert sorted(r["conversationId"] for r in result.output["results"]) == ["conv_1", "conv_2"]

    excluded = await dispatcher.execute(
        ToolCall(
            id="c2",
            name="conversation_recall",
            input={"query": "postgres", "excludeConversationId": "conv_1", "limit": "bad"},
        ),
        _ctx(corpus),
    )
    assert [r["conversationId"] for r in excluded.output["results"]] == ["conv_2"]

    missing = await dispatcher.execute(ToolCall(id="c3", name="conversation_recall", input={}), _ctx(corpus))
    assert missing.error == "query is required"
