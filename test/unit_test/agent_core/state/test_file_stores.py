from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from convoy_ai.agent_core.schemas.domain import ConversationState, Message, MessageRole
from convoy_ai.agent_core.state.file import FileConversationStore, FileStateStore, read_json, write_json_atomic


def test_write_json_atomic_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "data.json"
    write_json_atomic(target, {"a": 1})
    write_json_atomic(target, {"a": 2})

    assert read_json(target) == {"a": 2}
    assert [p.name for p in target.parent.iterdir()] == ["data.json"]


def test_read_json_ignores_corrupt_file(tmp_path: Path) -> None:
    target = tmp_path / "broken.json"
    target.write_text("{not json", encoding="utf-8")
    assert read_json(target) is None
    assert read_json(tmp_path / "missing.json") is None


@pytest.mark.asyncio
async def test_state_store_survives_reopen(tmp_path: Path) -> None:
    store = FileStateStore(tmp_path)
    await store.set(ConversationState(run_id="run_1", messages=[Message(role=MessageRole.user, content="hi")]))

    reopened = FileStateStore(tmp_path)
    loaded = await reopened.get("run_1")
    assert loaded is not None and loaded.messages[0].content == "hi"
    assert store.path == tmp_path / "state.json"

    await reopened.delete("run_1")
    assert await FileStateStore(tmp_path).get("run_1") is None


@pytest.mark.asyncio
async def test_concurrent_state_writes_are_not_lost(tmp_path: Path) -> None:
    store = FileStateStore(tmp_path)
    await asyncio.gather(*(store.set(ConversationState(run_id=f"run_{i}")) for i in range(10)))

    data = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    assert set(data) == {f"run_{i}" for i in range(10)}


@pytest.mark.asyncio
async def test_concurrent_writes_to_one_run_keep_a_single_whole_write(tmp_path: Path) -> None:
    store = FileStateStore(tmp_path)
    writes = [
        ConversationState(run_id="r", messages=[Message(role=MessageRole.user, content=f"payload {i} " * 50)])
        for i in range(20)
    ]
    await asyncio.gather(*(store.set(state) for state in writes))

    data = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    assert set(data) == {"r"}
    loaded = await FileStateStore(tmp_path).get("r")
    assert loaded is not None
    assert loaded.messages in [state.messages for state in writes]


@pytest.mark.asyncio
async def test_conversation_files_and_index(tmp_path: Path) -> None:
    store = FileConversationStore(tmp_path)
    conversation = await store.create("alice", "Notes")
    conversation.messages.append(Message(role=MessageRole.user, content="remember this"))
    await store.update(conversation)

    files = sorted(p.name for p in (tmp_path / "conversations").iterdir())
    assert "index.json" in files
    conversation_files = [f for f in files if f != "index.json"]
    assert len(conversation_files) == 1
    assert conversation_files[0].endswith(f"--{conversation.conversation_id}.json")

    reopened = FileConversationStore(tmp_path)
    loaded = await reopened.get(conversation.conversation_id)
    assert loaded is not None
    assert loaded.messages[0].content == "remember this"
    summaries = await reopened.list("alice")
    assert [(s.title, s.message_count) for s in summaries] == [("Notes", 1)]
    assert await reopened.list("bob") == []


@pytest.mark.asyncio
async def test_conversation_rename_and_delete(tmp_path: Path) -> None:
    store = FileConversationStore(tmp_path)
    conversation = await store.create("alice")

    renamed = await store.rename(conversation.conversation_id, "Renamed")
    assert renamed is not None and renamed.title == "Renamed"

    assert await store.delete(conversation.conversation_id) is True
    assert await store.delete(conversation.conversation_id) is False
    assert await store.get(conversation.conversation_id) is None
    assert [p.name for p in (tmp_path / "conversations").iterdir()] == ["index.json"]
