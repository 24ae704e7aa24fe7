from __future__ import annotations

from pathlib import Path

import pytest

from convoy_ai.agent_core.memory.store import FileMemoryStore, KeyValueMemoryStore, merge_memory
from convoy_ai.agent_core.schemas.domain import MemoryUpdateMode
from convoy_ai.agent_core.state.kv import ResilientKeyValueClient


@pytest.mark.parametrize(
    "current, content, mode, expected",
    [
        ("old", "  new  ", MemoryUpdateMode.replace, "new"),
        ("old", "new", MemoryUpdateMode.append, "old\n\nnew"),
        ("", "new", MemoryUpdateMode.append, "new"),
        ("  old \n", " new", MemoryUpdateMode.append, "old\n\nnew"),
    ],
)
def test_merge_memory(current: str, content: str, mode: MemoryUpdateMode, expected: str) -> None:
    assert merge_memory(current, content, mode) == expected


@pytest.mark.asyncio
async def test_key_value_memory_replace_and_append() -> None:
    store = KeyValueMemoryStore(ResilientKeyValueClient(None, provider="memory"), namespace="convoy:v1:test")
    assert (await store.get_main_memory()).content == ""

    await store.update_main_memory("Prefers Python.")
    updated = await store.update_main_memory("Works on Convoy.", MemoryUpdateMode.append)
    assert updated.content == "Prefers Python.\n\nWorks on Convoy."
    assert (await store.get_main_memory()).content == updated.content

    replaced = await store.update_main_memory("Fresh start")
    assert replaced.content == "Fresh start"


@pytest.mark.asyncio
async def test_file_memory_persists(tmp_path: Path) -> None:
    await FileMemoryStore(tmp_path).update_main_memory("Remember the milk")
    assert (tmp_path / "memory.json").exists()
    assert (await FileMemoryStore(tmp_path).get_main_memory()).content == "Remember the milk"
    assert FileMemoryStore(tmp_path).health.provider == "local"
