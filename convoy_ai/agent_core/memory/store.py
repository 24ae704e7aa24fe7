from __future__ import annotations

"""Main memory stores.

Each agent identity owns one long-lived "main memory" document that survives
across conversations. The providers mirror ``agent_core.state``: in-process,
a local ``memory.json`` file, or any key/value provider behind the resilient
client.
"""

import asyncio
from pathlib import Path
from typing import Optional, Protocol, Union

from ..schemas.config import StateConfig, StateProvider
from ..schemas.domain import MainMemory, MemoryUpdateMode, _utc_now
from ..state.file import read_json, write_json_atomic
from ..state.interfaces import StoreHealth
from ..state.kv import ResilientKeyValueClient, agent_namespace, is_expired
from ..state.factory import DEFAULT_AGENT_ID, create_key_value_client, resolve_store_directory


class MemoryStore(Protocol):
    @property
    def health(self) -> StoreHealth: ...

    async def get_main_memory(self) -> MainMemory: ...

    async def update_main_memory(self, content: str, mode: MemoryUpdateMode = MemoryUpdateMode.replace) -> MainMemory: ...

    async def aclose(self) -> None: ...


def merge_memory(current: str, content: str, mode: MemoryUpdateMode) -> str:
    """Compute the new document for an update; append joins with a blank line."""
    if mode == MemoryUpdateMode.append:
        return "\n\n".join(part for part in (current.strip(), content.strip()) if part).strip()
    return content.strip()


class KeyValueMemoryStore:
    def __init__(self, client: ResilientKeyValueClient, *, namespace: str, ttl: Optional[int] = None) -> None:
        self._client = client
        self._key = f"{namespace}:memory:main"
        self._ttl = ttl
        self._lock = asyncio.Lock()

    @property
    def health(self) -> StoreHealth:
        return self._client.health

    async def get_main_memory(self) -> MainMemory:
        raw = await self._client.get(self._key)
        if raw is None:
            return MainMemory()
        memory = MainMemory.model_validate_json(raw)
        if is_expired(memory.updated_at, self._ttl):
            return MainMemory()
        return memory

    async def update_main_memory(self, content: str, mode: MemoryUpdateMode = MemoryUpdateMode.replace) -> MainMemory:
        async with self._lock:
            current = await self.get_main_memory()
            memory = MainMemory(content=merge_memory(current.content, content, mode), updated_at=_utc_now())
            await self._client.set(self._key, memory.model_dump_json(by_alias=True), self._ttl)
        return memory

    async def aclose(self) -> None:
        await self._client.aclose()


class FileMemoryStore:
    """Main memory persisted to ``memory.json`` in the agent's store directory."""

    def __init__(self, directory: Union[str, Path], *, ttl: Optional[int] = None) -> None:
        self._path = Path(directory) / "memory.json"
        self._ttl = ttl
        self._lock = asyncio.Lock()

    @property
    def health(self) -> StoreHealth:
        return StoreHealth(provider="local")

    async def get_main_memory(self) -> MainMemory:
        raw = await asyncio.to_thread(read_json, self._path)
        if raw is None:
            return MainMemory()
        memory = MainMemory.model_validate(raw)
        if is_expired(memory.updated_at, self._ttl):
            return MainMemory()
        return memory

    async def update_main_memory(self, content: str, mode: MemoryUpdateMode = MemoryUpdateMode.replace) -> MainMemory:
        async with self._lock:
            current = await self.get_main_memory()
            memory = MainMemory(content=merge_memory(current.content, content, mode), updated_at=_utc_now())
            await asyncio.to_thread(write_json_atomic, self._path, memory.to_wire())
        return memory

    async def aclose(self) -> None:
        return None


def create_memory_store(
    config: StateConfig,
    *,
    working_dir: Union[str, Path] = ".",
    agent_id: str = DEFAULT_AGENT_ID,
) -> MemoryStore:
    if config.provider == StateProvider.local:
        return FileMemoryStore(resolve_store_directory(working_dir, agent_id), ttl=config.ttl)
    return KeyValueMemoryStore(create_key_value_client(config), namespace=agent_namespace(agent_id), ttl=config.ttl)
