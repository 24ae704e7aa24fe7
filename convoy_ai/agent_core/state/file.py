from __future__ import annotations

"""Local durable file stores.

Layout under the store directory::

    state.json                                  run checkpoints keyed by run id
    conversations/index.json                    summary index keyed by conversation id
    conversations/<UTC timestamp>--<id>.json    one file per conversation

Every file is replaced atomically (write to a temporary sibling, then rename)
and all writes of one store go through a single ``asyncio.Lock``, so concurrent
updates never interleave inside a file.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from ...core.logging_config import get_logger
from ..schemas.domain import (
    DEFAULT_CONVERSATION_TITLE,
    Conversation,
    ConversationState,
    ConversationSummary,
    _utc_now,
)
from .interfaces import StoreHealth
from .kv import is_expired

logger = get_logger(__name__)


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
    try:
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


def read_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning(f"Ignoring unreadable store file {path}: {exc}")
        return None


class FileStateStore:
    """``StateStore`` persisted to a single ``state.json`` file."""

    def __init__(self, directory: Union[str, Path], *, ttl: Optional[int] = None) -> None:
        self._path = Path(directory) / "state.json"
        self._ttl = ttl
        self._lock = asyncio.Lock()

    @property
    def health(self) -> StoreHealth:
        return StoreHealth(provider="local")

    @property
    def path(self) -> Path:
        return self._path

    async def _load(self) -> Dict[str, Any]:
        return await asyncio.to_thread(read_json, self._path) or {}

    async def get(self, run_id: str) -> Optional[ConversationState]:
        raw = (await self._load()).get(run_id)
        if raw is None:
            return None
        state = ConversationState.model_validate(raw)
        if is_expired(state.updated_at, self._ttl):
            return None
        return state

    async def set(self, state: ConversationState) -> None:
        stored = state.model_copy(update={"updated_at": _utc_now()})
        async with self._lock:
            data = await self._load()
            data[state.run_id] = stored.to_wire()
            await asyncio.to_thread(write_json_atomic, self._path, data)

    async def delete(self, run_id: str) -> None:
        async with self._lock:
            data = await self._load()
            if data.pop(run_id, None) is not None:
                await asyncio.to_thread(write_json_atomic, self._path, data)

    async def aclose(self) -> None:
        return None


class _IndexEntry(ConversationSummary):
    file: str


class FileConversationStore:
    """``ConversationStore`` with one JSON file per conversation plus an index."""

    def __init__(self, directory: Union[str, Path], *, ttl: Optional[int] = None) -> None:
        self._dir = Path(directory) / "conversations"
        self._index_path = self._dir / "index.json"
        self._ttl = ttl
        self._lock = asyncio.Lock()

    @property
    def health(self) -> StoreHealth:
        return StoreHealth(provider="local")

    async def _load_index(self) -> Dict[str, _IndexEntry]:
        raw = await asyncio.to_thread(read_json, self._index_path) or {}
        return {key: _IndexEntry.model_validate(value) for key, value in raw.items()}

    async def _write_index(self, index: Dict[str, _IndexEntry]) -> None:
        payload = {key: entry.to_wire() for key, entry in index.items()}
        await asyncio.to_thread(write_json_atomic, self._index_path, payload)

    @staticmethod
    def _file_name(conversation: Conversation) -> str:
        return f"{conversation.created_at.strftime('%Y%m%dT%H%M%SZ')}--{conversation.conversation_id}.json"

    async def list(self, owner_id: str) -> List[ConversationSummary]:
        index = await self._load_index()
        summaries = [
            ConversationSummary.model_validate(entry.model_dump(exclude={"file"}))
            for entry in index.values()
            if entry.owner_id == owner_id and not is_expired(entry.updated_at, self._ttl)
        ]
        return sorted(summaries, key=lambda s: s.updated_at, reverse=True)

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        entry = (await self._load_index()).get(conversation_id)
        if entry is None:
            return None
        raw = await asyncio.to_thread(read_json, self._dir / entry.file)
        if raw is None:
            return None
        conversation = Conversation.model_validate(raw)
        if is_expired(conversation.updated_at, self._ttl):
            return None
        return conversation

    async def create(self, owner_id: str, title: Optional[str] = None, tenant_id: Optional[str] = None) -> Conversation:
        conversation = Conversation(owner_id=owner_id, title=title or DEFAULT_CONVERSATION_TITLE, tenant_id=tenant_id)
        return await self._save(conversation)

    async def update(self, conversation: Conversation) -> Conversation:
        return await self._save(conversation.model_copy(update={"updated_at": _utc_now()}, deep=True))

    async def rename(self, conversation_id: str, title: str) -> Optional[Conversation]:
        conversation = await self.get(conversation_id)
        if conversation is None:
            return None
        conversation.title = title
        return await self.update(conversation)

    async def delete(self, conversation_id: str) -> bool:
        async with self._lock:
            index = await self._load_index()
            entry = index.pop(conversation_id, None)
            if entry is None:
                return False
            path = self._dir / entry.file
            await asyncio.to_thread(path.unlink, True)
            await self._write_index(index)
        return True

    async def _save(self, conversation: Conversation) -> Conversation:
        async with self._lock:
            index = await self._load_index()
            entry = index.get(conversation.conversation_id)
            file_name = entry.file if entry is not None else self._file_name(conversation)
            await asyncio.to_thread(write_json_atomic, self._dir / file_name, conversation.to_wire())
            summary = ConversationSummary.of(conversation)
            index[conversation.conversation_id] = _IndexEntry(**summary.model_dump(), file=file_name)
            await self._write_index(index)
        return conversation

    async def aclose(self) -> None:
        return None
