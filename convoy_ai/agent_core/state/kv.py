from __future__ import annotations

"""Key/value backed state and conversation stores.

The stores in this module are written against ``KeyValueClient`` and share one
key scheme under an agent namespace ``convoy:v1:<agent-slug>``:

- ``<ns>:state:<run id>``: run checkpoints.
- ``<ns>:conv:<conversation id>``: conversation records.
- ``<ns>:owner:<owner id>:conversations``: per-owner summary index.
- ``<ns>:memory:main``: main memory document (see ``agent_core.memory``).

``ResilientKeyValueClient`` wraps a networked client and serves a call from an
in-process client whenever the networked one fails or was never configured.
The switch is reported through ``health`` and logged on the transition into
degraded mode.
"""

import asyncio
import json
import re
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ...core.logging_config import get_logger
from ..schemas.domain import (
    DEFAULT_CONVERSATION_TITLE,
    Conversation,
    ConversationState,
    ConversationSummary,
    _utc_now,
)
from .interfaces import KeyValueClient, StoreHealth
from .memory import InMemoryKeyValueClient

logger = get_logger(__name__)

T = TypeVar("T")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "agent"


def agent_namespace(agent_id: str) -> str:
    return f"convoy:v1:{slugify(agent_id)}"


def is_expired(updated_at: datetime, ttl: Optional[int]) -> bool:
    return ttl is not None and _utc_now() - updated_at > timedelta(seconds=ttl)


class ResilientKeyValueClient:
    """Routes calls to a networked client, degrading to memory when it fails.

    Args:
        primary: The configured client, or None when the provider is misconfigured.
        provider: Configured provider name, reported through ``health``.
        reason: Why ``primary`` is missing, when it is.
    """

    def __init__(self, primary: Optional[KeyValueClient], *, provider: str, reason: Optional[str] = None) -> None:
        self._primary = primary
        self._fallback = InMemoryKeyValueClient()
        self.provider = provider
        self._degraded = primary is None and provider != "memory"
        self._reason = reason
        if self._degraded:
            logger.warning(f"Storage provider '{provider}' unavailable, using in-memory store: {reason}")

    @property
    def health(self) -> StoreHealth:
        return StoreHealth(provider=self.provider, degraded=self._degraded, reason=self._reason)

    async def _call(self, op: str, run: Callable[[KeyValueClient], Awaitable[T]]) -> T:
        if self._primary is None:
            return await run(self._fallback)
        try:
            result = await run(self._primary)
        except Exception as exc:
            if not self._degraded:
                logger.warning(f"Storage provider '{self.provider}' failed on {op}, falling back to memory: {exc}")
            self._degraded = True
            self._reason = f"{op} failed: {exc}"
            return await run(self._fallback)
        if self._degraded:
            logger.info(f"Storage provider '{self.provider}' recovered")
            self._degraded = False
            self._reason = None
        return result

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", lambda c: c.get(key))

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._call("set", lambda c: c.set(key, value, ttl))

    async def delete(self, key: str) -> None:
        await self._call("delete", lambda c: c.delete(key))

    async def aclose(self) -> None:
        if self._primary is not None:
            await self._primary.aclose()
        await self._fallback.aclose()


class KeyValueStateStore:
    """``StateStore`` over a key/value client."""

    def __init__(self, client: ResilientKeyValueClient, *, namespace: str, ttl: Optional[int] = None) -> None:
        self._client = client
        self._ns = namespace
        self._ttl = ttl

    @property
    def health(self) -> StoreHealth:
        return self._client.health

    def _key(self, run_id: str) -> str:
        return f"{self._ns}:state:{run_id}"

    async def get(self, run_id: str) -> Optional[ConversationState]:
        raw = await self._client.get(self._key(run_id))
        if raw is None:
            return None
        state = ConversationState.model_validate_json(raw)
        if is_expired(state.updated_at, self._ttl):
            return None
        return state

    async def set(self, state: ConversationState) -> None:
        stored = state.model_copy(update={"updated_at": _utc_now()})
        await self._client.set(self._key(state.run_id), stored.model_dump_json(by_alias=True), self._ttl)

    async def delete(self, run_id: str) -> None:
        await self._client.delete(self._key(run_id))

    async def aclose(self) -> None:
        await self._client.aclose()


class KeyValueConversationStore:
    """``ConversationStore`` over a key/value client.

    Conversation records live under their own key; each owner has a summary
    index that is rewritten under a per-owner lock so concurrent creates and
    updates for the same owner never drop entries.
    """

    def __init__(self, client: ResilientKeyValueClient, *, namespace: str, ttl: Optional[int] = None) -> None:
        self._client = client
        self._ns = namespace
        self._ttl = ttl
        self._owner_locks: Dict[str, asyncio.Lock] = {}

    @property
    def health(self) -> StoreHealth:
        return self._client.health

    def _conversation_key(self, conversation_id: str) -> str:
        return f"{self._ns}:conv:{conversation_id}"

    def _owner_key(self, owner_id: str) -> str:
        return f"{self._ns}:owner:{owner_id}:conversations"

    def _owner_lock(self, owner_id: str) -> asyncio.Lock:
        lock = self._owner_locks.get(owner_id)
        if lock is None:
            lock = self._owner_locks[owner_id] = asyncio.Lock()
        return lock

    async def _read_index(self, owner_id: str) -> List[ConversationSummary]:
        raw = await self._client.get(self._owner_key(owner_id))
        if not raw:
            return []
        items: List[Any] = json.loads(raw)
        return [ConversationSummary.model_validate(item) for item in items]

    async def _write_index(self, owner_id: str, summaries: List[ConversationSummary]) -> None:
        payload = json.dumps([s.to_wire() for s in summaries])
        await self._client.set(self._owner_key(owner_id), payload, self._ttl)

    async def list(self, owner_id: str) -> List[ConversationSummary]:
        summaries = [s for s in await self._read_index(owner_id) if not is_expired(s.updated_at, self._ttl)]
        return sorted(summaries, key=lambda s: s.updated_at, reverse=True)

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        raw = await self._client.get(self._conversation_key(conversation_id))
        if raw is None:
            return None
        conversation = Conversation.model_validate_json(raw)
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
        conversation = await self.get(conversation_id)
        if conversation is None:
            return False
        await self._client.delete(self._conversation_key(conversation_id))
        async with self._owner_lock(conversation.owner_id):
            summaries = await self._read_index(conversation.owner_id)
            await self._write_index(
                conversation.owner_id, [s for s in summaries if s.conversation_id != conversation_id]
            )
        return True

    async def _save(self, conversation: Conversation) -> Conversation:
        await self._client.set(
            self._conversation_key(conversation.conversation_id),
            conversation.model_dump_json(by_alias=True),
            self._ttl,
        )
        async with self._owner_lock(conversation.owner_id):
            summaries = [
                s for s in await self._read_index(conversation.owner_id)
                if s.conversation_id != conversation.conversation_id
            ]
            summaries.append(ConversationSummary.of(conversation))
            await self._write_index(conversation.owner_id, summaries)
        return conversation

    async def aclose(self) -> None:
        await self._client.aclose()
