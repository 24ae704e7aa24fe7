from __future__ import annotations

"""Storage interfaces used by the coordinator, run engine and memory tools.

Three layers are defined:

- ``StateStore``: raw run-level checkpoints keyed by run id.
- ``ConversationStore``: UI-facing conversation records, listed per owner.
- ``KeyValueClient``: the minimal string key/value surface every networked
  provider implements, so the stores above can be written once.

Every store exposes ``health`` so hosts can observe whether it is running on
its configured provider or on the in-process fallback.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from ..schemas.domain import Conversation, ConversationState, ConversationSummary


@dataclass(frozen=True)
class StoreHealth:
    """Provider status reported by a store.

    Attributes
    ----------
    provider:
        Configured provider name.
    degraded:
        True while calls are served by the in-process fallback.
    reason:
        Description of the last failure or misconfiguration, if degraded.
    """

    provider: str
    degraded: bool = False
    reason: Optional[str] = None


class StateStore(Protocol):
    """Run-state checkpoint store."""

    @property
    def health(self) -> StoreHealth: ...

    async def get(self, run_id: str) -> Optional[ConversationState]:
        """Return the checkpoint for ``run_id``, or None if missing or expired."""
        ...

    async def set(self, state: ConversationState) -> None:
        """Persist ``state``; the store assigns ``updated_at``."""
        ...

    async def delete(self, run_id: str) -> None: ...

    async def aclose(self) -> None: ...


class ConversationStore(Protocol):
    """Conversation record store.

    ``update`` always replaces the stored record wholesale.
    """

    @property
    def health(self) -> StoreHealth: ...

    async def list(self, owner_id: str) -> List[ConversationSummary]:
        """List the owner's conversations, most recently updated first."""
        ...

    async def get(self, conversation_id: str) -> Optional[Conversation]: ...

    async def create(self, owner_id: str, title: Optional[str] = None, tenant_id: Optional[str] = None) -> Conversation: ...

    async def update(self, conversation: Conversation) -> Conversation: ...

    async def rename(self, conversation_id: str, title: str) -> Optional[Conversation]: ...

    async def delete(self, conversation_id: str) -> bool: ...

    async def aclose(self) -> None: ...


class KeyValueClient(Protocol):
    """String key/value operations with optional per-key expiry in seconds."""

    provider: str

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def aclose(self) -> None: ...
