"""Config-driven construction of state and conversation stores.

``StateConfig.provider`` selects one of a fixed set of implementations. A
networked provider that is misconfigured (missing url, token or table) or whose
client cannot be built resolves to the in-memory client, and the returned store
reports ``health.degraded`` with the reason.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Union

from botocore.exceptions import BotoCoreError
from sqlalchemy.exc import SQLAlchemyError

from ...core.logging_config import get_logger
from ..errors import StoreUnavailableError
from ..schemas.config import StateConfig, StateProvider
from .dynamodb import DynamoDbKeyValueClient
from .file import FileConversationStore, FileStateStore
from .interfaces import ConversationStore, KeyValueClient, StateStore
from .kv import KeyValueConversationStore, KeyValueStateStore, ResilientKeyValueClient, agent_namespace, slugify
from .sql import SqlKeyValueClient
from .upstash import UpstashKeyValueClient

logger = get_logger(__name__)

DEFAULT_AGENT_ID = "convoy-agent"


def resolve_store_directory(working_dir: Union[str, Path], agent_id: str) -> Path:
    """Directory used by the ``local`` provider for one agent."""
    return Path(working_dir) / ".convoy" / slugify(agent_id)


def _build_networked_client(config: StateConfig) -> KeyValueClient:
    provider = config.provider.value
    if config.provider == StateProvider.upstash:
        url = config.url or os.getenv("UPSTASH_REDIS_REST_URL")
        token = config.token or os.getenv("UPSTASH_REDIS_REST_TOKEN")
        if not url or not token:
            raise StoreUnavailableError(provider, "url and token are required")
        return UpstashKeyValueClient(url, token)

    if config.provider == StateProvider.sql:
        if not config.url:
            raise StoreUnavailableError(provider, "url is required")
        try:
            return SqlKeyValueClient.from_url(config.url)
        except (SQLAlchemyError, ImportError) as exc:
            raise StoreUnavailableError(provider, str(exc)) from exc

    if config.provider == StateProvider.dynamodb:
        table = config.table or os.getenv("CONVOY_STATE_TABLE")
        if not table:
            raise StoreUnavailableError(provider, "table is required")
        try:
            return DynamoDbKeyValueClient(table, region=config.region or os.getenv("AWS_REGION"))
        except BotoCoreError as exc:
            raise StoreUnavailableError(provider, str(exc)) from exc

    raise StoreUnavailableError(provider, "not a key/value provider")


def create_key_value_client(config: StateConfig) -> ResilientKeyValueClient:
    """Build the key/value client for ``config``, degrading to memory when it cannot be built."""
    if config.provider in (StateProvider.memory, StateProvider.local):
        return ResilientKeyValueClient(None, provider=StateProvider.memory.value)
    try:
        primary = _build_networked_client(config)
    except StoreUnavailableError as exc:
        return ResilientKeyValueClient(None, provider=exc.provider, reason=exc.reason)
    logger.debug(f"Using '{config.provider.value}' storage provider")
    return ResilientKeyValueClient(primary, provider=config.provider.value)


def create_state_store(
    config: StateConfig,
    *,
    working_dir: Union[str, Path] = ".",
    agent_id: str = DEFAULT_AGENT_ID,
) -> StateStore:
    if config.provider == StateProvider.local:
        return FileStateStore(resolve_store_directory(working_dir, agent_id), ttl=config.ttl)
    return KeyValueStateStore(create_key_value_client(config), namespace=agent_namespace(agent_id), ttl=config.ttl)


def create_conversation_store(
    config: StateConfig,
    *,
    working_dir: Union[str, Path] = ".",
    agent_id: str = DEFAULT_AGENT_ID,
) -> ConversationStore:
    if config.provider == StateProvider.local:
        return FileConversationStore(resolve_store_directory(working_dir, agent_id), ttl=config.ttl)
    return KeyValueConversationStore(
        create_key_value_client(config), namespace=agent_namespace(agent_id), ttl=config.ttl
    )
