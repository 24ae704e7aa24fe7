"""Pluggable run-state and conversation storage.

Providers
---------

- ``memory``: in-process, volatile; ttl checked on every read.
- ``local``: JSON files written atomically under ``.convoy/<agent>``.
- ``upstash``: Upstash Redis REST API over ``httpx``.
- ``sql``: SQLAlchemy async (Postgres via asyncpg, SQLite via aiosqlite).
- ``dynamodb``: AWS DynamoDB via ``boto3``.

Networked providers fall back to the in-process client when they are
misconfigured or fail; ``health`` on every store makes that observable.
"""

from .factory import create_conversation_store, create_key_value_client, create_state_store, resolve_store_directory
from .interfaces import ConversationStore, KeyValueClient, StateStore, StoreHealth

__all__ = [
    "ConversationStore",
    "KeyValueClient",
    "StateStore",
    "StoreHealth",
    "create_conversation_store",
    "create_key_value_client",
    "create_state_store",
    "resolve_store_directory",
]
