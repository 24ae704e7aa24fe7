"""Long-lived agent memory and the tools that expose it to the model."""

from .store import FileMemoryStore, KeyValueMemoryStore, MemoryStore, create_memory_store
from .tools import RECALL_CORPUS_PARAMETER, create_memory_tools, rank_conversations

__all__ = [
    "FileMemoryStore",
    "KeyValueMemoryStore",
    "MemoryStore",
    "create_memory_store",
    "RECALL_CORPUS_PARAMETER",
    "create_memory_tools",
    "rank_conversations",
]
