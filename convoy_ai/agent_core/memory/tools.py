"""Memory tools exposed to the model.

``memory_main_get`` / ``memory_main_update`` read and edit the agent's main
memory. ``conversation_recall`` ranks the owner's other conversations (passed
in by the coordinator as a run parameter) with a keyword-overlap score:

- +5 when the whole normalised query occurs in the conversation text,
- +1 for every distinct query token (two characters or more) found as a substring,
- zero scores are dropped and ties go to the most recently updated conversation.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import MemoryUpdateMode, _utc_now
from ..tools.base import ToolContext, ToolDefinition
from .store import MemoryStore

# Run parameter carrying the owner's other conversations, supplied by the coordinator.
RECALL_CORPUS_PARAMETER = "__conversation_recall_corpus"

PHRASE_MATCH_WEIGHT = 5
SNIPPET_BEFORE = 120
SNIPPET_AFTER = 180
SNIPPET_DEFAULT_LENGTH = 360
DEFAULT_RECALL_LIMIT = 3
MAX_RECALL_LIMIT = 5


class RecallDocument(BaseSchema):
    conversation_id: str
    title: str = ""
    updated_at: datetime = Field(default_factory=_utc_now)
    content: str = ""


class RecallMatch(BaseSchema):
    conversation_id: str
    title: str
    updated_at: datetime
    score: int
    snippet: str


def normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().lower()


def score_document(query: str, content: str) -> int:
    normalized_query = normalize(query)
    if not normalized_query:
        return 0
    haystack = normalize(content)
    score = PHRASE_MATCH_WEIGHT if normalized_query in haystack else 0
    tokens = dict.fromkeys(t for t in normalized_query.split(" ") if len(t) >= 2)
    score += sum(1 for token in tokens if token in haystack)
    return score


def build_snippet(query: str, content: str) -> str:
    compact = re.sub(r"\s+", " ", content).strip()
    haystack = compact.lower()
    normalized_query = normalize(query)
    idx = haystack.find(normalized_query) if normalized_query else -1
    length = len(normalized_query)
    if idx < 0:
        for token in normalized_query.split(" "):
            if len(token) >= 2 and token in haystack:
                idx, length = haystack.find(token), len(token)
                break
    if idx < 0:
        return compact[:SNIPPET_DEFAULT_LENGTH]
    start = max(0, idx - SNIPPET_BEFORE)
    end = min(len(compact), idx + length + SNIPPET_AFTER)
    return compact[start:end]


def rank_conversations(
    query: str,
    documents: Sequence[RecallDocument],
    *,
    limit: int = DEFAULT_RECALL_LIMIT,
    exclude_conversation_id: Optional[str] = None,
) -> List[RecallMatch]:
    matches: List[RecallMatch] = []
    for doc in documents:
        if exclude_conversation_id and doc.conversation_id == exclude_conversation_id:
            continue
        score = score_document(query, f"{doc.title}\n{doc.content}")
        if score <= 0:
            continue
        matches.append(
            RecallMatch(
                conversation_id=doc.conversation_id,
                title=doc.title,
                updated_at=doc.updated_at,
                score=score,
                snippet=build_snippet(query, doc.content),
            )
        )
    matches.sort(key=lambda m: (m.score, m.updated_at), reverse=True)
    return matches[:limit]


def _clamp_limit(value: Any) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_RECALL_LIMIT
    return max(1, min(MAX_RECALL_LIMIT, limit))


def create_memory_tools(store: MemoryStore, *, max_recall_conversations: int = 20) -> List[ToolDefinition]:
    """Build the memory tool definitions bound to ``store``."""

    async def memory_main_get(input: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        memory = await store.get_main_memory()
        return {"memory": memory.to_wire()}

    async def memory_main_update(input: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        content = input.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValueError("content is required")
        mode = MemoryUpdateMode(input.get("mode") or MemoryUpdateMode.replace.value)
        memory = await store.update_main_memory(content, mode)
        return {"ok": True, "mode": mode.value, "memory": memory.to_wire()}

    async def conversation_recall(input: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        query = input.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ValueError("query is required")
        corpus = context.parameters.get(RECALL_CORPUS_PARAMETER) or []
        documents = [RecallDocument.model_validate(item) for item in corpus[:max_recall_conversations]]
        matches = rank_conversations(
            query,
            documents,
            limit=_clamp_limit(input.get("limit", DEFAULT_RECALL_LIMIT)),
            exclude_conversation_id=input.get("excludeConversationId"),
        )
        return {"query": query, "results": [m.to_wire() for m in matches]}

    return [
        ToolDefinition(
            name="memory_main_get",
            description="Read the agent's persistent main memory document.",
            handler=memory_main_get,
            input_schema={"type": "object", "properties": {}},
        ),
        ToolDefinition(
            name="memory_main_update",
            description="Replace or append to the agent's persistent main memory document.",
            handler=memory_main_update,
            input_schema={
                "type": "object",
                "properties": {
                    "content": {"type": "string"},
                    "mode": {"type": "string", "enum": ["replace", "append"]},
                },
                "required": ["content"],
            },
        ),
        ToolDefinition(
            name="conversation_recall",
            description="Search the user's earlier conversations for relevant context.",
            handler=conversation_recall,
            input_schema={
                "type": "object",
                "properties": {
                    "query": {"type": "string"},
                    "limit": {"type": "integer", "minimum": 1, "maximum": MAX_RECALL_LIMIT},
                    "excludeConversationId": {"type": "string"},
                },
                "required": ["query"],
            },
        ),
    ]
