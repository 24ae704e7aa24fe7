from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema

DEFAULT_CONVERSATION_TITLE = "New conversation"
DEFAULT_OWNER_ID = "local-owner"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"
    tool = "tool"


class MemoryUpdateMode(str, Enum):
    replace = "replace"
    append = "append"


class TokenUsage(BaseSchema):
    input: int = 0
    output: int = 0
    cached: int = 0


class RunErrorInfo(BaseSchema):
    code: str
    message: str


class MessageMetadata(BaseSchema):
    """Annotations attached to a message for display and recovery."""

    id: str = Field(default_factory=lambda: f"msg_{uuid4().hex}")
    timestamp: datetime = Field(default_factory=_utc_now)
    run_id: Optional[str] = None
    step: Optional[int] = None
    tool_activity: List[str] = Field(default_factory=list)
    run_error: Optional[RunErrorInfo] = None


class Message(BaseSchema):
    role: MessageRole
    content: str
    metadata: Optional[MessageMetadata] = None


class RunResult(BaseSchema):
    """Payload of ``run:completed``."""

    status: Literal["completed"] = "completed"
    response: str = ""
    steps: int
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    duration: int = Field(description="Run duration in milliseconds.")


class PendingApprovalRecord(BaseSchema):
    """Persisted mirror of a live approval request, kept on the conversation for display."""

    approval_id: str
    run_id: str
    tool: str
    input: Dict[str, Any] = Field(default_factory=dict)
    requested_at: datetime = Field(default_factory=_utc_now)


class Conversation(BaseSchema):
    conversation_id: str = Field(default_factory=lambda: f"conv_{uuid4().hex}")
    title: str = DEFAULT_CONVERSATION_TITLE
    messages: List[Message] = Field(default_factory=list)
    runtime_run_id: Optional[str] = None
    pending_approvals: List[PendingApprovalRecord] = Field(default_factory=list)
    owner_id: str = DEFAULT_OWNER_ID
    tenant_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class ConversationSummary(BaseSchema):
    """Index entry used by ``ConversationStore.list``."""

    conversation_id: str
    title: str
    owner_id: str
    message_count: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def of(cls, conversation: Conversation) -> "ConversationSummary":
        return cls(
            conversation_id=conversation.conversation_id,
            title=conversation.title,
            owner_id=conversation.owner_id,
            message_count=len(conversation.messages),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class ConversationState(BaseSchema):
    """Run-level checkpoint stored independently of the conversation record."""

    run_id: str
    messages: List[Message] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utc_now)


class MainMemory(BaseSchema):
    content: str = ""
    updated_at: datetime = Field(default_factory=_utc_now)
