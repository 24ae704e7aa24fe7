"""
API Request and Response Schemas.

Bodies exchanged by the HTTP endpoints. Domain records (conversations,
summaries, events) are returned as their own wire models.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field

from convoy_ai.agent_core.schemas.base import BaseSchema
from convoy_ai.agent_core.schemas.domain import Conversation, ConversationSummary


class ConversationCreate(BaseSchema):
    title: Optional[str] = Field(None, description="Initial title; defaults to 'New conversation'")


class ConversationRename(BaseSchema):
    title: str = Field(..., min_length=1, description="New conversation title")


class MessageCreate(BaseSchema):
    message: str = Field(..., min_length=1, description="User task for the run")
    parameters: Optional[Dict[str, Any]] = Field(None, description="Run parameters passed to every tool call")


class StopRequest(BaseSchema):
    run_id: Optional[str] = Field(None, description="Only stop when it matches the active run")


class StopResponse(BaseSchema):
    ok: bool = True
    stopped: bool
    run_id: Optional[str] = None


class ApprovalDecision(BaseSchema):
    approved: bool = Field(..., description="True to allow the gated tool call")


class ApprovalDecisionResponse(BaseSchema):
    ok: bool = True
    approval_id: str
    approved: bool


class ConversationList(BaseSchema):
    conversations: List[ConversationSummary]


class ConversationDetail(BaseSchema):
    conversation: Conversation
    active_run_id: Optional[str] = None


class DeleteResponse(BaseSchema):
    ok: bool = True
    deleted: bool
