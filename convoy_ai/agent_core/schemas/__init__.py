"""Pydantic models for runs, events, conversations and configuration."""

from .base import BaseSchema
from .config import AgentDefinition, AgentLimits, MemoryConfig, ModelSettings, StateConfig, StateProvider
from .domain import (
    Conversation,
    ConversationState,
    ConversationSummary,
    MainMemory,
    Message,
    MessageMetadata,
    MessageRole,
    PendingApprovalRecord,
    RunErrorInfo,
    RunResult,
    TokenUsage,
)
from .events import AgentEvent, is_terminal, parse_event

__all__ = [
    "BaseSchema",
    "AgentDefinition",
    "AgentLimits",
    "MemoryConfig",
    "ModelSettings",
    "StateConfig",
    "StateProvider",
    "Conversation",
    "ConversationState",
    "ConversationSummary",
    "MainMemory",
    "Message",
    "MessageMetadata",
    "MessageRole",
    "PendingApprovalRecord",
    "RunErrorInfo",
    "RunResult",
    "TokenUsage",
    "AgentEvent",
    "is_terminal",
    "parse_event",
]
