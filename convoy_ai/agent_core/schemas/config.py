"""Configuration models shared by the runtime, stores and the server settings."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import BaseSchema


class StateProvider(str, Enum):
    memory = "memory"
    local = "local"
    upstash = "upstash"
    sql = "sql"
    dynamodb = "dynamodb"


class StateConfig(BaseSchema):
    """Provider selector and connection parameters for state, conversation and memory stores."""

    provider: StateProvider = Field(default=StateProvider.memory, description="Storage backend")
    ttl: Optional[int] = Field(default=None, gt=0, description="Expiry in seconds, enforced on read")
    url: Optional[str] = Field(default=None, description="REST endpoint or SQLAlchemy database URL")
    token: Optional[str] = Field(default=None, description="Bearer token for REST providers")
    table: Optional[str] = Field(default=None, description="Table name for table-backed providers")
    region: Optional[str] = Field(default=None, description="Cloud region for table-backed providers")


class MemoryConfig(BaseSchema):
    enabled: bool = False
    state: StateConfig = Field(default_factory=StateConfig)
    max_recall_conversations: int = Field(default=20, ge=1)


class AgentLimits(BaseSchema):
    max_steps: int = Field(default=50, ge=1)
    timeout: float = Field(default=300.0, gt=0, description="Run timeout in seconds, checked at step boundaries")


class ModelSettings(BaseSchema):
    name: str = "default"
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class AgentDefinition(BaseSchema):
    """Identity, prompt and budgets of the agent executed by the run engine."""

    id: str = "convoy-agent"
    name: str = "Convoy Agent"
    system_prompt: str = "You are a helpful assistant."
    model: ModelSettings = Field(default_factory=ModelSettings)
    limits: AgentLimits = Field(default_factory=AgentLimits)
