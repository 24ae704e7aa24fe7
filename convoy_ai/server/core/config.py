"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It loads all configuration from environment variables and the .env file and
exposes grouped, typed views (state, memory, agent, CORS) as properties.
"""

from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from convoy_ai.agent_core.schemas.config import (
    AgentDefinition,
    AgentLimits,
    MemoryConfig,
    ModelSettings,
    StateConfig,
    StateProvider,
)


class CORSConfig(BaseModel):
    """CORS configuration."""

    origins: List[str] = Field(default=["*"], description="Allowed CORS origins (use * for all)")
    allow_credentials: bool = Field(default=True, description="Allow credentials in CORS requests")
    allow_methods: List[str] = Field(default=["*"], description="Allowed HTTP methods (use * for all)")
    allow_headers: List[str] = Field(default=["*"], description="Allowed HTTP headers (use * for all)")


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Server Configuration
    # =====================================================================
    server_host: str = Field(default="0.0.0.0", description="Server host address to bind to", alias="CONVOY_SERVER_HOST")
    server_port: int = Field(default=8000, description="Server port number", alias="CONVOY_SERVER_PORT")
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="CONVOY_LOG_LEVEL",
    )
    working_dir: str = Field(default=".", description="Workspace root for tools and local stores", alias="CONVOY_WORKING_DIR")
    cors_origins: List[str] = Field(default=["*"], description="Allowed CORS origins", alias="CORS_ORIGINS")

    # =====================================================================
    # Agent Configuration
    # =====================================================================
    agent_id: str = Field(default="convoy-agent", description="Agent identity, also the storage namespace", alias="CONVOY_AGENT_ID")
    agent_name: str = Field(default="Convoy Agent", description="Display name of the agent", alias="CONVOY_AGENT_NAME")
    system_prompt: str = Field(
        default="You are a helpful assistant.", description="Agent system prompt", alias="CONVOY_SYSTEM_PROMPT"
    )
    model_name: str = Field(default="default", description="Model name passed to the model client", alias="CONVOY_MODEL_NAME")
    model_temperature: Optional[float] = Field(default=None, description="Sampling temperature", alias="CONVOY_MODEL_TEMPERATURE")
    model_max_tokens: Optional[int] = Field(default=None, description="Max output tokens per call", alias="CONVOY_MODEL_MAX_TOKENS")
    max_steps: int = Field(default=50, description="Maximum steps per run", alias="CONVOY_MAX_STEPS")
    timeout_seconds: float = Field(default=300.0, description="Run timeout checked at step boundaries", alias="CONVOY_TIMEOUT_SECONDS")
    workspace_tools_enabled: bool = Field(
        default=True, description="Register list_directory and read_file", alias="CONVOY_WORKSPACE_TOOLS_ENABLED"
    )
    workspace_write_enabled: bool = Field(
        default=True, description="Also register write_file", alias="CONVOY_WORKSPACE_WRITE_ENABLED"
    )

    # =====================================================================
    # Storage Configuration
    # =====================================================================
    state_provider: StateProvider = Field(default=StateProvider.memory, description="Storage provider", alias="CONVOY_STATE_PROVIDER")
    state_ttl: Optional[int] = Field(default=None, description="Record expiry in seconds", alias="CONVOY_STATE_TTL")
    state_url: Optional[str] = Field(default=None, description="REST endpoint or database URL", alias="CONVOY_STATE_URL")
    state_token: Optional[str] = Field(default=None, description="REST bearer token", alias="CONVOY_STATE_TOKEN")
    state_table: Optional[str] = Field(default=None, description="Table name (dynamodb)", alias="CONVOY_STATE_TABLE")
    state_region: Optional[str] = Field(default=None, description="Cloud region (dynamodb)", alias="CONVOY_STATE_REGION")

    memory_enabled: bool = Field(default=False, description="Enable main memory and recall tools", alias="CONVOY_MEMORY_ENABLED")
    memory_provider: Optional[StateProvider] = Field(
        default=None, description="Memory provider (defaults to the storage provider)", alias="CONVOY_MEMORY_PROVIDER"
    )
    memory_max_recall_conversations: int = Field(
        default=20, description="Conversations searched by conversation_recall", alias="CONVOY_MEMORY_MAX_RECALL_CONVERSATIONS"
    )

    # =====================================================================
    # Coordinator Configuration
    # =====================================================================
    event_buffer_size: int = Field(default=1000, description="Events buffered per conversation", alias="CONVOY_EVENT_BUFFER_SIZE")
    event_buffer_grace_seconds: float = Field(
        default=30.0, description="Replay window after a run finishes", alias="CONVOY_EVENT_BUFFER_GRACE_SECONDS"
    )

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def state(self) -> StateConfig:
        """Get storage configuration."""
        return StateConfig(
            provider=self.state_provider,
            ttl=self.state_ttl,
            url=self.state_url,
            token=self.state_token,
            table=self.state_table,
            region=self.state_region,
        )

    @property
    def memory(self) -> MemoryConfig:
        """Get memory configuration; it shares connection parameters with storage."""
        state = self.state
        if self.memory_provider is not None:
            state = state.model_copy(update={"provider": self.memory_provider})
        return MemoryConfig(
            enabled=self.memory_enabled,
            state=state,
            max_recall_conversations=self.memory_max_recall_conversations,
        )

    @property
    def agent(self) -> AgentDefinition:
        """Get the agent definition."""
        return AgentDefinition(
            id=self.agent_id,
            name=self.agent_name,
            system_prompt=self.system_prompt,
            model=ModelSettings(name=self.model_name, temperature=self.model_temperature, max_tokens=self.model_max_tokens),
            limits=AgentLimits(max_steps=self.max_steps, timeout=self.timeout_seconds),
        )

    @property
    def cors(self) -> CORSConfig:
        """Get CORS configuration."""
        return CORSConfig(origins=self.cors_origins)


settings = Settings()
