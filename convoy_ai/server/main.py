"""
Main Application Entry Point.

This module builds the FastAPI application, configures middleware (CORS) and
exception handlers, and includes all API routers. The model client is supplied
by the host, so the application is created through ``create_app`` rather than
at import time.
"""

from contextlib import asynccontextmanager
from typing import Iterable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from convoy_ai.agent_core.coordinator import ConversationCoordinator
from convoy_ai.agent_core.factory import build_coordinator
from convoy_ai.agent_core.runtime import ModelClient
from convoy_ai.agent_core.tools import ToolDefinition
from convoy_ai.core.logging_config import get_logger, setup_logging
from convoy_ai.core.monitoring import TelemetryEmitter, initialize_logfire

from .api.v1 import approvals, conversations, health
from .core import constant
from .core.config import Settings, settings
from .exception_handlers import setup_exception_handlers

logger = get_logger(__name__)


def coordinator_from_settings(
    model_client: ModelClient,
    *,
    tools: Optional[Iterable[ToolDefinition]] = None,
    app_settings: Settings = settings,
) -> ConversationCoordinator:
    """Build the coordinator described by the environment configuration."""
    return build_coordinator(
        agent=app_settings.agent,
        model_client=model_client,
        state=app_settings.state,
        tools=tools,
        memory=app_settings.memory,
        working_dir=app_settings.working_dir,
        workspace_tools=app_settings.workspace_tools_enabled,
        allow_write=app_settings.workspace_write_enabled,
        telemetry=TelemetryEmitter(),
        event_buffer_size=app_settings.event_buffer_size,
        buffer_grace_seconds=app_settings.event_buffer_grace_seconds,
    )


def create_app(
    *,
    model_client: Optional[ModelClient] = None,
    coordinator: Optional[ConversationCoordinator] = None,
    tools: Optional[Iterable[ToolDefinition]] = None,
    app_settings: Settings = settings,
) -> FastAPI:
    """
    Create the Convoy-AI FastAPI application.

    Args:
        model_client: Model client used to build a coordinator from settings.
        coordinator: A ready coordinator; takes precedence over ``model_client``.
        tools: Host tools registered when the coordinator is built here.
        app_settings: Configuration source.

    Raises:
        ValueError: If neither a coordinator nor a model client is given.
    """
    if coordinator is None:
        if model_client is None:
            raise ValueError("create_app requires a coordinator or a model_client")
        coordinator = coordinator_from_settings(model_client, tools=tools, app_settings=app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifespan events.

        Configures logging on startup; on shutdown stops every active run and
        closes the stores.
        """
        setup_logging(app_settings.log_level)
        logger.info("Starting up Convoy-AI Server...")
        for name, health_info in coordinator.storage_health().items():
            if health_info.degraded:
                logger.warning(f"Store '{name}' is running degraded: {health_info.reason}")

        yield

        logger.info("Shutting down Convoy-AI Server...")
        await coordinator.aclose()

    app = FastAPI(
        title=constant.PROJECT_NAME,
        description="""
        Convoy-AI Server API

        Conversational agent runs streamed as Server-Sent Events, with human approval
        of gated tool calls and pluggable conversation storage.
        """,
        version="0.1.0",
        openapi_url=f"{constant.API_PREFIX}/openapi.json",
        docs_url=f"{constant.API_PREFIX}/docs",
        redoc_url=f"{constant.API_PREFIX}/redoc",
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator

    cors = app_settings.cors
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.origins,
        allow_credentials=cors.allow_credentials,
        allow_methods=cors.allow_methods,
        allow_headers=cors.allow_headers,
    )
    setup_exception_handlers(app)
    initialize_logfire(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(conversations.router, prefix=f"{constant.API_PREFIX}/conversations", tags=["conversations"])
    app.include_router(approvals.router, prefix=f"{constant.API_PREFIX}/approvals", tags=["approvals"])
    return app
