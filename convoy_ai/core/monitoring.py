"""
Monitoring and Telemetry Module.

This module provides integration with Pydantic Logfire for tracing the server
and relaying agent run events:
- FastAPI endpoint, HTTPX and SQLAlchemy instrumentation
- Per-event telemetry for every run (``TelemetryEmitter``)

Initialization is conditional on the LOGFIRE_ENABLED environment variable and
a LOGFIRE_TOKEN; without them the emitter only writes debug logs.
"""

import logging
import os
from typing import Any, Awaitable, Callable, Optional

import logfire
from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Logfire configuration from environment
LOGFIRE_ENABLED = os.getenv("LOGFIRE_ENABLED", "false").lower() in ("true", "1", "yes")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "convoy-ai")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.1.0")

# Feature flags
LOGFIRE_TRACE_SQLALCHEMY = os.getenv("LOGFIRE_TRACE_SQLALCHEMY", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_HTTPX = os.getenv("LOGFIRE_TRACE_HTTPX", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_FASTAPI = os.getenv("LOGFIRE_TRACE_FASTAPI", "true").lower() in ("true", "1", "yes")

_logfire_active = False


def initialize_logfire(app: Optional[FastAPI] = None) -> bool:
    """
    Initialize Logfire for monitoring and tracing.

    Args:
        app: FastAPI application instance for endpoint instrumentation (optional).

    Returns:
        True if Logfire was configured and event telemetry is active.
    """
    global _logfire_active

    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not LOGFIRE_TOKEN:
        logger.warning(
            "Logfire is enabled but LOGFIRE_TOKEN is not set. "
            "Monitoring will not work. Set LOGFIRE_TOKEN to enable Logfire."
        )
        return False

    logfire.configure(
        token=LOGFIRE_TOKEN,
        service_name=LOGFIRE_SERVICE_NAME,
        service_version=LOGFIRE_SERVICE_VERSION,
        environment=LOGFIRE_ENVIRONMENT,
    )

    if LOGFIRE_TRACE_SQLALCHEMY:
        try:
            logfire.instrument_sqlalchemy()
            logger.info("Logfire: SQLAlchemy instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument SQLAlchemy: {e}")

    if LOGFIRE_TRACE_HTTPX:
        try:
            logfire.instrument_httpx()
            logger.info("Logfire: HTTPX instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument HTTPX: {e}")

    if LOGFIRE_TRACE_FASTAPI and app is not None:
        try:
            logfire.instrument_fastapi(app=app)
            logger.info("Logfire: FastAPI instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument FastAPI: {e}")

    _logfire_active = True
    logger.info(f"Logfire monitoring initialized: environment={LOGFIRE_ENVIRONMENT}, service={LOGFIRE_SERVICE_NAME}")
    return True


TelemetryHandler = Callable[[Any], Awaitable[None]]


class TelemetryEmitter:
    """Relay agent events to telemetry.

    Events go to ``handler`` when one is given, otherwise to Logfire once it has
    been initialized. Failures are logged and never propagate to the run.
    """

    def __init__(self, handler: Optional[TelemetryHandler] = None, *, enabled: bool = True) -> None:
        self._handler = handler
        self._enabled = enabled

    async def emit(self, event: Any) -> None:
        if not self._enabled:
            return
        try:
            if self._handler is not None:
                await self._handler(event)
            elif _logfire_active:
                logfire.info("agent event {event_type}", event_type=event.type, payload=event.to_wire())
            else:
                logger.debug(f"agent event {event.type}")
        except Exception as e:
            logger.warning(f"Telemetry emit failed for {getattr(event, 'type', event)}: {e}")
