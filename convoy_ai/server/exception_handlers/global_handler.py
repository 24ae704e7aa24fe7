"""
Exception Handlers for FastAPI Application.

Maps agent core errors to HTTP status codes and provides a global handler
that logs any other unhandled exception with its request context and returns
an error id clients can reference when reporting issues.
"""

import traceback

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from convoy_ai.agent_core.errors import (
    ApprovalNotFoundError,
    ConversationNotFoundError,
    ConvoyError,
    RunConflictError,
)
from convoy_ai.core.logging_config import get_logger

logger = get_logger(__name__)


def _status_for(exc: ConvoyError) -> int:
    if isinstance(exc, RunConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, (ConversationNotFoundError, ApprovalNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def convoy_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate agent core errors raised by endpoints into JSON responses."""
    status_code = _status_for(exc) if isinstance(exc, ConvoyError) else status.HTTP_500_INTERNAL_SERVER_ERROR
    if status_code >= 500:
        return await global_exception_handler(request, exc)
    logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler to log detailed error information.

    Args:
        request: The HTTP request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with error details and error ID
    """
    error_id = id(exc)

    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(ConvoyError, convoy_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
