"""LangGraph-based run engine and the model client boundary.

The main entry point is ``RunEngine``. Model access goes through the
``ModelClient`` protocol; everything a run needs beyond the model (tools,
memory, approval callback) is injected into the engine.
"""

from .engine import APPROVAL_DENIED_ERROR, APPROVAL_DENIED_REASON, MAX_CONTEXT_MESSAGES, RunEngine
from .models import (
    ApprovalHandler,
    ApprovalRequest,
    ModelCallInput,
    ModelClient,
    ModelResponse,
    ModelStreamEvent,
    ModelUsage,
    RunInput,
    RunOutput,
)

__all__ = [
    "RunEngine",
    "APPROVAL_DENIED_ERROR",
    "APPROVAL_DENIED_REASON",
    "MAX_CONTEXT_MESSAGES",
    "ApprovalHandler",
    "ApprovalRequest",
    "ModelCallInput",
    "ModelClient",
    "ModelResponse",
    "ModelStreamEvent",
    "ModelUsage",
    "RunInput",
    "RunOutput",
]
