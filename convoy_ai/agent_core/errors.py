"""Error types for the agent core.

Tool failures never surface as exceptions (they are folded into tool results),
so the hierarchy below covers coordination, storage and model-call failures.
"""

from __future__ import annotations

from typing import Optional


class ConvoyError(Exception):
    """Base error for all agent core exceptions."""


class RunConflictError(ConvoyError):
    """Raised when a run is requested for a conversation that already has an active run."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation '{conversation_id}' already has an active run")


class ConversationNotFoundError(ConvoyError):
    """Raised when a conversation does not exist or is not visible to the requester."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: '{conversation_id}'")


class ApprovalNotFoundError(ConvoyError):
    """Raised for unknown, stale or foreign approval ids."""

    def __init__(self, approval_id: str) -> None:
        self.approval_id = approval_id
        super().__init__(f"Approval not found: '{approval_id}'")


class StoreUnavailableError(ConvoyError):
    """Raised by a storage provider that cannot be configured or reached."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Storage provider '{provider}' unavailable: {reason}")


class ModelCallError(ConvoyError):
    """Raised by model clients; ``retryable`` marks transient failures."""

    def __init__(self, message: str, code: str = "MODEL_ERROR", retryable: bool = False, status: Optional[int] = None) -> None:
        self.code = code
        self.retryable = retryable
        self.status = status
        super().__init__(message)
