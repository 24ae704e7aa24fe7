"""
Request Dependencies.

Provides the application's ``ConversationCoordinator`` and the requesting
owner id (``X-Owner-Id`` header) to API endpoints.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from convoy_ai.agent_core.coordinator import ConversationCoordinator
from convoy_ai.agent_core.schemas.domain import DEFAULT_OWNER_ID

from ..core import constant


def get_coordinator(request: Request) -> ConversationCoordinator:
    return request.app.state.coordinator


def get_owner_id(x_owner_id: Annotated[Optional[str], Header(alias=constant.OWNER_HEADER)] = None) -> str:
    """Requests without an owner header act as the single local owner."""
    return x_owner_id or DEFAULT_OWNER_ID


CoordinatorDep = Annotated[ConversationCoordinator, Depends(get_coordinator)]
OwnerDep = Annotated[str, Depends(get_owner_id)]
