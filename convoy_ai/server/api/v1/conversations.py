"""
Conversations API Endpoints.

This module manages the lifecycle of conversations and their agent runs.
It provides endpoints to list, create, read, rename and delete conversations,
send a message (which starts a run streamed as Server-Sent Events), re-attach
to the event stream of a current or recent run, and stop an active run.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, HTTPException, status
from sse_starlette.sse import EventSourceResponse

from convoy_ai.agent_core.errors import ConversationNotFoundError, RunConflictError
from convoy_ai.agent_core.schemas.domain import Conversation
from convoy_ai.agent_core.schemas.events import AgentEvent
from convoy_ai.core.logging_config import get_logger

from ...schemas import (
    ConversationCreate,
    ConversationDetail,
    ConversationList,
    ConversationRename,
    DeleteResponse,
    MessageCreate,
    StopRequest,
    StopResponse,
)
from ...services.deps import CoordinatorDep, OwnerDep

router = APIRouter()
logger = get_logger(__name__)

STREAM_END_EVENT = "stream:end"

_NOT_FOUND = {404: {"description": "Conversation not found"}}


async def _sse_frames(conversation_id: str, events: AsyncIterator[AgentEvent]) -> AsyncIterator[Dict[str, Any]]:
    try:
        async for event in events:
            yield event.to_sse()
    except (asyncio.CancelledError, GeneratorExit):
        logger.debug(f"SSE client disconnected from conversation {conversation_id}")
        raise


async def _stream_end(conversation_id: str) -> AsyncIterator[Dict[str, Any]]:
    yield {"event": STREAM_END_EVENT, "data": json.dumps({"conversationId": conversation_id})}


@router.get(
    "/",
    response_model=ConversationList,
    summary="List Conversations",
    description="List the requesting owner's conversations, most recently updated first.",
    response_description="Conversation summaries.",
)
async def list_conversations(coordinator: CoordinatorDep, owner_id: OwnerDep):
    return ConversationList(conversations=await coordinator.list_conversations(owner_id))


@router.post(
    "/",
    response_model=ConversationDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create Conversation",
    description="Create an empty conversation owned by the requester.",
    response_description="The created conversation.",
)
async def create_conversation(body: ConversationCreate, coordinator: CoordinatorDep, owner_id: OwnerDep):
    conversation = await coordinator.create_conversation(owner_id, body.title)
    logger.info(f"Created conversation {conversation.conversation_id} for {owner_id}")
    return ConversationDetail(conversation=conversation)


@router.get(
    "/{conversation_id}",
    response_model=ConversationDetail,
    summary="Get Conversation",
    description="Retrieve a conversation with its messages, pending approvals and active run id.",
    responses=_NOT_FOUND,
)
async def get_conversation(conversation_id: str, coordinator: CoordinatorDep, owner_id: OwnerDep):
    conversation = await coordinator.get_conversation(conversation_id, owner_id)
    return ConversationDetail(conversation=conversation, active_run_id=coordinator.active_run_id(conversation_id))


@router.patch(
    "/{conversation_id}",
    response_model=Conversation,
    summary="Rename Conversation",
    description="Change the title of a conversation.",
    responses=_NOT_FOUND,
)
async def rename_conversation(
    conversation_id: str, body: ConversationRename, coordinator: CoordinatorDep, owner_id: OwnerDep
):
    return await coordinator.rename_conversation(conversation_id, owner_id, body.title)


@router.delete(
    "/{conversation_id}",
    response_model=DeleteResponse,
    summary="Delete Conversation",
    description="Stop any active run and delete the conversation.",
    responses=_NOT_FOUND,
)
async def delete_conversation(conversation_id: str, coordinator: CoordinatorDep, owner_id: OwnerDep):
    deleted = await coordinator.delete_conversation(conversation_id, owner_id)
    return DeleteResponse(deleted=deleted)


@router.post(
    "/{conversation_id}/messages",
    summary="Send Message",
    description="""
    Append a user message and start an agent run.

    The response is a Server-Sent Events stream of run events (`run:started`,
    `step:*`, `model:*`, `tool:*`, `approval:*`) that ends after exactly one
    terminal event (`run:completed`, `run:error` or `run:cancelled`).
    """,
    response_description="SSE stream of agent events.",
    responses={409: {"description": "Conversation already has an active run"}, **_NOT_FOUND},
)
async def send_message(conversation_id: str, body: MessageCreate, coordinator: CoordinatorDep, owner_id: OwnerDep):
    try:
        events = await coordinator.start_run(conversation_id, owner_id, body.message, body.parameters)
    except RunConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return EventSourceResponse(_sse_frames(conversation_id, events))


@router.get(
    "/{conversation_id}/events",
    summary="Stream Run Events",
    description="Replay buffered events of the current or recent run and follow it live. "
    f"Emits a single `{STREAM_END_EVENT}` event when there is nothing to follow.",
    response_description="SSE stream of agent events.",
    responses=_NOT_FOUND,
)
async def stream_events(conversation_id: str, coordinator: CoordinatorDep, owner_id: OwnerDep):
    await coordinator.get_conversation(conversation_id, owner_id)
    events = coordinator.subscribe(conversation_id)
    if events is None:
        return EventSourceResponse(_stream_end(conversation_id))
    return EventSourceResponse(_sse_frames(conversation_id, events))


@router.post(
    "/{conversation_id}/stop",
    response_model=StopResponse,
    summary="Stop Run",
    description="Cancel the active run. A run id that does not match the active run is ignored.",
    responses=_NOT_FOUND,
)
async def stop_run(
    conversation_id: str, coordinator: CoordinatorDep, owner_id: OwnerDep, body: Optional[StopRequest] = None
):
    await coordinator.get_conversation(conversation_id, owner_id)
    run_id = coordinator.active_run_id(conversation_id)
    stopped = coordinator.stop(conversation_id, body.run_id if body is not None else None)
    return StopResponse(stopped=stopped, run_id=run_id)
