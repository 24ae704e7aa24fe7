from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Any, AsyncIterator, Dict, List, Optional

from ...core.logging_config import get_logger
from ...core.monitoring import TelemetryEmitter
from ..errors import ConversationNotFoundError, RunConflictError
from ..memory.tools import RECALL_CORPUS_PARAMETER, RecallDocument
from ..runtime.engine import MAX_CONTEXT_MESSAGES, RunEngine
from ..runtime.models import ApprovalRequest, RunInput
from ..schemas.domain import (
    DEFAULT_CONVERSATION_TITLE,
    Conversation,
    ConversationState,
    ConversationSummary,
    Message,
    MessageMetadata,
    MessageRole,
    PendingApprovalRecord,
    RunErrorInfo,
)
from ..schemas.events import (
    APPROVAL_EVENT_TYPES,
    AgentEvent,
    RunCompletedEvent,
    RunErrorEvent,
    RunStartedEvent,
    is_terminal,
)
from ..state.interfaces import ConversationStore, StateStore, StoreHealth
from ..tools.base import CancellationToken
from .approvals import ApprovalRegistry, LiveApproval
from .streams import ConversationEventStream

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 60


@dataclass
class _ActiveRun:
    """Registry entry for a conversation's run; created before the run id is known."""

    conversation_id: str
    owner_id: str
    token: CancellationToken
    run_id: Optional[str] = None
    conversation: Optional[Conversation] = None
    pending: List[PendingApprovalRecord] = field(default_factory=list)
    task: Optional[asyncio.Task] = None


@dataclass
class _RunDraft:
    """Assistant message assembled from streamed events."""

    parts: List[str] = field(default_factory=list)
    tool_activity: List[str] = field(default_factory=list)
    terminal: Optional[Any] = None

    def apply(self, event: Any) -> None:
        kind = event.type
        if kind == "model:chunk":
            self.parts.append(event.content)
        elif kind == "tool:started":
            self.tool_activity.append(f"- start `{event.tool}`")
        elif kind == "tool:completed":
            self.tool_activity.append(f"- done `{event.tool}` ({event.duration}ms)")
        elif kind == "tool:error":
            self.tool_activity.append(f"- error `{event.tool}`: {event.error}")
        elif kind == "tool:approval:required":
            self.tool_activity.append(f"- approval required `{event.tool}`")
        elif kind == "tool:approval:granted":
            self.tool_activity.append("- approval granted")
        elif kind == "tool:approval:denied":
            self.tool_activity.append("- approval denied")

    def to_message(self, run_id: Optional[str]) -> Optional[Message]:
        text = "".join(self.parts)
        error: Optional[RunErrorInfo] = None
        if isinstance(self.terminal, RunCompletedEvent) and not text:
            text = self.terminal.result.response
        elif isinstance(self.terminal, RunErrorEvent):
            error = self.terminal.error
        if not text and not self.tool_activity and error is None:
            return None
        return Message(
            role=MessageRole.assistant,
            content=text,
            metadata=MessageMetadata(run_id=run_id, tool_activity=list(self.tool_activity), run_error=error),
        )


class ConversationCoordinator:
    """
    Runs the engine on behalf of conversations.

    The coordinator is the only writer of conversation records while a run is
    active. It guarantees at most one non-cancelled run per conversation, keeps
    the live approval registry, relays every run event to a per-conversation
    buffer, live subscribers and telemetry, and checkpoints progress to storage.
    """

    def __init__(
        self,
        *,
        engine: RunEngine,
        conversation_store: ConversationStore,
        state_store: Optional[StateStore] = None,
        telemetry: Optional[TelemetryEmitter] = None,
        event_buffer_size: int = 1000,
        buffer_grace_seconds: float = 30.0,
        max_recall_conversations: int = 20,
    ) -> None:
        self._engine = engine
        self._conversations = conversation_store
        self._state = state_store
        self._telemetry = telemetry or TelemetryEmitter()
        self._event_buffer_size = event_buffer_size
        self._buffer_grace_seconds = buffer_grace_seconds
        self._max_recall_conversations = max_recall_conversations

        self._active: Dict[str, _ActiveRun] = {}
        self._approvals = ApprovalRegistry()
        self._streams: Dict[str, ConversationEventStream] = {}

    @property
    def engine(self) -> RunEngine:
        return self._engine

    @property
    def conversation_store(self) -> ConversationStore:
        return self._conversations

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def start_run(
        self,
        conversation_id: str,
        owner_id: str,
        task: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Start a run for a conversation and return its event stream.

        The run executes in its own task; the returned iterator replays buffered
        events and then follows the run live, ending after the run is finalized.

        Raises:
            RunConflictError: If the conversation already has a non-cancelled run.
            ConversationNotFoundError: If the conversation does not exist or belongs
                to another owner.
        """
        existing = self._active.get(conversation_id)
        if existing is not None and not existing.token.cancelled:
            raise RunConflictError(conversation_id)

        entry = _ActiveRun(conversation_id=conversation_id, owner_id=owner_id, token=CancellationToken())
        self._active[conversation_id] = entry
        try:
            conversation = await self._load_owned(conversation_id, owner_id)
        except BaseException:
            self._release(entry)
            raise

        stream = self._open_stream(conversation_id)
        entry.task = asyncio.create_task(self._execute(entry, conversation, task, dict(parameters or {}), stream))
        logger.info(f"Run accepted for conversation {conversation_id}")
        return stream.subscribe()

    def stop(self, conversation_id: str, run_id: Optional[str] = None) -> bool:
        """
        Cancel the active run of a conversation.

        Args:
            conversation_id: The conversation to stop.
            run_id: When given, only stop if it matches the active run.

        Returns:
            True if a run was signalled; every pending approval of the conversation
            is denied in that case.
        """
        entry = self._active.get(conversation_id)
        if entry is None or entry.token.cancelled:
            return False
        if run_id is not None and entry.run_id != run_id:
            logger.info(f"Ignoring stale stop for conversation {conversation_id}: {run_id} != {entry.run_id}")
            return False
        entry.token.cancel()
        for approval in self._approvals.for_conversation(conversation_id):
            self._settle(approval, False)
        logger.info(f"Run {entry.run_id} of conversation {conversation_id} stopped")
        return True

    def resolve_approval(self, approval_id: str, approved: bool, owner_id: str) -> bool:
        """
        Deliver a decision for a pending approval.

        Returns:
            False for unknown ids and for approvals owned by someone else; the two
            cases are indistinguishable to the caller.
        """
        approval = self._approvals.get(approval_id)
        if approval is None or approval.owner_id != owner_id:
            return False
        self._settle(approval, approved)
        logger.info(f"Approval {approval_id} {'granted' if approved else 'denied'}")
        return True

    def subscribe(self, conversation_id: str) -> Optional[AsyncIterator[AgentEvent]]:
        """Replay-then-live iterator over the conversation's current or recent run, if any."""
        stream = self._streams.get(conversation_id)
        return stream.subscribe() if stream is not None else None

    def has_active_run(self, conversation_id: str) -> bool:
        return conversation_id in self._active

    def active_run_id(self, conversation_id: str) -> Optional[str]:
        entry = self._active.get(conversation_id)
        return entry.run_id if entry is not None else None

    def pending_approvals(self, conversation_id: str) -> List[PendingApprovalRecord]:
        return [a.record for a in self._approvals.for_conversation(conversation_id)]

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def list_conversations(self, owner_id: str) -> List[ConversationSummary]:
        return await self._conversations.list(owner_id)

    async def create_conversation(self, owner_id: str, title: Optional[str] = None) -> Conversation:
        return await self._conversations.create(owner_id, title)

    async def get_conversation(self, conversation_id: str, owner_id: str) -> Conversation:
        return await self._load_owned(conversation_id, owner_id)

    async def rename_conversation(self, conversation_id: str, owner_id: str, title: str) -> Conversation:
        await self._load_owned(conversation_id, owner_id)
        entry = self._active.get(conversation_id)
        if entry is not None and entry.conversation is not None:
            entry.conversation.title = title
        renamed = await self._conversations.rename(conversation_id, title)
        if renamed is None:
            raise ConversationNotFoundError(conversation_id)
        return renamed

    async def delete_conversation(self, conversation_id: str, owner_id: str) -> bool:
        await self._load_owned(conversation_id, owner_id)
        self.stop(conversation_id)
        entry = self._active.get(conversation_id)
        if entry is not None and entry.task is not None:
            await asyncio.gather(entry.task, return_exceptions=True)
        return await self._conversations.delete(conversation_id)

    def storage_health(self) -> Dict[str, StoreHealth]:
        health = {"conversations": self._conversations.health}
        if self._state is not None:
            health["state"] = self._state.health
        if self._engine.memory_store is not None:
            health["memory"] = self._engine.memory_store.health
        return health

    async def aclose(self) -> None:
        """Stop every active run, wait for finalization and close the stores."""
        for conversation_id in list(self._active):
            self.stop(conversation_id)
        tasks = [entry.task for entry in self._active.values() if entry.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for stream in self._streams.values():
            stream.cancel_expiry()
        self._streams.clear()
        await self._conversations.aclose()
        if self._state is not None:
            await self._state.aclose()
        if self._engine.memory_store is not None:
            await self._engine.memory_store.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_owned(self, conversation_id: str, owner_id: str) -> Conversation:
        conversation = await self._conversations.get(conversation_id)
        if conversation is None or conversation.owner_id != owner_id:
            raise ConversationNotFoundError(conversation_id)
        if conversation.pending_approvals and conversation_id not in self._active:
            # Mirrored approvals without a live run can never be resolved.
            logger.info(f"Clearing {len(conversation.pending_approvals)} stale approval(s) on {conversation_id}")
            conversation.pending_approvals = []
            conversation = await self._conversations.update(conversation)
        return conversation

    def _release(self, entry: _ActiveRun) -> None:
        if self._active.get(entry.conversation_id) is entry:
            del self._active[entry.conversation_id]

    def _settle(self, approval: LiveApproval, approved: bool) -> None:
        self._approvals.pop(approval.approval_id)
        entry = self._active.get(approval.conversation_id)
        if entry is not None:
            entry.pending = [p for p in entry.pending if p.approval_id != approval.approval_id]
        approval.resolve(approved)

    def _open_stream(self, conversation_id: str) -> ConversationEventStream:
        previous = self._streams.get(conversation_id)
        if previous is not None:
            previous.cancel_expiry()
        stream = ConversationEventStream(self._event_buffer_size)
        self._streams[conversation_id] = stream
        return stream

    def _expire_stream(self, conversation_id: str, stream: ConversationEventStream) -> None:
        if self._streams.get(conversation_id) is stream:
            del self._streams[conversation_id]
            logger.debug(f"Event buffer of conversation {conversation_id} expired")

    async def _await_approval(self, entry: _ActiveRun, request: ApprovalRequest) -> bool:
        if entry.token.cancelled:
            return False
        approval = LiveApproval(
            approval_id=request.approval_id,
            conversation_id=entry.conversation_id,
            owner_id=entry.owner_id,
            run_id=request.run_id,
            tool=request.tool,
            input=request.input,
            future=asyncio.get_running_loop().create_future(),
        )
        self._approvals.add(approval)
        entry.pending.append(approval.record)
        logger.info(f"Approval {request.approval_id} required for '{request.tool}' in run {request.run_id}")
        try:
            return await approval.future
        finally:
            self._approvals.pop(request.approval_id)
            entry.pending = [p for p in entry.pending if p.approval_id != request.approval_id]

    async def _recall_corpus(self, owner_id: str, exclude_conversation_id: str) -> List[Dict[str, Any]]:
        documents: List[Dict[str, Any]] = []
        for summary in await self._conversations.list(owner_id):
            if len(documents) >= self._max_recall_conversations:
                break
            if summary.conversation_id == exclude_conversation_id:
                continue
            conversation = await self._conversations.get(summary.conversation_id)
            if conversation is None:
                continue
            content = "\n".join(
                m.content for m in conversation.messages if m.role in (MessageRole.user, MessageRole.assistant)
            )
            documents.append(
                RecallDocument(
                    conversation_id=conversation.conversation_id,
                    title=conversation.title,
                    updated_at=conversation.updated_at,
                    content=content,
                ).to_wire()
            )
        return documents

    async def _execute(
        self,
        entry: _ActiveRun,
        conversation: Conversation,
        task: str,
        parameters: Dict[str, Any],
        stream: ConversationEventStream,
    ) -> None:
        draft = _RunDraft()
        try:
            prior = list(conversation.messages)
            conversation.messages = [*prior, Message(role=MessageRole.user, content=task, metadata=MessageMetadata())]
            if conversation.title == DEFAULT_CONVERSATION_TITLE and task.strip():
                conversation.title = task.strip()[:TITLE_MAX_LENGTH]
            entry.conversation = conversation
            await self._checkpoint(entry, None)

            if self._engine.memory_store is not None:
                parameters[RECALL_CORPUS_PARAMETER] = await self._recall_corpus(
                    entry.owner_id, entry.conversation_id
                )
            run_input = RunInput(task=task, parameters=parameters, messages=prior, cancellation_token=entry.token)
            async for event in self._engine.run(run_input, approval_handler=partial(self._await_approval, entry)):
                await self._relay(entry, draft, stream, event)
        except asyncio.CancelledError:
            entry.token.cancel()
            raise
        except Exception as exc:
            logger.error(f"Run for conversation {entry.conversation_id} failed: {exc}", exc_info=True)
            if draft.terminal is None:
                draft.terminal = RunErrorEvent(
                    run_id=entry.run_id or "",
                    error=RunErrorInfo(code="RUN_ERROR", message=str(exc) or type(exc).__name__),
                )
        finally:
            await self._finalize(entry, draft, stream)

    async def _relay(
        self, entry: _ActiveRun, draft: _RunDraft, stream: ConversationEventStream, event: AgentEvent
    ) -> None:
        if isinstance(event, RunStartedEvent):
            entry.run_id = event.run_id
            if entry.conversation is not None:
                entry.conversation.runtime_run_id = event.run_id
        draft.apply(event)

        if is_terminal(event):
            # Published by _finalize once the run is released.
            draft.terminal = event
            return

        if event.type == "step:completed" or event.type in APPROVAL_EVENT_TYPES:
            await self._checkpoint(entry, draft)
        stream.publish(event)
        await self._telemetry.emit(event)

    async def _checkpoint(self, entry: _ActiveRun, draft: Optional[_RunDraft]) -> None:
        if entry.conversation is None:
            return
        snapshot = entry.conversation.model_copy(deep=True)
        partial_reply = draft.to_message(entry.run_id) if draft is not None else None
        if partial_reply is not None:
            snapshot.messages.append(partial_reply)
        snapshot.pending_approvals = list(entry.pending)
        try:
            await self._conversations.update(snapshot)
            if self._state is not None and entry.run_id is not None:
                await self._state.set(
                    ConversationState(run_id=entry.run_id, messages=snapshot.messages[-MAX_CONTEXT_MESSAGES:])
                )
        except Exception as exc:
            logger.warning(f"Checkpoint of conversation {entry.conversation_id} failed: {exc}")

    async def _finalize(self, entry: _ActiveRun, draft: _RunDraft, stream: ConversationEventStream) -> None:
        for approval in self._approvals.for_conversation(entry.conversation_id):
            if approval.run_id == entry.run_id:
                self._settle(approval, False)
        entry.pending = []

        if self._active.get(entry.conversation_id) is entry and entry.conversation is not None:
            reply = draft.to_message(entry.run_id)
            if reply is not None:
                entry.conversation.messages.append(reply)
            entry.conversation.pending_approvals = []
            await self._checkpoint(entry, None)
        else:
            logger.info(f"Run {entry.run_id} was superseded; skipping final write")

        self._release(entry)
        if draft.terminal is not None:
            stream.publish(draft.terminal)
            await self._telemetry.emit(draft.terminal)
        stream.close()
        if self._streams.get(entry.conversation_id) is stream:
            stream.expiry = asyncio.get_running_loop().call_later(
                self._buffer_grace_seconds, self._expire_stream, entry.conversation_id, stream
            )
        logger.info(
            f"Run {entry.run_id} of conversation {entry.conversation_id} finalized: "
            f"{draft.terminal.type if draft.terminal is not None else 'no terminal event'}"
        )
