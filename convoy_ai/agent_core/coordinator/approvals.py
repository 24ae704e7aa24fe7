"""Live registry of approval requests awaiting a human decision."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..schemas.domain import PendingApprovalRecord


@dataclass
class LiveApproval:
    approval_id: str
    conversation_id: str
    owner_id: str
    run_id: str
    tool: str
    input: Dict[str, Any]
    future: "asyncio.Future[bool]"
    record: PendingApprovalRecord = field(init=False)

    def __post_init__(self) -> None:
        self.record = PendingApprovalRecord(
            approval_id=self.approval_id, run_id=self.run_id, tool=self.tool, input=self.input
        )

    def resolve(self, approved: bool) -> bool:
        """Deliver the decision; returns False if it was already decided."""
        if self.future.done():
            return False
        self.future.set_result(approved)
        return True


class ApprovalRegistry:
    """Approval id to ``LiveApproval`` map owned by the coordinator."""

    def __init__(self) -> None:
        self._items: Dict[str, LiveApproval] = {}

    def __len__(self) -> int:
        return len(self._items)

    def add(self, approval: LiveApproval) -> None:
        self._items[approval.approval_id] = approval

    def get(self, approval_id: str) -> Optional[LiveApproval]:
        return self._items.get(approval_id)

    def pop(self, approval_id: str) -> Optional[LiveApproval]:
        return self._items.pop(approval_id, None)

    def for_conversation(self, conversation_id: str) -> List[LiveApproval]:
        return [a for a in self._items.values() if a.conversation_id == conversation_id]
