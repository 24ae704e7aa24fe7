"""
Approvals API Endpoints.

This module handles decisions on tool calls that require human approval.
A pending approval belongs to a live run; deciding it resumes that run.
"""

from fastapi import APIRouter, HTTPException, status

from convoy_ai.core.logging_config import get_logger

from ...schemas import ApprovalDecision, ApprovalDecisionResponse
from ...services.deps import CoordinatorDep, OwnerDep

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/{approval_id}",
    response_model=ApprovalDecisionResponse,
    summary="Resolve Approval",
    description="Grant or deny a pending tool approval of one of the requester's runs.",
    response_description="The recorded decision.",
    responses={404: {"description": "Approval not found, already resolved, or not owned by the requester"}},
)
async def resolve_approval(approval_id: str, body: ApprovalDecision, coordinator: CoordinatorDep, owner_id: OwnerDep):
    if not coordinator.resolve_approval(approval_id, body.approved, owner_id):
        logger.info(f"Rejected decision for unknown approval {approval_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Approval not found: '{approval_id}'")
    return ApprovalDecisionResponse(approval_id=approval_id, approved=body.approved)
