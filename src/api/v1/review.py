"""
Review decision endpoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.deps import get_actor_id, get_issue_service
from src.core.constants import ReviewDecision
from src.domain.issue import Issue
from src.services.issue_service import IssueService

router = APIRouter()


class ReviewDecisionRequest(BaseModel):
    """A reviewer's decision on an issue in Review."""

    decision: ReviewDecision
    target_state_id: Optional[str] = Field(default=None, description="Destination stage")
    reviewer_id: Optional[str] = Field(default=None, description="New reviewer, for reassign")
    reason: Optional[str] = Field(default=None, description="Required when sending back")


@router.post("/teams/{team_id}/issues/{issue_id}/review", response_model=Issue)
async def review_issue(
    team_id: str,
    issue_id: str,
    request: ReviewDecisionRequest,
    actor_id: str = Depends(get_actor_id),
    issue_service: IssueService = Depends(get_issue_service),
) -> Issue:
    """Approve, send back or reassign. Reviewer, owners and admins only."""
    return await issue_service.perform_review_decision(
        team_id,
        issue_id,
        actor_id,
        request.decision,
        target_state_id=request.target_state_id,
        reviewer_id=request.reviewer_id,
        reason=request.reason,
    )
