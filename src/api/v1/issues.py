"""
Issue endpoints: creation, patches, deletion and the activity log.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from src.api.deps import get_actor_id, get_issue_service
from src.core.constants import DEFAULT_PAGE_SIZE
from src.core.logging import get_logger
from src.domain.activity import IssueActivity
from src.domain.issue import Issue, IssueCreate
from src.domain.patch import IssuePatch
from src.services.activity_logger import format_activity_message
from src.services.issue_service import IssueService

logger = get_logger(__name__)

router = APIRouter()


class CreateIssueRequest(IssueCreate):
    """Issue fields plus the creation mode."""

    strict: bool = Field(default=True, description="Require every field of the full creation form")


class BulkDeleteRequest(BaseModel):
    issue_ids: list[str] = Field(..., description="Issues to delete together")


class BulkDeleteResponse(BaseModel):
    deleted: int


class ActivityItem(IssueActivity):
    """Activity row with its rendered message."""

    message: str


class ActivityPageResponse(BaseModel):
    items: list[ActivityItem]
    has_more: bool
    next_cursor: Optional[str] = None


@router.post("/teams/{team_id}/issues", response_model=Issue, status_code=status.HTTP_201_CREATED)
async def create_issue(
    team_id: str,
    request: CreateIssueRequest,
    actor_id: str = Depends(get_actor_id),
    issue_service: IssueService = Depends(get_issue_service),
) -> Issue:
    """Create an issue; the strict mode reports every missing field at once."""
    fields = IssueCreate(**request.model_dump(exclude={"strict"}))
    return await issue_service.create_issue(team_id, fields, actor_id, strict=request.strict)


@router.patch("/teams/{team_id}/issues/{issue_id}", response_model=Issue)
async def update_issue(
    team_id: str,
    issue_id: str,
    patch: IssuePatch,
    actor_id: str = Depends(get_actor_id),
    issue_service: IssueService = Depends(get_issue_service),
) -> Issue:
    """
    Apply a list of field changes.

    While the issue is in Review only `workflow_state` and `reviewer`
    changes are accepted.
    """
    return await issue_service.update_issue(team_id, issue_id, patch, actor_id)


@router.delete("/teams/{team_id}/issues/{issue_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_issue(
    team_id: str,
    issue_id: str,
    actor_id: str = Depends(get_actor_id),
    issue_service: IssueService = Depends(get_issue_service),
) -> Response:
    """Delete an issue (owners and admins only)."""
    await issue_service.delete_issue(team_id, issue_id, actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/teams/{team_id}/issues/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_issues(
    team_id: str,
    request: BulkDeleteRequest,
    actor_id: str = Depends(get_actor_id),
    issue_service: IssueService = Depends(get_issue_service),
) -> BulkDeleteResponse:
    """Delete several issues atomically (owners and admins only)."""
    deleted = await issue_service.delete_issues(team_id, request.issue_ids, actor_id)
    return BulkDeleteResponse(deleted=deleted)


@router.get("/teams/{team_id}/issues/{issue_id}/activities", response_model=ActivityPageResponse)
async def list_activities(
    team_id: str,
    issue_id: str,
    cursor: Optional[str] = Query(default=None),
    limit: int = Query(default=DEFAULT_PAGE_SIZE),
    actor_id: str = Depends(get_actor_id),
    issue_service: IssueService = Depends(get_issue_service),
) -> ActivityPageResponse:
    """Newest-first activity of an issue."""
    page = await issue_service.list_activity(team_id, issue_id, actor_id, cursor=cursor, limit=limit)
    return ActivityPageResponse(
        items=[
            ActivityItem(**a.model_dump(), message=format_activity_message(a))
            for a in page.items
        ],
        has_more=page.has_more,
        next_cursor=page.next_cursor,
    )
