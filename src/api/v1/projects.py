"""
Project and team stage setup endpoints.
"""

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from src.api.deps import get_actor_id, get_project_service
from src.domain.issue import WorkflowState
from src.domain.team import Project
from src.services.project_service import ProjectService

router = APIRouter()


class ReviewStateResponse(BaseModel):
    message: str
    state: WorkflowState


@router.post(
    "/teams/{team_id}/projects/{project_id}/duplicate",
    response_model=Project,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_project(
    team_id: str,
    project_id: str,
    actor_id: str = Depends(get_actor_id),
    project_service: ProjectService = Depends(get_project_service),
) -> Project:
    """Copy a project with its labels and issues."""
    return await project_service.duplicate_project(team_id, project_id, actor_id)


@router.post("/teams/{team_id}/add-review-state", response_model=ReviewStateResponse)
async def add_review_state(
    team_id: str,
    response: Response,
    actor_id: str = Depends(get_actor_id),
    project_service: ProjectService = Depends(get_project_service),
) -> ReviewStateResponse:
    """Add the Review stage before Done. Returns 201 when created, 200 if it already existed."""
    state, created = await project_service.ensure_review_state(team_id, actor_id)
    if created:
        response.status_code = status.HTTP_201_CREATED
        return ReviewStateResponse(message="Review state added successfully", state=state)
    return ReviewStateResponse(message="Review state already exists", state=state)
