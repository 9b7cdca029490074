"""
Issue and workflow stage domain models.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from src.core.clock import utcnow
from src.core.constants import Difficulty, Priority, WorkflowStateType


class WorkflowState(BaseModel):
    """A named pipeline stage belonging to a team."""

    id: str = Field(..., description="Workflow state identifier")
    team_id: str = Field(..., description="Owning team")
    name: str = Field(..., description="Display name, e.g. 'In Progress'")
    type: WorkflowStateType = Field(..., description="Semantic category driving the rules")
    color: str = Field(default="#64748b")
    position: int = Field(default=0, description="Board order within the team")


class IssueAssignee(BaseModel):
    """An assignee with the display name cached at assignment time."""

    user_id: str
    user_name: str


class Issue(BaseModel):
    """The unit of work."""

    id: str = Field(..., description="Team-scoped unique identifier")
    team_id: str = Field(..., description="Owning team")
    number: int = Field(..., ge=1, description="Team-scoped display number")

    title: str = Field(..., description="Issue title")
    description: Optional[str] = Field(default=None)
    priority: Priority = Field(default=Priority.NONE)
    difficulty: Optional[Difficulty] = Field(default=None, description="S/M/L size tier")
    estimate: Optional[int] = Field(default=None)
    due_date: Optional[date] = Field(default=None)

    assignees: list[IssueAssignee] = Field(
        default_factory=list, description="Ordered set of assignees"
    )
    parent_id: Optional[str] = Field(default=None, description="Parent issue for sub-issues")

    workflow_state_id: str = Field(..., description="Current stage")
    reviewed_at: Optional[datetime] = Field(
        default=None, description="When the issue last entered Review"
    )
    reviewer_id: Optional[str] = Field(default=None)
    reviewer: Optional[str] = Field(default=None, description="Reviewer display name")
    completed_at: Optional[datetime] = Field(default=None)

    project_id: Optional[str] = Field(default=None)
    label_ids: list[str] = Field(default_factory=list)

    creator_id: str
    creator: str

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def primary_assignee(self) -> Optional[IssueAssignee]:
        """First assignee, kept for clients that read a single assignee."""
        return self.assignees[0] if self.assignees else None

    @property
    def assignee_ids(self) -> list[str]:
        """Assignee user ids in assignment order."""
        return [a.user_id for a in self.assignees]

    def touch(self, when: datetime) -> None:
        """Mark the issue as modified."""
        self.updated_at = when


class IssueCreate(BaseModel):
    """Fields accepted when creating an issue.

    Everything is optional at the type level so that the strict creation
    path can report every missing field at once.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Priority = Priority.NONE
    difficulty: Optional[Difficulty] = None
    estimate: Optional[int] = None
    due_date: Optional[date] = None
    assignee_ids: list[str] = Field(default_factory=list)
    label_ids: list[str] = Field(default_factory=list)
    project_id: Optional[str] = None
    parent_id: Optional[str] = None
    workflow_state_id: Optional[str] = None
