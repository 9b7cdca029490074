"""
Team, membership, project and label domain models.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.core.clock import utcnow
from src.core.constants import DEFAULT_LABEL_COLOR, DEFAULT_PROJECT_COLOR, TeamRole


class Team(BaseModel):
    """A team owning issues, stages and projects."""

    id: str
    name: str
    key: str = Field(default="", description="Short prefix used in issue identifiers")
    created_at: datetime = Field(default_factory=utcnow)


class TeamMember(BaseModel):
    """Membership of a user in a team."""

    team_id: str
    user_id: str
    user_name: str
    role: TeamRole = Field(default=TeamRole.DEVELOPER)


class UserIdentity(BaseModel):
    """Resolved user for attribution."""

    user_id: str
    display_name: str


class Project(BaseModel):
    """Issue grouping inside a team; labels are scoped to it."""

    id: str
    team_id: str
    name: str
    key: str
    description: Optional[str] = None
    color: str = Field(default=DEFAULT_PROJECT_COLOR)
    icon: Optional[str] = None
    lead_id: Optional[str] = None
    lead: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Label(BaseModel):
    """Project-scoped tag."""

    id: str
    project_id: str
    name: str
    color: str = Field(default=DEFAULT_LABEL_COLOR)
