"""
Activity log domain models.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.core.clock import utcnow
from src.core.constants import ActivityAction


class IssueActivity(BaseModel):
    """Immutable record of one accepted mutation."""

    model_config = ConfigDict(frozen=True)

    id: str
    issue_id: str
    user_id: str = Field(..., description="Acting user")
    user_name: str = Field(..., description="Acting user's display name")
    action: ActivityAction
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    # Insertion order, breaks created_at ties when paginating
    sequence: int = Field(default=0)


class ActivityPage(BaseModel):
    """One page of an issue's activity, newest first."""

    items: list[IssueActivity] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None
