"""
Structured issue patches.

A patch is a list of field changes drawn from a closed tagged union. The
Review lock is checked against the tags, so a change the union cannot
express can never slip past it.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from src.core.constants import Difficulty, Priority


class PatchField(str, Enum):
    """Tags of the field changes an issue patch can carry."""

    TITLE = "title"
    DESCRIPTION = "description"
    PRIORITY = "priority"
    DIFFICULTY = "difficulty"
    ESTIMATE = "estimate"
    DUE_DATE = "due_date"
    ASSIGNEES = "assignees"
    LABELS = "labels"
    PROJECT = "project"
    PARENT = "parent"
    WORKFLOW_STATE = "workflow_state"
    REVIEWER = "reviewer"


# The only changes accepted while an issue sits in Review
LOCKED_ALLOWED_FIELDS = frozenset({PatchField.WORKFLOW_STATE, PatchField.REVIEWER})


class TitleChange(BaseModel):
    field: Literal[PatchField.TITLE] = PatchField.TITLE
    value: str


class DescriptionChange(BaseModel):
    field: Literal[PatchField.DESCRIPTION] = PatchField.DESCRIPTION
    value: Optional[str] = None


class PriorityChange(BaseModel):
    field: Literal[PatchField.PRIORITY] = PatchField.PRIORITY
    value: Priority


class DifficultyChange(BaseModel):
    field: Literal[PatchField.DIFFICULTY] = PatchField.DIFFICULTY
    value: Optional[Difficulty] = None


class EstimateChange(BaseModel):
    field: Literal[PatchField.ESTIMATE] = PatchField.ESTIMATE
    value: Optional[int] = None


class DueDateChange(BaseModel):
    field: Literal[PatchField.DUE_DATE] = PatchField.DUE_DATE
    value: Optional[date] = None


class AssigneesChange(BaseModel):
    """Replace the assignee set."""

    field: Literal[PatchField.ASSIGNEES] = PatchField.ASSIGNEES
    user_ids: list[str] = Field(default_factory=list)


class LabelsChange(BaseModel):
    """Replace the label set."""

    field: Literal[PatchField.LABELS] = PatchField.LABELS
    label_ids: list[str] = Field(default_factory=list)


class ProjectChange(BaseModel):
    field: Literal[PatchField.PROJECT] = PatchField.PROJECT
    project_id: Optional[str] = None


class ParentChange(BaseModel):
    field: Literal[PatchField.PARENT] = PatchField.PARENT
    parent_id: Optional[str] = None


class WorkflowStateChange(BaseModel):
    """Move the issue to another stage; `reason` is read when leaving Review."""

    field: Literal[PatchField.WORKFLOW_STATE] = PatchField.WORKFLOW_STATE
    state_id: str
    reason: Optional[str] = None


class ReviewerChange(BaseModel):
    """Set the reviewer when entering Review, or reassign it while in Review."""

    field: Literal[PatchField.REVIEWER] = PatchField.REVIEWER
    reviewer_id: str


FieldChange = Annotated[
    Union[
        TitleChange,
        DescriptionChange,
        PriorityChange,
        DifficultyChange,
        EstimateChange,
        DueDateChange,
        AssigneesChange,
        LabelsChange,
        ProjectChange,
        ParentChange,
        WorkflowStateChange,
        ReviewerChange,
    ],
    Field(discriminator="field"),
]


class IssuePatch(BaseModel):
    """A set of field changes applied atomically to one issue."""

    changes: list[FieldChange] = Field(default_factory=list)

    @classmethod
    def of(cls, *changes: BaseModel) -> "IssuePatch":
        return cls(changes=list(changes))

    @property
    def field_tags(self) -> list[PatchField]:
        return [c.field for c in self.changes]

    def get(self, field: PatchField) -> Optional[BaseModel]:
        """Last change for `field`, if any."""
        found = None
        for change in self.changes:
            if change.field == field:
                found = change
        return found

    def blocked_while_locked(self) -> list[str]:
        """Tags of the changes the Review lock rejects, in patch order."""
        blocked: list[str] = []
        for change in self.changes:
            if change.field not in LOCKED_ALLOWED_FIELDS and change.field.value not in blocked:
                blocked.append(change.field.value)
        return blocked

    def is_empty(self) -> bool:
        return not self.changes
