"""
Unit tests for structured issue patches.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.domain.patch import (
    AssigneesChange,
    IssuePatch,
    PatchField,
    ReviewerChange,
    TitleChange,
    WorkflowStateChange,
)


def test_parses_tagged_changes_from_json() -> None:
    patch = IssuePatch.model_validate(
        {
            "changes": [
                {"field": "title", "value": "New title"},
                {"field": "workflow_state", "state_id": "wfs_review"},
                {"field": "reviewer", "reviewer_id": "u_rev"},
            ]
        }
    )

    assert patch.field_tags == [PatchField.TITLE, PatchField.WORKFLOW_STATE, PatchField.REVIEWER]
    assert isinstance(patch.get(PatchField.TITLE), TitleChange)


def test_unknown_field_tag_is_rejected() -> None:
    with pytest.raises(PydanticValidationError):
        IssuePatch.model_validate({"changes": [{"field": "assignee_override", "value": "x"}]})


def test_only_stage_and_reviewer_pass_the_lock() -> None:
    allowed = IssuePatch.of(
        WorkflowStateChange(state_id="wfs_done"),
        ReviewerChange(reviewer_id="u_rev"),
    )
    blocked = IssuePatch.of(
        TitleChange(value="x"),
        WorkflowStateChange(state_id="wfs_done"),
        AssigneesChange(user_ids=["u_dev"]),
        TitleChange(value="y"),
    )

    assert allowed.blocked_while_locked() == []
    assert blocked.blocked_while_locked() == ["title", "assignees"]


def test_get_returns_last_change_for_a_field() -> None:
    patch = IssuePatch.of(TitleChange(value="first"), TitleChange(value="second"))

    assert patch.get(PatchField.TITLE).value == "second"
    assert patch.get(PatchField.DUE_DATE) is None
    assert IssuePatch().is_empty()
