"""
Unit tests for the stage-type state machine.
"""

import pytest

from src.core.constants import WorkflowStateType as T
from src.core.exceptions import StateViolationError
from src.orchestration.state_machine import (
    IssueTransitionRules,
    StateMachine,
    create_issue_state_machine,
)


def test_done_only_reachable_from_review() -> None:
    machine = create_issue_state_machine()

    for source in T:
        expected = source == T.REVIEW
        assert machine.can_transition(source.value, T.COMPLETED.value) is expected


def test_every_other_move_is_allowed() -> None:
    machine = create_issue_state_machine()

    for source in T:
        for target in T:
            if target == T.COMPLETED:
                continue
            assert machine.can_transition(source.value, target.value)


def test_rejects_unknown_states_in_transitions() -> None:
    with pytest.raises(ValueError):
        StateMachine(
            states=["a", "b"],
            transitions={"a": ["c"]},
        )


def test_started_to_done_names_the_review_rule() -> None:
    rules = IssueTransitionRules()

    with pytest.raises(StateViolationError) as exc_info:
        rules.check(T.STARTED, T.COMPLETED)

    assert exc_info.value.rule == "review_required"
    assert exc_info.value.status_code == 409


def test_creation_cannot_start_in_review_or_done() -> None:
    rules = IssueTransitionRules()

    rules.check_creation(T.BACKLOG)
    rules.check_creation(T.STARTED)
    for target in (T.REVIEW, T.COMPLETED):
        with pytest.raises(StateViolationError):
            rules.check_creation(target)


def test_review_boundaries() -> None:
    assert IssueTransitionRules.is_entering_review(T.STARTED, T.REVIEW)
    assert not IssueTransitionRules.is_entering_review(T.REVIEW, T.REVIEW)
    assert IssueTransitionRules.is_leaving_review(T.REVIEW, T.CANCELED)
    assert not IssueTransitionRules.is_leaving_review(T.STARTED, T.CANCELED)


def test_rejection_lists_the_allowed_stage_types() -> None:
    rules = IssueTransitionRules()

    with pytest.raises(StateViolationError) as exc_info:
        rules.check(T.STARTED, T.COMPLETED)

    allowed = exc_info.value.details["allowed_types"]
    assert "completed" not in allowed
    assert "review" in allowed
    assert "completed" in create_issue_state_machine().get_next_states("review")
