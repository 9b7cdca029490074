"""
Unit tests for the Review gate: entering Review, decisions and the lock.
"""

import pytest

from src.core.constants import ActivityAction, ReviewDecision
from src.core.exceptions import (
    AuthorizationError,
    LockViolationError,
    StateViolationError,
    ValidationError,
)
from src.domain.patch import (
    AssigneesChange,
    IssuePatch,
    LabelsChange,
    ReviewerChange,
    TitleChange,
    WorkflowStateChange,
)


def to_review(seed, reviewer_id=None) -> IssuePatch:
    return IssuePatch.of(
        WorkflowStateChange(state_id=seed.review),
        ReviewerChange(reviewer_id=reviewer_id or seed.reviewer),
    )


@pytest.fixture
async def in_review(service, make_issue, seed, clock):
    issue = await make_issue()
    clock.advance(hours=1)
    return await service.update_issue(seed.team_id, issue.id, to_review(seed), seed.dev)


async def actions(service, seed, issue_id) -> list[ActivityAction]:
    page = await service.list_activity(seed.team_id, issue_id, seed.dev)
    return [a.action for a in page.items]


# =============================================================================
# Entering Review
# =============================================================================


@pytest.mark.asyncio
async def test_started_cannot_jump_to_done(service, make_issue, seed) -> None:
    issue = await make_issue()

    with pytest.raises(StateViolationError) as exc_info:
        await service.update_issue(
            seed.team_id, issue.id, IssuePatch.of(WorkflowStateChange(state_id=seed.done)), seed.owner
        )

    assert exc_info.value.rule == "review_required"
    assert await actions(service, seed, issue.id) == [ActivityAction.CREATED]


@pytest.mark.asyncio
async def test_entering_review_requires_a_reviewer(service, make_issue, seed) -> None:
    issue = await make_issue()

    with pytest.raises(StateViolationError) as exc_info:
        await service.update_issue(
            seed.team_id, issue.id, IssuePatch.of(WorkflowStateChange(state_id=seed.review)), seed.dev
        )

    assert exc_info.value.rule == "reviewer_required"


@pytest.mark.asyncio
async def test_assignee_cannot_review_own_issue(service, make_issue, seed) -> None:
    issue = await make_issue(assignee_ids=[seed.dev, seed.other_dev])

    with pytest.raises(StateViolationError) as exc_info:
        await service.update_issue(seed.team_id, issue.id, to_review(seed, seed.other_dev), seed.dev)

    assert exc_info.value.rule == "self_review"


@pytest.mark.asyncio
async def test_entering_review_stamps_reviewed_at(in_review, service, seed, clock) -> None:
    assert in_review.workflow_state_id == seed.review
    assert in_review.reviewed_at == clock.now
    assert in_review.reviewer_id == seed.reviewer
    assert in_review.reviewer == "Riley Reviewer"
    assert in_review.completed_at is None

    page = await service.list_activity(seed.team_id, in_review.id, seed.dev)
    latest = page.items[0]
    assert latest.action == ActivityAction.SENT_TO_REVIEW
    assert latest.old_value == "In Progress"
    assert latest.metadata["reviewer_id"] == seed.reviewer


@pytest.mark.asyncio
async def test_reviewer_only_settable_around_review(service, make_issue, seed) -> None:
    issue = await make_issue()

    with pytest.raises(StateViolationError) as exc_info:
        await service.update_issue(
            seed.team_id, issue.id, IssuePatch.of(ReviewerChange(reviewer_id=seed.reviewer)), seed.dev
        )

    assert exc_info.value.rule == "reviewer_outside_review"


# =============================================================================
# Decisions
# =============================================================================


@pytest.mark.asyncio
async def test_reviewer_approves(in_review, service, seed, clock) -> None:
    entered_at = in_review.reviewed_at
    clock.advance(days=2)

    issue = await service.perform_review_decision(
        seed.team_id, in_review.id, seed.reviewer, ReviewDecision.APPROVE
    )

    assert issue.workflow_state_id == seed.done
    assert issue.completed_at == clock.now
    assert issue.reviewed_at == entered_at
    assert await actions(service, seed, issue.id) == [
        ActivityAction.APPROVED,
        ActivityAction.SENT_TO_REVIEW,
        ActivityAction.CREATED,
    ]


@pytest.mark.asyncio
async def test_admin_may_decide_any_review(in_review, service, seed) -> None:
    issue = await service.perform_review_decision(
        seed.team_id, in_review.id, seed.admin, ReviewDecision.APPROVE
    )

    assert issue.workflow_state_id == seed.done


@pytest.mark.asyncio
@pytest.mark.parametrize("actor", ["u_dev", "u_dev2"])
async def test_other_members_cannot_decide(in_review, service, seed, actor) -> None:
    with pytest.raises(AuthorizationError):
        await service.perform_review_decision(seed.team_id, in_review.id, actor, ReviewDecision.APPROVE)


@pytest.mark.asyncio
async def test_send_back_requires_a_reason(in_review, service, seed) -> None:
    with pytest.raises(StateViolationError) as exc_info:
        await service.perform_review_decision(
            seed.team_id, in_review.id, seed.reviewer, ReviewDecision.SEND_BACK, reason="nope"
        )

    assert exc_info.value.rule == "rejection_reason_required"
    assert exc_info.value.details["min_length"] == 10


@pytest.mark.asyncio
async def test_send_back_logs_the_reason(in_review, service, seed) -> None:
    reason = "Missing tests for the redirect"

    issue = await service.perform_review_decision(
        seed.team_id, in_review.id, seed.reviewer, ReviewDecision.SEND_BACK, reason=reason
    )

    assert issue.workflow_state_id == seed.todo
    assert issue.completed_at is None
    assert issue.reviewer_id is None

    page = await service.list_activity(seed.team_id, issue.id, seed.dev)
    assert page.items[0].action == ActivityAction.SENT_BACK
    assert page.items[0].metadata["reason"] == reason


@pytest.mark.asyncio
async def test_send_back_to_explicit_started_stage(in_review, service, seed) -> None:
    issue = await service.perform_review_decision(
        seed.team_id,
        in_review.id,
        seed.reviewer,
        ReviewDecision.SEND_BACK,
        target_state_id=seed.in_progress,
        reason="Please handle the 500 case",
    )

    assert issue.workflow_state_id == seed.in_progress


@pytest.mark.asyncio
async def test_send_back_target_must_be_todo_or_in_progress(in_review, service, seed) -> None:
    with pytest.raises(ValidationError):
        await service.perform_review_decision(
            seed.team_id,
            in_review.id,
            seed.reviewer,
            ReviewDecision.SEND_BACK,
            target_state_id=seed.done,
            reason="Please handle the 500 case",
        )


@pytest.mark.asyncio
async def test_reassign_reviewer(in_review, service, seed) -> None:
    issue = await service.perform_review_decision(
        seed.team_id, in_review.id, seed.reviewer, ReviewDecision.REASSIGN, reviewer_id=seed.other_dev
    )

    assert issue.workflow_state_id == seed.review
    assert issue.reviewer_id == seed.other_dev
    assert issue.reviewed_at == in_review.reviewed_at

    page = await service.list_activity(seed.team_id, issue.id, seed.dev)
    latest = page.items[0]
    assert latest.action == ActivityAction.REASSIGNED
    assert (latest.field, latest.old_value, latest.new_value) == ("reviewer", "Riley Reviewer", "Sam Second")


@pytest.mark.asyncio
async def test_reassign_to_assignee_is_rejected(in_review, service, seed) -> None:
    with pytest.raises(StateViolationError):
        await service.perform_review_decision(
            seed.team_id, in_review.id, seed.reviewer, ReviewDecision.REASSIGN, reviewer_id=seed.dev
        )


@pytest.mark.asyncio
async def test_decision_outside_review(service, make_issue, seed) -> None:
    issue = await make_issue()

    with pytest.raises(StateViolationError) as exc_info:
        await service.perform_review_decision(seed.team_id, issue.id, seed.owner, ReviewDecision.APPROVE)

    assert exc_info.value.rule == "not_in_review"


@pytest.mark.asyncio
async def test_resubmission_moves_reviewed_at(in_review, service, seed, clock) -> None:
    await service.perform_review_decision(
        seed.team_id, in_review.id, seed.reviewer, ReviewDecision.SEND_BACK, reason="Needs a changelog entry"
    )
    clock.advance(days=3)

    issue = await service.update_issue(seed.team_id, in_review.id, to_review(seed), seed.dev)

    assert issue.reviewed_at == clock.now
    assert issue.reviewed_at > in_review.reviewed_at


@pytest.mark.asyncio
async def test_reopening_clears_completed_at(in_review, service, seed) -> None:
    await service.perform_review_decision(seed.team_id, in_review.id, seed.reviewer, ReviewDecision.APPROVE)

    reopened = await service.update_issue(
        seed.team_id, in_review.id, IssuePatch.of(WorkflowStateChange(state_id=seed.in_progress)), seed.dev
    )

    assert reopened.completed_at is None
    assert reopened.reviewer_id is None
    with pytest.raises(StateViolationError):
        await service.update_issue(
            seed.team_id, in_review.id, IssuePatch.of(WorkflowStateChange(state_id=seed.done)), seed.dev
        )


# =============================================================================
# Review lock
# =============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "change, blocked",
    [
        (TitleChange(value="Sneaky rename"), ["title"]),
        (AssigneesChange(user_ids=["u_dev2"]), ["assignees"]),
        (LabelsChange(label_ids=["lbl_ui"]), ["labels"]),
    ],
)
async def test_locked_fields_rejected_even_for_owner(in_review, service, seed, change, blocked) -> None:
    with pytest.raises(LockViolationError) as exc_info:
        await service.update_issue(seed.team_id, in_review.id, IssuePatch.of(change), seed.owner)

    assert exc_info.value.fields == blocked
    assert exc_info.value.status_code == 423


@pytest.mark.asyncio
async def test_mixed_patch_is_rejected_whole(in_review, service, seed) -> None:
    patch = IssuePatch.of(
        TitleChange(value="Renamed"),
        WorkflowStateChange(state_id=seed.in_progress, reason="Reworking the approach"),
    )

    with pytest.raises(LockViolationError):
        await service.update_issue(seed.team_id, in_review.id, patch, seed.reviewer)

    assert await actions(service, seed, in_review.id) == [
        ActivityAction.SENT_TO_REVIEW,
        ActivityAction.CREATED,
    ]


@pytest.mark.asyncio
async def test_assignee_cannot_move_issue_out_of_review(in_review, service, seed) -> None:
    with pytest.raises(AuthorizationError):
        await service.update_issue(
            seed.team_id,
            in_review.id,
            IssuePatch.of(WorkflowStateChange(state_id=seed.todo, reason="Taking it back myself")),
            seed.dev,
        )


@pytest.mark.asyncio
async def test_reviewer_moves_issue_with_a_patch(in_review, service, seed) -> None:
    issue = await service.update_issue(
        seed.team_id,
        in_review.id,
        IssuePatch.of(WorkflowStateChange(state_id=seed.done)),
        seed.reviewer,
    )

    assert issue.workflow_state_id == seed.done
    assert issue.completed_at is not None


@pytest.mark.asyncio
async def test_reviewer_cancels_issue_in_review(in_review, service, seed) -> None:
    issue = await service.update_issue(
        seed.team_id,
        in_review.id,
        IssuePatch.of(WorkflowStateChange(state_id=seed.canceled)),
        seed.reviewer,
    )

    assert issue.workflow_state_id == seed.canceled
    assert issue.reviewer_id is None
    assert issue.reviewer is None
    assert issue.completed_at is None

    page = await service.list_activity(seed.team_id, in_review.id, seed.dev)
    latest = page.items[0]
    assert latest.action == ActivityAction.STATUS_CHANGED
    assert (latest.old_value, latest.new_value) == ("Review", "Canceled")
