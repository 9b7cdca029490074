"""
Unit tests for issue creation and number allocation.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from src.core.constants import ActivityAction
from src.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DatabaseError,
    StateViolationError,
    TeamMemberNotFoundError,
    ValidationError,
)
from src.domain.issue import IssueCreate
from src.repositories.base import IssueStore
from src.services.issue_service import IssueService


class ConflictingStore(IssueStore):
    """Wraps a store and fails the first `conflicts` commits with a serialization error."""

    def __init__(self, inner: IssueStore, conflicts: int) -> None:
        self.inner = inner
        self.conflicts = conflicts
        self.attempts = 0

    @asynccontextmanager
    async def transaction(self):
        self.attempts += 1
        async with self.inner.transaction() as tx:
            yield tx
            if self.conflicts > 0:
                self.conflicts -= 1
                raise DatabaseError("could not serialize access", retryable=True)


def conflicting_service(store, identity, clock, conflicts: int) -> IssueService:
    return IssueService(
        store=ConflictingStore(store, conflicts),
        identity=identity,
        clock=clock,
        serialization_retries=2,
    )


@pytest.mark.asyncio
async def test_strict_create_reports_every_missing_field(service, seed) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service.create_issue(seed.team_id, IssueCreate(title="  "), seed.dev)

    assert exc_info.value.details["fields"] == [
        "title",
        "workflow_state",
        "assignees",
        "due_date",
        "labels",
        "difficulty",
    ]
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_quick_create_lands_in_default_stage(service, seed) -> None:
    issue = await service.create_issue(
        seed.team_id, IssueCreate(title="Quick note"), seed.dev, strict=False
    )

    assert issue.workflow_state_id == seed.todo
    assert issue.number == 1
    assert issue.assignees == []
    assert issue.creator == "Dana Dev"


@pytest.mark.asyncio
async def test_numbers_increase_per_team(make_issue) -> None:
    first = await make_issue()
    second = await make_issue(title="Second")

    assert (first.number, second.number) == (1, 2)


@pytest.mark.asyncio
async def test_concurrent_creates_get_distinct_numbers(make_issue) -> None:
    issues = await asyncio.gather(*(make_issue(title=f"Issue {n}") for n in range(6)))

    assert sorted(i.number for i in issues) == [1, 2, 3, 4, 5, 6]


@pytest.mark.asyncio
async def test_serialization_conflict_is_retried(store, identity, clock, seed) -> None:
    service = conflicting_service(store, identity, clock, conflicts=2)

    issue = await service.create_issue(seed.team_id, IssueCreate(title="Retry me"), seed.dev, strict=False)

    assert issue.number == 1
    assert service.store.attempts == 3
    page = await service.list_activity(seed.team_id, issue.id, seed.dev)
    assert [a.action for a in page.items] == [ActivityAction.CREATED]


@pytest.mark.asyncio
async def test_serialization_retries_are_bounded(store, identity, clock, seed) -> None:
    service = conflicting_service(store, identity, clock, conflicts=5)

    with pytest.raises(DatabaseError) as exc_info:
        await service.create_issue(seed.team_id, IssueCreate(title="Retry me"), seed.dev, strict=False)

    assert exc_info.value.retryable
    assert service.store.attempts == 3
    async with store.transaction() as tx:
        assert await tx.list_issues(seed.team_id) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("stage", ["wfs_review", "wfs_done"])
async def test_cannot_create_in_review_or_done(make_issue, stage) -> None:
    with pytest.raises(StateViolationError) as exc_info:
        await make_issue(workflow_state_id=stage)

    assert exc_info.value.rule == "invalid_initial_stage"


@pytest.mark.asyncio
async def test_assignees_are_normalized(make_issue, seed) -> None:
    issue = await make_issue(assignee_ids=[" u_dev ", "unassigned", "u_dev", "u_dev2"])

    assert issue.assignee_ids == [seed.dev, seed.other_dev]
    assert [a.user_name for a in issue.assignees] == ["Dana Dev", "Sam Second"]


@pytest.mark.asyncio
async def test_non_member_assignees_are_listed(make_issue, seed) -> None:
    with pytest.raises(TeamMemberNotFoundError) as exc_info:
        await make_issue(assignee_ids=[seed.dev, seed.outsider, "u_ghost"])

    assert exc_info.value.details["user_ids"] == [seed.outsider, "u_ghost"]


@pytest.mark.asyncio
async def test_labels_must_belong_to_the_project(make_issue, seed) -> None:
    with pytest.raises(ValidationError):
        await make_issue(label_ids=[seed.label_api])


@pytest.mark.asyncio
async def test_creator_must_be_a_member(make_issue, seed) -> None:
    with pytest.raises(AuthorizationError):
        await make_issue(actor=seed.outsider)

    with pytest.raises(AuthenticationError):
        await make_issue(actor="   ")


@pytest.mark.asyncio
async def test_creation_is_logged_once(service, make_issue, seed) -> None:
    issue = await make_issue()

    page = await service.list_activity(seed.team_id, issue.id, seed.dev)

    assert [a.action for a in page.items] == [ActivityAction.CREATED]
    assert page.items[0].metadata == {"title": issue.title, "number": 1}


@pytest.mark.asyncio
async def test_failed_create_consumes_no_number(make_issue, seed) -> None:
    with pytest.raises(TeamMemberNotFoundError):
        await make_issue(assignee_ids=[seed.outsider])

    issue = await make_issue()
    assert issue.number == 1
