"""
Unit tests for the activity log: pagination and rendering.
"""

from datetime import datetime

import pytest

from src.core.constants import MAX_PAGE_SIZE, ActivityAction
from src.core.exceptions import ValidationError
from src.domain.activity import IssueActivity
from src.domain.patch import IssuePatch, TitleChange
from src.services.activity_logger import format_activity_message, stringify


@pytest.fixture
async def busy_issue(service, make_issue, seed, clock):
    """Issue with one creation entry and five title edits."""
    issue = await make_issue()
    for n in range(5):
        clock.advance(minutes=1)
        await service.update_issue(
            seed.team_id, issue.id, IssuePatch.of(TitleChange(value=f"Title {n}")), seed.dev
        )
    return issue


@pytest.mark.asyncio
async def test_pages_newest_first(service, busy_issue, seed) -> None:
    first = await service.list_activity(seed.team_id, busy_issue.id, seed.dev, limit=4)

    assert [a.new_value for a in first.items] == ["Title 4", "Title 3", "Title 2", "Title 1"]
    assert first.has_more is True
    assert first.next_cursor == first.items[-1].id

    second = await service.list_activity(
        seed.team_id, busy_issue.id, seed.dev, cursor=first.next_cursor, limit=4
    )

    assert [a.action for a in second.items] == [ActivityAction.UPDATED, ActivityAction.CREATED]
    assert second.has_more is False
    assert second.next_cursor is None


@pytest.mark.asyncio
async def test_same_timestamp_keeps_insertion_order(service, make_issue, seed) -> None:
    issue = await make_issue()
    await service.update_issue(seed.team_id, issue.id, IssuePatch.of(TitleChange(value="A")), seed.dev)
    await service.update_issue(seed.team_id, issue.id, IssuePatch.of(TitleChange(value="B")), seed.dev)

    page = await service.list_activity(seed.team_id, issue.id, seed.dev, limit=1)
    rest = await service.list_activity(seed.team_id, issue.id, seed.dev, cursor=page.next_cursor)

    assert page.items[0].new_value == "B"
    assert [a.new_value for a in rest.items] == ["A", None]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit, expected", [(0, 1), (-5, 1), (MAX_PAGE_SIZE + 50, 6)])
async def test_limit_is_clamped(service, busy_issue, seed, limit, expected) -> None:
    page = await service.list_activity(seed.team_id, busy_issue.id, seed.dev, limit=limit)

    assert len(page.items) == expected


@pytest.mark.asyncio
async def test_cursor_from_another_issue_rejected(service, busy_issue, make_issue, seed) -> None:
    other = await make_issue(title="Other")
    foreign = await service.list_activity(seed.team_id, other.id, seed.dev)

    with pytest.raises(ValidationError):
        await service.list_activity(seed.team_id, busy_issue.id, seed.dev, cursor=foreign.items[0].id)


def make_activity(action: ActivityAction, **kwargs) -> IssueActivity:
    return IssueActivity(
        id="act_1",
        issue_id="iss_1",
        user_id="u_rev",
        user_name="Riley",
        action=action,
        created_at=datetime(2025, 1, 6),
        **kwargs,
    )


@pytest.mark.parametrize(
    "activity, message",
    [
        (make_activity(ActivityAction.CREATED), "Riley created this issue"),
        (
            make_activity(ActivityAction.UPDATED, field="title", old_value="a", new_value="b"),
            'Riley changed title from "a" to "b"',
        ),
        (
            make_activity(ActivityAction.UPDATED, field="difficulty", old_value="S", new_value="L"),
            "Riley changed estimated size from S to L",
        ),
        (
            make_activity(ActivityAction.UPDATED, field="due_date", new_value="2025-02-01"),
            "Riley changed due date from none to 2025-02-01",
        ),
        (
            make_activity(ActivityAction.SENT_TO_REVIEW, metadata={"reviewer": "Sam"}),
            "Riley sent for review to Sam",
        ),
        (make_activity(ActivityAction.APPROVED, new_value="Done"), "Riley approved and closed this issue"),
        (
            make_activity(ActivityAction.SENT_BACK, new_value="Todo", metadata={"reason": "Add tests please"}),
            "Riley sent back to Todo: Add tests please",
        ),
        (
            make_activity(ActivityAction.REASSIGNED, field="reviewer", old_value="Riley", new_value="Sam"),
            "Riley reassigned the review from Riley to Sam",
        ),
        (make_activity(ActivityAction.PARENT_CHANGED), "Riley removed parent issue"),
    ],
)
def test_format_activity_message(activity: IssueActivity, message: str) -> None:
    assert format_activity_message(activity) == message


def test_stringify() -> None:
    assert stringify(None) is None
    assert stringify(ActivityAction.APPROVED) == "approved"
    assert stringify(datetime(2025, 1, 6, 9, 30)) == "2025-01-06T09:30:00"
    assert stringify(["lbl_a", "lbl_b"]) == '["lbl_a", "lbl_b"]'
    assert stringify(3) == "3"
