"""
Append-only issue activity log.

Every helper writes through the caller's store session, so an activity row
exists only if the mutation it documents commits.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from src.core.clock import Clock, utcnow
from src.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, ActivityAction
from src.core.exceptions import ValidationError
from src.core.logging import get_logger
from src.core.security import generate_activity_id
from src.domain.activity import ActivityPage, IssueActivity
from src.domain.issue import Issue, WorkflowState
from src.domain.team import UserIdentity
from src.repositories.base import StoreSession

logger = get_logger(__name__)


def stringify(value: Any) -> Optional[str]:
    """Render a field value the way the log stores it."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def _names(values: list[str]) -> Optional[str]:
    return ", ".join(values) or None


class ActivityLogger:
    """
    Writes and reads the activity log.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or utcnow

    async def record(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        action: ActivityAction,
        field: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> IssueActivity:
        """Append exactly one activity row."""
        activity = IssueActivity(
            id=generate_activity_id(),
            issue_id=issue_id,
            user_id=actor.user_id,
            user_name=actor.display_name,
            action=action,
            field=field,
            old_value=old_value,
            new_value=new_value,
            metadata=metadata,
            created_at=self._clock(),
        )
        stored = await tx.insert_activity(activity)
        logger.debug(
            "Activity recorded",
            issue_id=issue_id,
            action=action.value,
            field=field,
            user_id=actor.user_id,
        )
        return stored

    async def log_created(self, tx: StoreSession, issue: Issue, actor: UserIdentity) -> IssueActivity:
        return await self.record(
            tx,
            issue.id,
            actor,
            ActivityAction.CREATED,
            metadata={"title": issue.title, "number": issue.number},
        )

    async def log_field_update(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        field: str,
        old_value: Any,
        new_value: Any,
    ) -> Optional[IssueActivity]:
        """Log a scalar field edit; returns None when both sides render equal."""
        old_str, new_str = stringify(old_value), stringify(new_value)
        if old_str == new_str:
            return None
        return await self.record(
            tx, issue_id, actor, ActivityAction.UPDATED, field=field, old_value=old_str, new_value=new_str
        )

    async def log_status_change(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        old_state: WorkflowState,
        new_state: WorkflowState,
    ) -> IssueActivity:
        return await self.record(
            tx,
            issue_id,
            actor,
            ActivityAction.STATUS_CHANGED,
            field="workflow_state",
            old_value=old_state.name,
            new_value=new_state.name,
            metadata={"old_state_id": old_state.id, "new_state_id": new_state.id},
        )

    async def log_assignment(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        previous_names: list[str],
        assignee_names: list[str],
    ) -> IssueActivity:
        action = ActivityAction.REASSIGNED if previous_names else ActivityAction.ASSIGNED
        return await self.record(
            tx,
            issue_id,
            actor,
            action,
            field="assignees",
            old_value=_names(previous_names),
            new_value=_names(assignee_names),
        )

    async def log_sent_to_review(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        from_state: WorkflowState,
        reviewer: UserIdentity,
    ) -> IssueActivity:
        return await self.record(
            tx,
            issue_id,
            actor,
            ActivityAction.SENT_TO_REVIEW,
            field="workflow_state",
            old_value=from_state.name,
            metadata={"reviewer": reviewer.display_name, "reviewer_id": reviewer.user_id},
        )

    async def log_approved(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        to_state: WorkflowState,
    ) -> IssueActivity:
        return await self.record(
            tx,
            issue_id,
            actor,
            ActivityAction.APPROVED,
            field="workflow_state",
            new_value=to_state.name,
            metadata={"new_state_id": to_state.id},
        )

    async def log_sent_back(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        to_state: WorkflowState,
        reason: str,
    ) -> IssueActivity:
        return await self.record(
            tx,
            issue_id,
            actor,
            ActivityAction.SENT_BACK,
            field="workflow_state",
            new_value=to_state.name,
            metadata={"reason": reason, "new_state_id": to_state.id},
        )

    async def log_reviewer_reassigned(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        previous: Optional[UserIdentity],
        reviewer: UserIdentity,
    ) -> IssueActivity:
        return await self.record(
            tx,
            issue_id,
            actor,
            ActivityAction.REASSIGNED,
            field="reviewer",
            old_value=previous.display_name if previous else None,
            new_value=reviewer.display_name,
            metadata={"reviewer": reviewer.display_name, "reviewer_id": reviewer.user_id},
        )

    async def log_parent_change(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        old_parent_id: Optional[str],
        new_parent_id: Optional[str],
    ) -> IssueActivity:
        return await self.record(
            tx,
            issue_id,
            actor,
            ActivityAction.PARENT_CHANGED,
            field="parent",
            old_value=old_parent_id,
            new_value=new_parent_id,
        )

    async def log_labels_change(
        self,
        tx: StoreSession,
        issue_id: str,
        actor: UserIdentity,
        old_label_ids: list[str],
        new_label_ids: list[str],
    ) -> IssueActivity:
        return await self.record(
            tx,
            issue_id,
            actor,
            ActivityAction.LABELS_CHANGED,
            field="labels",
            old_value=stringify(old_label_ids),
            new_value=stringify(new_label_ids),
        )

    async def list_activity(
        self,
        tx: StoreSession,
        issue_id: str,
        cursor: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ActivityPage:
        """
        Page through an issue's log, newest first.

        Args:
            tx: Store session
            issue_id: Issue whose log is read
            cursor: Id of the last activity of the previous page
            limit: Page size, clamped to [1, MAX_PAGE_SIZE]

        Raises:
            ValidationError: If the cursor does not name an activity of this issue
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        before = None
        if cursor:
            before = await tx.get_activity(cursor)
            if before is None or before.issue_id != issue_id:
                raise ValidationError("Unknown activity cursor", details={"cursor": cursor})

        rows = await tx.list_activities(issue_id, before=before, limit=limit + 1)
        has_more = len(rows) > limit
        items = rows[:limit]
        return ActivityPage(
            items=items,
            has_more=has_more,
            next_cursor=items[-1].id if has_more else None,
        )


def format_activity_message(activity: IssueActivity) -> str:
    """One-line, human readable description of an activity."""
    who = activity.user_name
    action = activity.action
    old = activity.old_value or "none"
    new = activity.new_value or "none"
    meta = activity.metadata or {}

    if action == ActivityAction.CREATED:
        return f"{who} created this issue"
    if action == ActivityAction.UPDATED:
        if activity.field == "title":
            return f'{who} changed title from "{activity.old_value}" to "{activity.new_value}"'
        if activity.field == "description":
            return f"{who} updated the description"
        if activity.field == "difficulty":
            return f"{who} changed estimated size from {old} to {new}"
        field = (activity.field or "a field").replace("_", " ")
        return f"{who} changed {field} from {old} to {new}"
    if action == ActivityAction.STATUS_CHANGED:
        return f"{who} changed status from {old} to {new}"
    if action == ActivityAction.ASSIGNED:
        return f"{who} assigned to {new}"
    if action == ActivityAction.REASSIGNED:
        if activity.field == "reviewer":
            return f"{who} reassigned the review from {old} to {new}"
        return f"{who} reassigned from {activity.old_value or 'unassigned'} to {new}"
    if action == ActivityAction.SENT_TO_REVIEW:
        reviewer = meta.get("reviewer")
        return f"{who} sent for review" + (f" to {reviewer}" if reviewer else "")
    if action == ActivityAction.APPROVED:
        return f"{who} approved and closed this issue"
    if action == ActivityAction.SENT_BACK:
        reason = meta.get("reason")
        return f"{who} sent back to {new}" + (f": {reason}" if reason else "")
    if action == ActivityAction.PARENT_CHANGED:
        if not activity.new_value:
            return f"{who} removed parent issue"
        return f"{who} set parent issue"
    if action == ActivityAction.LABELS_CHANGED:
        return f"{who} updated labels"
    return f"{who} performed {action.value}"
