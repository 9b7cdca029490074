"""
Closure analytics ("AEP summary").

A read-only projection over issues currently in a Done stage: per assignee,
how many were closed, split by difficulty tier and by timeliness.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from src.core.clock import to_date
from src.core.constants import Difficulty, TeamRole, WorkflowStateType
from src.core.exceptions import AuthorizationError, NotFoundError
from src.core.logging import get_logger
from src.core.security import require_actor
from src.domain.issue import Issue
from src.domain.summary import AepUserSummary
from src.repositories.base import IssueStore
from src.services.identity import IdentityResolver

logger = get_logger(__name__)

_TIER_FIELD = {
    Difficulty.S: "s_closed",
    Difficulty.M: "m_closed",
    Difficulty.L: "l_closed",
}


def delivered_at(issue: Issue) -> datetime:
    """
    When the assignees handed the work over.

    The Review entry time when there is one, so delay added by the reviewer
    is not charged to the assignee. Legacy issues that never passed Review
    fall back to the completion time, then to the last modification.
    """
    return issue.reviewed_at or issue.completed_at or issue.updated_at


def is_legacy_closure(issue: Issue) -> bool:
    """Closed without a recorded Review, i.e. before the Review gate existed."""
    return issue.reviewed_at is None


def aggregate_closures(
    issues: Iterable[Issue],
    user_id: Optional[str] = None,
) -> list[AepUserSummary]:
    """
    Fold closed issues into per-assignee rows.

    Every assignee gets full credit for the issue; nothing is split. The
    reviewer and the approver get no credit unless they are assignees.

    Args:
        issues: Issues currently in a Done stage
        user_id: Only count this assignee

    Returns:
        Rows sorted by total closed, descending, then by name
    """
    rows: dict[str, AepUserSummary] = {}

    for issue in issues:
        due = issue.due_date
        on_time: Optional[bool] = None
        if due is not None:
            on_time = to_date(delivered_at(issue)) <= due

        for assignee in issue.assignees:
            if user_id is not None and assignee.user_id != user_id:
                continue

            row = rows.get(assignee.user_id)
            if row is None:
                row = AepUserSummary(user_id=assignee.user_id, user_name=assignee.user_name)
                rows[assignee.user_id] = row

            row.total_closed += 1
            if issue.difficulty is not None:
                tier = _TIER_FIELD[issue.difficulty]
                setattr(row, tier, getattr(row, tier) + 1)
            if on_time is True:
                row.on_time_closed += 1
            elif on_time is False:
                row.delayed_closed += 1

    return sorted(rows.values(), key=lambda r: (-r.total_closed, r.user_name.lower(), r.user_id))


class ClosureAnalyticsService:
    """
    Computes closure summaries from current issue state. Nothing is cached.
    """

    def __init__(self, store: IssueStore, identity: IdentityResolver) -> None:
        self.store = store
        self.identity = identity

    async def summarize(
        self,
        team_id: str,
        project_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[AepUserSummary]:
        """
        Per-user closure counts for a team.

        Args:
            team_id: Team to summarize
            project_id: Only issues of this project
            user_id: Only this assignee

        Returns:
            Summary rows; empty when the team has no Done stage
        """
        async with self.store.transaction() as tx:
            if await tx.get_team(team_id) is None:
                raise NotFoundError("Team", team_id)

            done_ids = [
                s.id
                for s in await tx.list_workflow_states(team_id)
                if s.type == WorkflowStateType.COMPLETED
            ]
            if not done_ids:
                logger.debug("Team has no Done stage", team_id=team_id)
                return []

            issues = await tx.list_issues(team_id, state_ids=done_ids, project_id=project_id)

        legacy = sum(1 for i in issues if is_legacy_closure(i))
        summary = aggregate_closures(issues, user_id=user_id)
        logger.info(
            "Closure summary computed",
            team_id=team_id,
            project_id=project_id,
            closed_issues=len(issues),
            legacy_issues=legacy,
            users=len(summary),
        )
        return summary

    async def get_closure_summary(
        self,
        team_id: str,
        actor_id: Optional[str],
        project_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[AepUserSummary]:
        """`summarize` for a team member."""
        actor = require_actor(actor_id)
        if await self.identity.role_of(team_id, actor) == TeamRole.NONE:
            raise AuthorizationError(
                "You are not a member of this team", action="team_access", user_id=actor
            )
        return await self.summarize(team_id, project_id=project_id, user_id=user_id)
