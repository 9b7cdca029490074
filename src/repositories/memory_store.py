"""
In-memory store for development and testing.
"""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from src.core.exceptions import DatabaseError
from src.core.logging import get_logger
from src.domain.activity import IssueActivity
from src.domain.issue import Issue, WorkflowState
from src.domain.team import Label, Project, Team
from src.repositories.base import IssueStore, StoreSession

logger = get_logger(__name__)


@dataclass
class _Tables:
    teams: dict[str, Team] = field(default_factory=dict)
    states: dict[str, WorkflowState] = field(default_factory=dict)
    issues: dict[str, Issue] = field(default_factory=dict)
    activities: list[IssueActivity] = field(default_factory=list)
    projects: dict[str, Project] = field(default_factory=dict)
    labels: dict[str, Label] = field(default_factory=dict)
    activity_seq: int = 0


class InMemoryStoreSession(StoreSession):
    """
    Session over the in-memory tables. Models are copied on the way in and
    out so callers never alias stored rows.
    """

    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def get_team(self, team_id: str) -> Optional[Team]:
        team = self._t.teams.get(team_id)
        return team.model_copy() if team else None

    async def insert_team(self, team: Team) -> Team:
        self._t.teams[team.id] = team.model_copy()
        return team

    async def list_workflow_states(self, team_id: str) -> list[WorkflowState]:
        states = [s.model_copy() for s in self._t.states.values() if s.team_id == team_id]
        states.sort(key=lambda s: s.position)
        return states

    async def insert_workflow_state(self, state: WorkflowState) -> WorkflowState:
        self._t.states[state.id] = state.model_copy()
        return state

    async def update_workflow_state(self, state: WorkflowState) -> WorkflowState:
        self._t.states[state.id] = state.model_copy()
        return state

    async def get_issue(self, team_id: str, issue_id: str) -> Optional[Issue]:
        issue = self._t.issues.get(issue_id)
        if issue is None or issue.team_id != team_id:
            return None
        return issue.model_copy(deep=True)

    async def insert_issue(self, issue: Issue) -> Issue:
        for existing in self._t.issues.values():
            if existing.team_id == issue.team_id and existing.number == issue.number:
                raise DatabaseError(
                    "Duplicate issue number",
                    details={"team_id": issue.team_id, "number": issue.number},
                )
        self._t.issues[issue.id] = issue.model_copy(deep=True)
        return issue

    async def save_issue(self, issue: Issue) -> Issue:
        self._t.issues[issue.id] = issue.model_copy(deep=True)
        return issue

    async def delete_issue(self, team_id: str, issue_id: str) -> bool:
        issue = self._t.issues.get(issue_id)
        if issue is None or issue.team_id != team_id:
            return False
        del self._t.issues[issue_id]
        return True

    async def max_issue_number(self, team_id: str) -> int:
        return max(
            (i.number for i in self._t.issues.values() if i.team_id == team_id),
            default=0,
        )

    async def parent_edges(self, team_id: str) -> dict[str, Optional[str]]:
        return {i.id: i.parent_id for i in self._t.issues.values() if i.team_id == team_id}

    async def list_issues(
        self,
        team_id: str,
        state_ids: Optional[list[str]] = None,
        project_id: Optional[str] = None,
    ) -> list[Issue]:
        issues = [i for i in self._t.issues.values() if i.team_id == team_id]
        if state_ids is not None:
            wanted = set(state_ids)
            issues = [i for i in issues if i.workflow_state_id in wanted]
        if project_id is not None:
            issues = [i for i in issues if i.project_id == project_id]
        issues.sort(key=lambda i: i.number)
        return [i.model_copy(deep=True) for i in issues]

    async def list_children(self, team_id: str, issue_id: str) -> list[Issue]:
        return [
            i.model_copy(deep=True)
            for i in self._t.issues.values()
            if i.team_id == team_id and i.parent_id == issue_id
        ]

    async def insert_activity(self, activity: IssueActivity) -> IssueActivity:
        self._t.activity_seq += 1
        stored = activity.model_copy(update={"sequence": self._t.activity_seq})
        self._t.activities.append(stored)
        return stored

    async def get_activity(self, activity_id: str) -> Optional[IssueActivity]:
        for activity in self._t.activities:
            if activity.id == activity_id:
                return activity
        return None

    async def list_activities(
        self,
        issue_id: str,
        before: Optional[IssueActivity] = None,
        limit: int = 50,
    ) -> list[IssueActivity]:
        rows = [a for a in self._t.activities if a.issue_id == issue_id]
        if before is not None:
            cutoff = (before.created_at, before.sequence)
            rows = [a for a in rows if (a.created_at, a.sequence) < cutoff]
        rows.sort(key=lambda a: (a.created_at, a.sequence), reverse=True)
        return rows[:limit]

    async def get_project(self, team_id: str, project_id: str) -> Optional[Project]:
        project = self._t.projects.get(project_id)
        if project is None or project.team_id != team_id:
            return None
        return project.model_copy()

    async def insert_project(self, project: Project) -> Project:
        self._t.projects[project.id] = project.model_copy()
        return project

    async def list_labels(self, project_id: str) -> list[Label]:
        return [lbl.model_copy() for lbl in self._t.labels.values() if lbl.project_id == project_id]

    async def get_labels(self, label_ids: list[str]) -> list[Label]:
        return [self._t.labels[i].model_copy() for i in label_ids if i in self._t.labels]

    async def insert_label(self, label: Label) -> Label:
        self._t.labels[label.id] = label.model_copy()
        return label


class InMemoryStore(IssueStore):
    """
    In-memory store. Transactions are serialized by a lock; a snapshot taken
    at the start of each one is restored if the block raises.
    """

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        async with self._lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                yield InMemoryStoreSession(self._tables)
            except BaseException:
                self._tables = snapshot
                logger.debug("In-memory transaction rolled back")
                raise

    async def close(self) -> None:
        logger.info("In-memory store closed")
