"""
Base store interfaces.

Every service operation runs inside one `IssueStore.transaction()`; the
yielded `StoreSession` is the only way to read or write tracker data, so a
failure anywhere in the block discards every write made through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Optional

from src.domain.activity import IssueActivity
from src.domain.issue import Issue, WorkflowState
from src.domain.team import Label, Project, Team


class StoreSession(ABC):
    """
    Data access inside one transaction.
    """

    # -- teams -----------------------------------------------------------

    @abstractmethod
    async def get_team(self, team_id: str) -> Optional[Team]:
        """Get a team by ID."""
        ...

    @abstractmethod
    async def insert_team(self, team: Team) -> Team:
        """Insert a team."""
        ...

    # -- workflow states -------------------------------------------------

    @abstractmethod
    async def list_workflow_states(self, team_id: str) -> list[WorkflowState]:
        """List a team's stages ordered by position."""
        ...

    @abstractmethod
    async def insert_workflow_state(self, state: WorkflowState) -> WorkflowState:
        """Insert a stage."""
        ...

    @abstractmethod
    async def update_workflow_state(self, state: WorkflowState) -> WorkflowState:
        """Persist a changed stage."""
        ...

    # -- issues ----------------------------------------------------------

    @abstractmethod
    async def get_issue(self, team_id: str, issue_id: str) -> Optional[Issue]:
        """Get an issue, scoped to its team."""
        ...

    @abstractmethod
    async def insert_issue(self, issue: Issue) -> Issue:
        """Insert an issue. Duplicate (team_id, number) pairs are rejected."""
        ...

    @abstractmethod
    async def save_issue(self, issue: Issue) -> Issue:
        """Persist a changed issue."""
        ...

    @abstractmethod
    async def delete_issue(self, team_id: str, issue_id: str) -> bool:
        """Delete an issue. Its activity rows are kept."""
        ...

    @abstractmethod
    async def max_issue_number(self, team_id: str) -> int:
        """Highest number allocated in the team, 0 when it has no issues."""
        ...

    @abstractmethod
    async def parent_edges(self, team_id: str) -> dict[str, Optional[str]]:
        """Map of issue id to parent id for every issue of the team."""
        ...

    @abstractmethod
    async def list_issues(
        self,
        team_id: str,
        state_ids: Optional[list[str]] = None,
        project_id: Optional[str] = None,
    ) -> list[Issue]:
        """List a team's issues, optionally limited to stages and a project."""
        ...

    @abstractmethod
    async def list_children(self, team_id: str, issue_id: str) -> list[Issue]:
        """Direct children of an issue."""
        ...

    # -- activity --------------------------------------------------------

    @abstractmethod
    async def insert_activity(self, activity: IssueActivity) -> IssueActivity:
        """Append an activity row; the returned copy carries its sequence."""
        ...

    @abstractmethod
    async def get_activity(self, activity_id: str) -> Optional[IssueActivity]:
        """Get one activity row."""
        ...

    @abstractmethod
    async def list_activities(
        self,
        issue_id: str,
        before: Optional[IssueActivity] = None,
        limit: int = 50,
    ) -> list[IssueActivity]:
        """
        List an issue's activity newest first.

        Args:
            issue_id: Issue whose log is read
            before: Only rows strictly older than this one
            limit: Maximum rows returned
        """
        ...

    # -- projects and labels ---------------------------------------------

    @abstractmethod
    async def get_project(self, team_id: str, project_id: str) -> Optional[Project]:
        """Get a project, scoped to its team."""
        ...

    @abstractmethod
    async def insert_project(self, project: Project) -> Project:
        """Insert a project."""
        ...

    @abstractmethod
    async def list_labels(self, project_id: str) -> list[Label]:
        """List a project's labels."""
        ...

    @abstractmethod
    async def get_labels(self, label_ids: list[str]) -> list[Label]:
        """Get the labels that exist among `label_ids`."""
        ...

    @abstractmethod
    async def insert_label(self, label: Label) -> Label:
        """Insert a label."""
        ...


class IssueStore(ABC):
    """
    Transaction boundary over the persistent store.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreSession]:
        """
        Open a transaction.

        The block commits when it exits normally; any exception, including
        cancellation, rolls back every write made through the session.
        """
        ...

    async def init(self) -> None:
        """Prepare the backing storage (create tables etc.)."""

    async def close(self) -> None:
        """Release connections."""
