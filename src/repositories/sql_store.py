"""
SQLAlchemy-backed store (SQLite via aiosqlite, PostgreSQL via asyncpg).
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, nullcontext
from typing import Any, AsyncIterator, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.core.exceptions import DatabaseError
from src.core.logging import get_logger
from src.database.config import init_db, is_sqlite
from src.database.models import (
    IssueActivityDB,
    IssueDB,
    LabelDB,
    ProjectDB,
    TeamDB,
    WorkflowStateDB,
)
from src.domain.activity import IssueActivity
from src.domain.issue import Issue, IssueAssignee, WorkflowState
from src.domain.team import Label, Project, Team
from src.repositories.base import IssueStore, StoreSession

logger = get_logger(__name__)

# serialization_failure and deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def _issue_from_row(row: IssueDB) -> Issue:
    return Issue(
        id=row.id,
        team_id=row.team_id,
        number=row.number,
        title=row.title,
        description=row.description,
        priority=row.priority,
        difficulty=row.difficulty,
        estimate=row.estimate,
        due_date=row.due_date,
        assignees=[IssueAssignee(**a) for a in row.assignees or []],
        parent_id=row.parent_id,
        workflow_state_id=row.workflow_state_id,
        reviewed_at=row.reviewed_at,
        reviewer_id=row.reviewer_id,
        reviewer=row.reviewer,
        completed_at=row.completed_at,
        project_id=row.project_id,
        label_ids=list(row.label_ids or []),
        creator_id=row.creator_id,
        creator=row.creator,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _sqlstate(error: DBAPIError) -> Optional[str]:
    return getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)


def _issue_columns(issue: Issue) -> dict[str, Any]:
    data = issue.model_dump(exclude={"primary_assignee"})
    data["assignees"] = [a.model_dump() for a in issue.assignees]
    data["label_ids"] = list(issue.label_ids)
    return data


def _activity_from_row(row: IssueActivityDB) -> IssueActivity:
    return IssueActivity(
        id=row.id,
        issue_id=row.issue_id,
        user_id=row.user_id,
        user_name=row.user_name,
        action=row.action,
        field=row.field,
        old_value=row.old_value,
        new_value=row.new_value,
        metadata=row.meta,
        created_at=row.created_at,
        sequence=row.sequence,
    )


def _state_from_row(row: WorkflowStateDB) -> WorkflowState:
    return WorkflowState(
        id=row.id,
        team_id=row.team_id,
        name=row.name,
        type=row.type,
        color=row.color,
        position=row.position,
    )


def _project_from_row(row: ProjectDB) -> Project:
    return Project(
        id=row.id,
        team_id=row.team_id,
        name=row.name,
        key=row.key,
        description=row.description,
        color=row.color,
        icon=row.icon,
        lead_id=row.lead_id,
        lead=row.lead,
        created_at=row.created_at,
    )


def _label_from_row(row: LabelDB) -> Label:
    return Label(id=row.id, project_id=row.project_id, name=row.name, color=row.color)


class SqlStoreSession(StoreSession):
    """
    Store session over one SQLAlchemy `AsyncSession` transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_team(self, team_id: str) -> Optional[Team]:
        row = await self.session.get(TeamDB, team_id)
        if row is None:
            return None
        return Team(id=row.id, name=row.name, key=row.key, created_at=row.created_at)

    async def insert_team(self, team: Team) -> Team:
        self.session.add(TeamDB(**team.model_dump()))
        await self.session.flush()
        return team

    async def list_workflow_states(self, team_id: str) -> list[WorkflowState]:
        result = await self.session.execute(
            select(WorkflowStateDB)
            .where(WorkflowStateDB.team_id == team_id)
            .order_by(WorkflowStateDB.position, WorkflowStateDB.id)
        )
        return [_state_from_row(r) for r in result.scalars()]

    async def insert_workflow_state(self, state: WorkflowState) -> WorkflowState:
        self.session.add(WorkflowStateDB(**state.model_dump()))
        await self.session.flush()
        return state

    async def update_workflow_state(self, state: WorkflowState) -> WorkflowState:
        row = await self.session.get(WorkflowStateDB, state.id)
        if row is None:
            raise DatabaseError("Workflow state vanished", details={"state_id": state.id})
        for key, value in state.model_dump().items():
            setattr(row, key, value)
        await self.session.flush()
        return state

    async def get_issue(self, team_id: str, issue_id: str) -> Optional[Issue]:
        row = await self.session.get(IssueDB, issue_id)
        if row is None or row.team_id != team_id:
            return None
        return _issue_from_row(row)

    async def insert_issue(self, issue: Issue) -> Issue:
        self.session.add(IssueDB(**_issue_columns(issue)))
        await self.session.flush()
        return issue

    async def save_issue(self, issue: Issue) -> Issue:
        row = await self.session.get(IssueDB, issue.id)
        if row is None:
            raise DatabaseError("Issue vanished", details={"issue_id": issue.id})
        for key, value in _issue_columns(issue).items():
            setattr(row, key, value)
        await self.session.flush()
        return issue

    async def delete_issue(self, team_id: str, issue_id: str) -> bool:
        row = await self.session.get(IssueDB, issue_id)
        if row is None or row.team_id != team_id:
            return False
        await self.session.delete(row)
        await self.session.flush()
        return True

    async def max_issue_number(self, team_id: str) -> int:
        result = await self.session.execute(
            select(func.max(IssueDB.number)).where(IssueDB.team_id == team_id)
        )
        return result.scalar() or 0

    async def parent_edges(self, team_id: str) -> dict[str, Optional[str]]:
        result = await self.session.execute(
            select(IssueDB.id, IssueDB.parent_id).where(IssueDB.team_id == team_id)
        )
        return {issue_id: parent_id for issue_id, parent_id in result.all()}

    async def list_issues(
        self,
        team_id: str,
        state_ids: Optional[list[str]] = None,
        project_id: Optional[str] = None,
    ) -> list[Issue]:
        query = select(IssueDB).where(IssueDB.team_id == team_id)
        if state_ids is not None:
            query = query.where(IssueDB.workflow_state_id.in_(state_ids))
        if project_id is not None:
            query = query.where(IssueDB.project_id == project_id)
        result = await self.session.execute(query.order_by(IssueDB.number))
        return [_issue_from_row(r) for r in result.scalars()]

    async def list_children(self, team_id: str, issue_id: str) -> list[Issue]:
        result = await self.session.execute(
            select(IssueDB).where(IssueDB.team_id == team_id, IssueDB.parent_id == issue_id)
        )
        return [_issue_from_row(r) for r in result.scalars()]

    async def insert_activity(self, activity: IssueActivity) -> IssueActivity:
        row = IssueActivityDB(
            id=activity.id,
            issue_id=activity.issue_id,
            user_id=activity.user_id,
            user_name=activity.user_name,
            action=activity.action,
            field=activity.field,
            old_value=activity.old_value,
            new_value=activity.new_value,
            meta=activity.metadata,
            created_at=activity.created_at,
        )
        self.session.add(row)
        await self.session.flush()
        return activity.model_copy(update={"sequence": row.sequence})

    async def get_activity(self, activity_id: str) -> Optional[IssueActivity]:
        result = await self.session.execute(
            select(IssueActivityDB).where(IssueActivityDB.id == activity_id)
        )
        row = result.scalar_one_or_none()
        return _activity_from_row(row) if row else None

    async def list_activities(
        self,
        issue_id: str,
        before: Optional[IssueActivity] = None,
        limit: int = 50,
    ) -> list[IssueActivity]:
        query = select(IssueActivityDB).where(IssueActivityDB.issue_id == issue_id)
        if before is not None:
            query = query.where(
                or_(
                    IssueActivityDB.created_at < before.created_at,
                    and_(
                        IssueActivityDB.created_at == before.created_at,
                        IssueActivityDB.sequence < before.sequence,
                    ),
                )
            )
        query = query.order_by(
            IssueActivityDB.created_at.desc(), IssueActivityDB.sequence.desc()
        ).limit(limit)
        result = await self.session.execute(query)
        return [_activity_from_row(r) for r in result.scalars()]

    async def get_project(self, team_id: str, project_id: str) -> Optional[Project]:
        row = await self.session.get(ProjectDB, project_id)
        if row is None or row.team_id != team_id:
            return None
        return _project_from_row(row)

    async def insert_project(self, project: Project) -> Project:
        self.session.add(ProjectDB(**project.model_dump()))
        await self.session.flush()
        return project

    async def list_labels(self, project_id: str) -> list[Label]:
        result = await self.session.execute(
            select(LabelDB).where(LabelDB.project_id == project_id).order_by(LabelDB.name)
        )
        return [_label_from_row(r) for r in result.scalars()]

    async def get_labels(self, label_ids: list[str]) -> list[Label]:
        if not label_ids:
            return []
        result = await self.session.execute(select(LabelDB).where(LabelDB.id.in_(label_ids)))
        found = {r.id: _label_from_row(r) for r in result.scalars()}
        return [found[i] for i in label_ids if i in found]

    async def insert_label(self, label: Label) -> Label:
        self.session.add(LabelDB(**label.model_dump()))
        await self.session.flush()
        return label


class SqlStore(IssueStore):
    """
    Store over a SQLAlchemy async engine.

    SQLite allows one writer at a time, so transactions on it are
    serialized in-process as well.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory
        self._sqlite = is_sqlite(str(engine.url))
        self._write_lock = asyncio.Lock() if self._sqlite else None

    async def init(self) -> None:
        await init_db(self.engine)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        guard = self._write_lock if self._write_lock is not None else nullcontext()
        async with guard:
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        yield SqlStoreSession(session)
                except IntegrityError as e:
                    logger.warning("Integrity violation, transaction rolled back", error=str(e.orig))
                    raise DatabaseError(str(e.orig), details={"kind": "integrity"}) from e
                except DBAPIError as e:
                    sqlstate = _sqlstate(e)
                    if sqlstate in RETRYABLE_SQLSTATES:
                        logger.info("Serialization conflict, transaction rolled back", sqlstate=sqlstate)
                        raise DatabaseError(
                            str(e.orig), details={"kind": "serialization"}, retryable=True
                        ) from e
                    if isinstance(e, OperationalError):
                        logger.error("Database operation failed", error=str(e.orig))
                        raise DatabaseError(str(e.orig), details={"kind": "operational"}) from e
                    raise

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Database connections closed")
