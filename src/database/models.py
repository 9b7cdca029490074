"""SQLAlchemy models for teams, stages, issues and the activity log."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.core.clock import utcnow
from src.core.constants import (
    ActivityAction,
    Difficulty,
    Priority,
    TeamRole,
    WorkflowStateType,
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TeamDB(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(32), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class TeamMemberDB(Base):
    """Team membership; also the user directory for display names."""

    __tablename__ = "team_members"

    team_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[TeamRole] = mapped_column(Enum(TeamRole), nullable=False)


class WorkflowStateDB(Base):
    __tablename__ = "workflow_states"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[WorkflowStateType] = mapped_column(Enum(WorkflowStateType), nullable=False)
    color: Mapped[str] = mapped_column(String(32), default="#64748b")
    position: Mapped[int] = mapped_column(Integer, default=0)


class ProjectDB(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    lead_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    lead: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class LabelDB(Base):
    __tablename__ = "labels"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)


class IssueDB(Base):
    """Issue row. Assignees and labels are replaced as whole sets, so they
    are stored as JSON columns on the row itself."""

    __tablename__ = "issues"
    __table_args__ = (
        UniqueConstraint("team_id", "number", name="uq_issues_team_number"),
        Index("ix_issues_team_state", "team_id", "workflow_state_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[Priority] = mapped_column(Enum(Priority), default=Priority.NONE)
    difficulty: Mapped[Optional[Difficulty]] = mapped_column(Enum(Difficulty), nullable=True)
    estimate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    assignees: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    parent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    workflow_state_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("workflow_states.id"), nullable=False
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    reviewer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reviewer: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    project_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    label_ids: Mapped[list[str]] = mapped_column(JSON, default=list)

    creator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    creator: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class IssueActivityDB(Base):
    """Append-only activity row. No foreign key to issues: rows outlive the
    issue they describe."""

    __tablename__ = "issue_activities"
    __table_args__ = (Index("ix_activities_issue_created", "issue_id", "created_at"),)

    # Insertion order, used as the pagination tie breaker
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    issue_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[ActivityAction] = mapped_column(Enum(ActivityAction), nullable=False)
    field: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
