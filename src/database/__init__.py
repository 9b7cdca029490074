"""Database layer for the tracker."""

from src.database.config import create_engine, create_session_factory, init_db
from src.database.models import (
    Base,
    IssueActivityDB,
    IssueDB,
    LabelDB,
    ProjectDB,
    TeamDB,
    TeamMemberDB,
    WorkflowStateDB,
)

__all__ = [
    "create_engine",
    "create_session_factory",
    "init_db",
    "Base",
    "TeamDB",
    "TeamMemberDB",
    "WorkflowStateDB",
    "ProjectDB",
    "LabelDB",
    "IssueDB",
    "IssueActivityDB",
]
