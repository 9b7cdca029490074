"""
Service layer implementations.
"""

from src.services.activity_logger import ActivityLogger, format_activity_message
from src.services.closure_analytics import ClosureAnalyticsService, aggregate_closures
from src.services.hierarchy import HierarchyValidator
from src.services.identity import IdentityResolver, InMemoryIdentityResolver, SqlIdentityResolver
from src.services.issue_service import IssueService
from src.services.project_service import ProjectService
from src.services.sequence import SequenceAllocator

__all__ = [
    "ActivityLogger",
    "format_activity_message",
    "ClosureAnalyticsService",
    "aggregate_closures",
    "HierarchyValidator",
    "IdentityResolver",
    "InMemoryIdentityResolver",
    "SqlIdentityResolver",
    "IssueService",
    "ProjectService",
    "SequenceAllocator",
]
