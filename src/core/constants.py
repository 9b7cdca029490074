"""
System-wide constants for the ReviewGate tracker.
"""

from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class WorkflowStateType(str, Enum):
    """Semantic stage categories that drive every workflow rule."""

    BACKLOG = "backlog"
    UNSTARTED = "unstarted"
    STARTED = "started"
    REVIEW = "review"
    COMPLETED = "completed"
    CANCELED = "canceled"


class Priority(str, Enum):
    """Issue priority levels."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Difficulty(str, Enum):
    """Difficulty tiers (estimated size)."""

    S = "S"
    M = "M"
    L = "L"


class TeamRole(str, Enum):
    """Roles a user can hold inside a team."""

    OWNER = "owner"
    ADMIN = "admin"
    DEVELOPER = "developer"
    NONE = "none"


class ActivityAction(str, Enum):
    """Kinds of entries in the issue activity log."""

    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    REASSIGNED = "reassigned"
    SENT_TO_REVIEW = "sent_to_review"
    APPROVED = "approved"
    SENT_BACK = "sent_back"
    PARENT_CHANGED = "parent_changed"
    LABELS_CHANGED = "labels_changed"


class ReviewDecision(str, Enum):
    """Decisions a reviewer can take on an issue in Review."""

    APPROVE = "approve"
    SEND_BACK = "send_back"
    REASSIGN = "reassign"


# Roles allowed to delete issues and to decide on any review
ELEVATED_ROLES = frozenset({TeamRole.OWNER, TeamRole.ADMIN})

# Stage types a review can send an issue back to
SEND_BACK_TYPES = frozenset({WorkflowStateType.UNSTARTED, WorkflowStateType.STARTED})

# Placeholder ids some clients send instead of an empty assignee list
UNASSIGNED_SENTINELS = frozenset({"", "unassigned"})

# =============================================================================
# API Constants
# =============================================================================

API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"

# Activity pagination
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

ACTOR_HEADER = "X-User-Id"
REQUEST_ID_HEADER = "X-Request-Id"

# =============================================================================
# Workflow Constants
# =============================================================================

DEFAULT_MIN_REJECTION_REASON_LENGTH = 10
DEFAULT_BULK_TRANSACTION_TIMEOUT_SECONDS = 30

REVIEW_STATE_NAME = "Review"
REVIEW_STATE_COLOR = "#f59e0b"
REVIEW_STATE_DEFAULT_POSITION = 3

DEFAULT_PROJECT_COLOR = "#6366f1"
DEFAULT_LABEL_COLOR = "#64748b"

COPY_NAME_SUFFIX = " (Copy)"
COPY_KEY_SUFFIX = "-COPY"

# =============================================================================
# Cache Keys
# =============================================================================

CACHE_PREFIX = "reviewgate"
TEAM_EXISTS_CACHE_KEY = f"{CACHE_PREFIX}:team:{{team_id}}:exists"
