"""
Custom exception hierarchy for the ReviewGate tracker.
Provides structured error handling with proper HTTP status codes.
"""

from typing import Any, Optional


class IssueTrackerError(Exception):
    """Base exception for all tracker errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(IssueTrackerError):
    """Request validation failed."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        errors: Optional[list[str]] = None,
    ) -> None:
        details = dict(details or {})
        if errors:
            details["errors"] = errors
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )
        self.errors = errors or [message]


# =============================================================================
# Authentication/Authorization Errors (401, 403)
# =============================================================================


class AuthenticationError(IssueTrackerError):
    """No acting user could be identified."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            message=message,
            code="AUTHENTICATION_REQUIRED",
            status_code=401,
        )


class AuthorizationError(IssueTrackerError):
    """Authorization failed - insufficient role or relationship."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        action: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        details: dict[str, Any] = {}
        if action:
            details["action"] = action
        if user_id:
            details["user_id"] = user_id
        super().__init__(
            message=message,
            code="AUTHORIZATION_FAILED",
            details=details,
            status_code=403,
        )


# =============================================================================
# Not Found Errors (404)
# =============================================================================


class NotFoundError(IssueTrackerError):
    """Requested resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        msg = message or f"{resource_type} not found"
        if resource_id and not message:
            msg = f"{resource_type} with ID '{resource_id}' not found"

        super().__init__(
            message=msg,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )


class IssueNotFoundError(NotFoundError):
    """Issue not found in the given team."""

    def __init__(self, issue_id: str) -> None:
        super().__init__(resource_type="Issue", resource_id=issue_id)
        self.code = "ISSUE_NOT_FOUND"


class TeamMemberNotFoundError(NotFoundError):
    """One or more users are not members of the team."""

    def __init__(self, team_id: str, user_ids: list[str]) -> None:
        super().__init__(
            resource_type="TeamMember",
            resource_id=", ".join(user_ids),
            message=f"Users not found in team '{team_id}': {', '.join(user_ids)}",
        )
        self.details["user_ids"] = user_ids
        self.code = "TEAM_MEMBER_NOT_FOUND"


# =============================================================================
# Workflow Errors (409, 423)
# =============================================================================


class StateViolationError(IssueTrackerError):
    """Illegal workflow transition or review rule violation."""

    def __init__(
        self,
        message: str,
        rule: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            code="STATE_VIOLATION",
            details={"rule": rule, **(details or {})},
            status_code=409,
        )
        self.rule = rule


class LockViolationError(IssueTrackerError):
    """Mutation attempted on a Review-locked issue outside the allowed fields."""

    def __init__(self, issue_id: str, fields: list[str]) -> None:
        super().__init__(
            message=(
                "Issue is locked while in Review; only the stage and the reviewer "
                f"can change (blocked: {', '.join(fields)})"
            ),
            code="LOCK_VIOLATION",
            details={"issue_id": issue_id, "fields": fields},
            status_code=423,
        )
        self.fields = fields


class StructuralIntegrityError(IssueTrackerError):
    """Parent/child relation would become cyclic."""

    def __init__(self, message: str, issue_id: str, parent_id: Optional[str]) -> None:
        super().__init__(
            message=message,
            code="STRUCTURAL_INTEGRITY",
            details={"issue_id": issue_id, "parent_id": parent_id},
            status_code=409,
        )


# =============================================================================
# External Service Errors (502)
# =============================================================================


class DatabaseError(IssueTrackerError):
    """Error communicating with the database."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(
            message=f"Database error: {message}",
            code="DATABASE_ERROR",
            details={"service": "Database", **(details or {})},
            status_code=502,
        )
        self.retryable = retryable


# =============================================================================
# Timeout Errors (504)
# =============================================================================


class TimeoutError(IssueTrackerError):
    """Operation timed out."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(
            message=f"Operation '{operation}' timed out after {timeout_seconds} seconds",
            code="TIMEOUT",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            status_code=504,
        )
