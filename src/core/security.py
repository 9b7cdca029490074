"""
Identifier generation and actor extraction.
"""

import secrets
from typing import Optional

from src.core.exceptions import AuthenticationError


def _token(prefix: str, nbytes: int = 12) -> str:
    return f"{prefix}_{secrets.token_hex(nbytes)}"


def generate_issue_id() -> str:
    """Generate a unique issue ID (prefixed with 'iss_')."""
    return _token("iss")


def generate_activity_id() -> str:
    """Generate a unique activity ID (prefixed with 'act_')."""
    return _token("act")


def generate_project_id() -> str:
    """Generate a unique project ID (prefixed with 'prj_')."""
    return _token("prj")


def generate_label_id() -> str:
    """Generate a unique label ID (prefixed with 'lbl_')."""
    return _token("lbl")


def generate_state_id() -> str:
    """Generate a unique workflow state ID (prefixed with 'wfs_')."""
    return _token("wfs")


def generate_request_id() -> str:
    """Generate a unique request ID for tracing (prefixed with 'req_')."""
    return _token("req", 8)


def require_actor(user_id: Optional[str]) -> str:
    """
    Validate the acting user id taken from the request.

    Session handling lives in front of this service; all we need is a
    non-empty user id.

    Raises:
        AuthenticationError: If no user id was supplied
    """
    if user_id is None or not user_id.strip():
        raise AuthenticationError("Missing acting user id")
    return user_id.strip()
