"""
Workflow rules for issue stages.
"""

from src.orchestration.state_machine import (
    ISSUE_TRANSITIONS,
    IssueTransitionRules,
    StateMachine,
    create_issue_state_machine,
)

__all__ = [
    "StateMachine",
    "ISSUE_TRANSITIONS",
    "IssueTransitionRules",
    "create_issue_state_machine",
]
