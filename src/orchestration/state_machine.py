"""
State machine over workflow stage types.

Rules are keyed on the semantic type of a stage, never on a stage id, so a
team may have several stages of one type.
"""

from typing import Optional

from src.core.constants import WorkflowStateType
from src.core.exceptions import StateViolationError
from src.core.logging import get_logger

logger = get_logger(__name__)

T = WorkflowStateType


class StateMachine:
    """
    Generic state machine.
    """

    def __init__(
        self,
        states: list[str],
        transitions: dict[str, list[str]],
    ) -> None:
        """
        Initialize the state machine.

        Args:
            states: List of valid states
            transitions: Valid transitions {from_state: [to_states]}
        """
        self.states = set(states)
        self.transitions = transitions

        for source, targets in transitions.items():
            unknown = [s for s in [source, *targets] if s not in self.states]
            if unknown:
                raise ValueError(f"Transition from '{source}' names unknown states {unknown}")

    def can_transition(self, from_state: str, to_state: str) -> bool:
        """Check if transition is valid."""
        return to_state in self.transitions.get(from_state, [])

    def get_next_states(self, current_state: str) -> list[str]:
        """Get valid next states from current state."""
        return self.transitions.get(current_state, [])


# Every type may move to every type, except that Done is only reachable
# from Review. Same-type moves (between two stages of one type) are allowed.
ISSUE_STATE_TYPES = [t.value for t in WorkflowStateType]

ISSUE_TRANSITIONS: dict[str, list[str]] = {
    source.value: [
        target.value
        for target in WorkflowStateType
        if target != T.COMPLETED or source == T.REVIEW
    ]
    for source in WorkflowStateType
}


def create_issue_state_machine() -> StateMachine:
    """Create the state machine for issue stages."""
    return StateMachine(
        states=ISSUE_STATE_TYPES,
        transitions=ISSUE_TRANSITIONS,
    )


class IssueTransitionRules:
    """
    Checks stage-type transitions against the issue state machine.
    """

    def __init__(self, machine: Optional[StateMachine] = None) -> None:
        self.machine = machine or create_issue_state_machine()

    def check(self, from_type: WorkflowStateType, to_type: WorkflowStateType) -> None:
        """
        Raises:
            StateViolationError: If the move is not allowed
        """
        if self.machine.can_transition(from_type.value, to_type.value):
            return

        allowed = self.machine.get_next_states(from_type.value)
        logger.info("Transition rejected", from_type=from_type.value, to_type=to_type.value)
        if to_type == T.COMPLETED:
            raise StateViolationError(
                f"Issues can only be completed from Review (current stage type: {from_type.value})",
                rule="review_required",
                details={"from_type": from_type.value, "to_type": to_type.value, "allowed_types": allowed},
            )
        raise StateViolationError(
            f"Cannot move an issue from {from_type.value} to {to_type.value}",
            rule="transition_not_allowed",
            details={"from_type": from_type.value, "to_type": to_type.value, "allowed_types": allowed},
        )

    def check_creation(self, to_type: WorkflowStateType) -> None:
        """New issues may start anywhere except Review and Done."""
        if to_type in (T.REVIEW, T.COMPLETED):
            raise StateViolationError(
                f"Issues cannot be created directly in a {to_type.value} stage",
                rule="invalid_initial_stage",
                details={"to_type": to_type.value},
            )

    @staticmethod
    def is_entering_review(from_type: WorkflowStateType, to_type: WorkflowStateType) -> bool:
        return from_type != T.REVIEW and to_type == T.REVIEW

    @staticmethod
    def is_leaving_review(from_type: WorkflowStateType, to_type: WorkflowStateType) -> bool:
        return from_type == T.REVIEW and to_type != T.REVIEW
