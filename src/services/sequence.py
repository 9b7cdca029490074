"""
Team-scoped issue number allocation.
"""

from src.core.logging import get_logger
from src.repositories.base import StoreSession

logger = get_logger(__name__)


class SequenceAllocator:
    """
    Allocates the next display number of a team.

    Must run on the session that inserts the issue: the store serializes
    those transactions, so two creations can never read the same maximum.
    """

    async def next_number(self, tx: StoreSession, team_id: str) -> int:
        current = await tx.max_issue_number(team_id)
        number = current + 1
        logger.debug("Issue number allocated", team_id=team_id, number=number)
        return number
