"""
Parent/child integrity checks.
"""

from typing import Optional

from src.core.exceptions import StructuralIntegrityError
from src.core.logging import get_logger
from src.repositories.base import StoreSession

logger = get_logger(__name__)


def find_cycle(
    edges: dict[str, Optional[str]],
    issue_id: str,
    new_parent_id: str,
) -> Optional[list[str]]:
    """
    Walk the ancestor chain of `new_parent_id` in `edges` (issue -> parent).

    Returns the path from the new parent up to `issue_id` if linking the two
    would close a cycle, else None. Each issue is visited at most once, so
    the walk ends even if the stored graph is already corrupt.
    """
    path: list[str] = []
    seen: set[str] = set()
    current: Optional[str] = new_parent_id
    while current is not None and current not in seen:
        path.append(current)
        if current == issue_id:
            return path
        seen.add(current)
        current = edges.get(current)
    return None


class HierarchyValidator:
    """Rejects self-parenting and parent links that would form a cycle."""

    async def validate_parent(
        self,
        tx: StoreSession,
        team_id: str,
        issue_id: str,
        new_parent_id: Optional[str],
    ) -> None:
        """
        Raises:
            StructuralIntegrityError: On self-parenting or a cycle
        """
        if new_parent_id is None:
            return

        if new_parent_id == issue_id:
            raise StructuralIntegrityError(
                "An issue cannot be its own parent",
                issue_id=issue_id,
                parent_id=new_parent_id,
            )

        # One round trip, then the walk runs in memory
        edges = await tx.parent_edges(team_id)
        cycle = find_cycle(edges, issue_id, new_parent_id)
        if cycle is not None:
            logger.info("Parent cycle rejected", issue_id=issue_id, parent_id=new_parent_id, path=cycle)
            raise StructuralIntegrityError(
                f"Setting parent '{new_parent_id}' would make issue '{issue_id}' its own ancestor",
                issue_id=issue_id,
                parent_id=new_parent_id,
            )
