"""
Identity resolution: user display names and team roles.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.constants import TeamRole
from src.core.logging import get_logger
from src.database.models import TeamMemberDB
from src.domain.team import TeamMember, UserIdentity

logger = get_logger(__name__)


class IdentityResolver(ABC):
    """
    Team membership service and user directory.
    """

    @abstractmethod
    async def resolve_user(self, user_id: str) -> Optional[UserIdentity]:
        """Resolve a user id to a display name, None if unknown."""
        ...

    @abstractmethod
    async def role_of(self, team_id: str, user_id: str) -> TeamRole:
        """Role of the user in the team, TeamRole.NONE for non-members."""
        ...

    @abstractmethod
    async def add_member(self, member: TeamMember) -> TeamMember:
        """Register (or update) a team membership."""
        ...

    async def is_member(self, team_id: str, user_id: str) -> bool:
        return await self.role_of(team_id, user_id) != TeamRole.NONE

    async def missing_members(self, team_id: str, user_ids: Iterable[str]) -> list[str]:
        """Ids among `user_ids` that are not members of the team, in order."""
        missing = []
        for user_id in user_ids:
            if not await self.is_member(team_id, user_id):
                missing.append(user_id)
        return missing

    async def display_name(self, user_id: str) -> str:
        """Display name, falling back to the raw id for unknown users."""
        identity = await self.resolve_user(user_id)
        return identity.display_name if identity else user_id


class InMemoryIdentityResolver(IdentityResolver):
    """
    Dictionary-backed directory for development and tests.
    """

    def __init__(self, members: Optional[Iterable[TeamMember]] = None) -> None:
        self._roles: dict[tuple[str, str], TeamRole] = {}
        self._names: dict[str, str] = {}
        for member in members or []:
            self._store(member)

    def _store(self, member: TeamMember) -> None:
        self._roles[(member.team_id, member.user_id)] = member.role
        self._names[member.user_id] = member.user_name

    async def resolve_user(self, user_id: str) -> Optional[UserIdentity]:
        name = self._names.get(user_id)
        if name is None:
            return None
        return UserIdentity(user_id=user_id, display_name=name)

    async def role_of(self, team_id: str, user_id: str) -> TeamRole:
        return self._roles.get((team_id, user_id), TeamRole.NONE)

    async def add_member(self, member: TeamMember) -> TeamMember:
        self._store(member)
        logger.debug("Team member registered", team_id=member.team_id, user_id=member.user_id)
        return member


class SqlIdentityResolver(IdentityResolver):
    """
    Resolver reading the `team_members` table.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def resolve_user(self, user_id: str) -> Optional[UserIdentity]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TeamMemberDB.user_name).where(TeamMemberDB.user_id == user_id).limit(1)
            )
            name = result.scalar_one_or_none()
        if name is None:
            return None
        return UserIdentity(user_id=user_id, display_name=name)

    async def role_of(self, team_id: str, user_id: str) -> TeamRole:
        async with self.session_factory() as session:
            row = await session.get(TeamMemberDB, (team_id, user_id))
        return row.role if row else TeamRole.NONE

    async def add_member(self, member: TeamMember) -> TeamMember:
        async with self.session_factory() as session:
            async with session.begin():
                await session.merge(TeamMemberDB(**member.model_dump()))
        logger.debug("Team member registered", team_id=member.team_id, user_id=member.user_id)
        return member
