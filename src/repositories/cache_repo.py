"""
Cache for "does this team exist" lookups.

Team existence never changes once a team is created, so it is the one
fact cached across requests. Issue and workflow state are never cached.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Optional

from src.core.clock import Clock, utcnow
from src.core.constants import TEAM_EXISTS_CACHE_KEY
from src.core.logging import get_logger

logger = get_logger(__name__)


class TeamExistenceCache:
    """
    Bounded, time-boxed cache of known team ids.

    Entries expire after `ttl_seconds`; once `max_entries` is reached the
    least recently used entry is evicted. The clock is injectable so tests
    can move time forward.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_entries: int = 1024,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry
            max_entries: Maximum number of cached teams
            clock: Time source, defaults to utcnow
        """
        self._entries: OrderedDict[str, datetime] = OrderedDict()
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock or utcnow

    @staticmethod
    def _make_key(team_id: str) -> str:
        return TEAM_EXISTS_CACHE_KEY.format(team_id=team_id)

    def contains(self, team_id: str) -> bool:
        """True if the team is cached and its entry has not expired."""
        key = self._make_key(team_id)
        expires_at = self._entries.get(key)
        if expires_at is None:
            return False

        if expires_at <= self._clock():
            del self._entries[key]
            return False

        self._entries.move_to_end(key)
        return True

    def remember(self, team_id: str) -> None:
        """Record that the team exists."""
        key = self._make_key(team_id)
        self._entries[key] = self._clock() + self.ttl
        self._entries.move_to_end(key)

        if len(self._entries) > self.max_entries:
            self.clear_expired()
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Team cache eviction", key=evicted)

    def invalidate(self, team_id: str) -> bool:
        """Drop one team. Returns True if it was cached."""
        return self._entries.pop(self._make_key(team_id), None) is not None

    def clear(self) -> None:
        """Clear all cache entries."""
        self._entries.clear()
        logger.info("Team cache cleared")

    def clear_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired_keys = [key for key, expires_at in self._entries.items() if expires_at <= now]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.debug("Cleared expired team cache entries", count=len(expired_keys))

        return len(expired_keys)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        active = sum(1 for expires_at in self._entries.values() if expires_at > now)
        return {
            "total_entries": len(self._entries),
            "active_entries": active,
            "expired_entries": len(self._entries) - active,
            "max_entries": self.max_entries,
        }
