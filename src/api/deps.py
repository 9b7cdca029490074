"""
API dependencies for dependency injection.
"""

from typing import Optional

from fastapi import Request

from src.core.config import settings
from src.core.logging import get_logger
from src.core.security import require_actor
from src.database.config import create_engine, create_session_factory
from src.repositories.base import IssueStore
from src.repositories.cache_repo import TeamExistenceCache
from src.repositories.memory_store import InMemoryStore
from src.repositories.sql_store import SqlStore
from src.services.closure_analytics import ClosureAnalyticsService
from src.services.identity import IdentityResolver, InMemoryIdentityResolver, SqlIdentityResolver
from src.services.issue_service import IssueService
from src.services.project_service import ProjectService

logger = get_logger(__name__)


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self) -> None:
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(
        self,
        store: Optional[IssueStore] = None,
        identity: Optional[IdentityResolver] = None,
        team_cache: Optional[TeamExistenceCache] = None,
    ) -> None:
        """
        Initialize all services.

        Explicit collaborators replace the configured ones; tests use this
        to run the API against a seeded in-memory store.
        """
        if self._initialized and store is None and identity is None:
            return

        if store is None or identity is None:
            default_store, default_identity = self._build_backend()
            store = store or default_store
            identity = identity or default_identity

        self._store = store
        self._identity = identity
        self._team_cache = team_cache or TeamExistenceCache(
            ttl_seconds=settings.cache.team_ttl_seconds,
            max_entries=settings.cache.team_max_entries,
        )

        self._issue_service = IssueService(
            store=self._store,
            identity=self._identity,
            team_cache=self._team_cache,
        )
        self._project_service = ProjectService(self._issue_service)
        self._analytics_service = ClosureAnalyticsService(self._store, self._identity)

        self._initialized = True
        logger.info("Service container initialized", backend=type(self._store).__name__)

    @staticmethod
    def _build_backend() -> tuple[IssueStore, IdentityResolver]:
        if settings.database.backend == "sql":
            engine = create_engine(settings.database)
            session_factory = create_session_factory(engine)
            return SqlStore(engine, session_factory), SqlIdentityResolver(session_factory)
        return InMemoryStore(), InMemoryIdentityResolver()

    async def startup(self) -> None:
        """Prepare storage (creates tables for the SQL backend)."""
        self.initialize()
        await self._store.init()

    async def shutdown(self) -> None:
        """Release storage connections."""
        if self._initialized:
            await self._store.close()
            self._team_cache.clear()
            self._initialized = False

    @property
    def store(self) -> IssueStore:
        """Get the store."""
        self.initialize()
        return self._store

    @property
    def identity(self) -> IdentityResolver:
        """Get the identity resolver."""
        self.initialize()
        return self._identity

    @property
    def team_cache(self) -> TeamExistenceCache:
        """Get the team existence cache."""
        self.initialize()
        return self._team_cache

    @property
    def issue_service(self) -> IssueService:
        """Get the issue service."""
        self.initialize()
        return self._issue_service

    @property
    def project_service(self) -> ProjectService:
        """Get the project service."""
        self.initialize()
        return self._project_service

    @property
    def analytics_service(self) -> ClosureAnalyticsService:
        """Get the closure analytics service."""
        self.initialize()
        return self._analytics_service


# Singleton container instance
container = ServiceContainer.get_instance()


# Dependency functions for FastAPI
def get_issue_service() -> IssueService:
    """Get the issue service instance."""
    return container.issue_service


def get_project_service() -> ProjectService:
    """Get the project service instance."""
    return container.project_service


def get_analytics_service() -> ClosureAnalyticsService:
    """Get the closure analytics service instance."""
    return container.analytics_service


def get_actor_id(request: Request) -> str:
    """Acting user id from the configured header."""
    return require_actor(request.headers.get(settings.security.actor_header))
