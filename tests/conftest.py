"""
Pytest configuration and fixtures.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import AsyncGenerator, Awaitable, Callable, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.deps import container
from src.core.constants import Difficulty, TeamRole, WorkflowStateType
from src.domain.issue import Issue, IssueCreate, WorkflowState
from src.domain.team import Label, Project, Team, TeamMember
from src.main import app
from src.repositories.cache_repo import TeamExistenceCache
from src.repositories.memory_store import InMemoryStore
from src.services.identity import InMemoryIdentityResolver
from src.services.issue_service import IssueService
from src.services.project_service import ProjectService


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class TeamSeed:
    """Ids of the records every test team starts with."""

    team_id: str = "team_1"
    owner: str = "u_owner"
    admin: str = "u_admin"
    dev: str = "u_dev"
    reviewer: str = "u_rev"
    other_dev: str = "u_dev2"
    outsider: str = "u_out"

    backlog: str = "wfs_backlog"
    todo: str = "wfs_todo"
    in_progress: str = "wfs_progress"
    review: str = "wfs_review"
    done: str = "wfs_done"
    canceled: str = "wfs_canceled"

    project: str = "prj_web"
    other_project: str = "prj_api"
    label_bug: str = "lbl_bug"
    label_ui: str = "lbl_ui"
    label_api: str = "lbl_api"


SEED_STATES = [
    ("wfs_backlog", "Backlog", WorkflowStateType.BACKLOG),
    ("wfs_todo", "Todo", WorkflowStateType.UNSTARTED),
    ("wfs_progress", "In Progress", WorkflowStateType.STARTED),
    ("wfs_review", "Review", WorkflowStateType.REVIEW),
    ("wfs_done", "Done", WorkflowStateType.COMPLETED),
    ("wfs_canceled", "Canceled", WorkflowStateType.CANCELED),
]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 6, 9, 0, 0))


@pytest.fixture
def seed() -> TeamSeed:
    return TeamSeed()


@pytest.fixture
def identity(seed: TeamSeed) -> InMemoryIdentityResolver:
    """Directory with one member per role."""
    return InMemoryIdentityResolver(
        [
            TeamMember(team_id=seed.team_id, user_id=seed.owner, user_name="Olivia Owner", role=TeamRole.OWNER),
            TeamMember(team_id=seed.team_id, user_id=seed.admin, user_name="Adam Admin", role=TeamRole.ADMIN),
            TeamMember(team_id=seed.team_id, user_id=seed.dev, user_name="Dana Dev", role=TeamRole.DEVELOPER),
            TeamMember(team_id=seed.team_id, user_id=seed.reviewer, user_name="Riley Reviewer", role=TeamRole.DEVELOPER),
            TeamMember(team_id=seed.team_id, user_id=seed.other_dev, user_name="Sam Second", role=TeamRole.DEVELOPER),
        ]
    )


async def seed_team(store: InMemoryStore, seed: TeamSeed, with_review: bool = True) -> None:
    async with store.transaction() as tx:
        await tx.insert_team(Team(id=seed.team_id, name="Web Team", key="WEB"))
        for position, (state_id, name, state_type) in enumerate(SEED_STATES):
            if state_type == WorkflowStateType.REVIEW and not with_review:
                continue
            await tx.insert_workflow_state(
                WorkflowState(id=state_id, team_id=seed.team_id, name=name, type=state_type, position=position)
            )
        await tx.insert_project(Project(id=seed.project, team_id=seed.team_id, name="Website", key="WEB"))
        await tx.insert_project(Project(id=seed.other_project, team_id=seed.team_id, name="API", key="API"))
        await tx.insert_label(Label(id=seed.label_bug, project_id=seed.project, name="bug"))
        await tx.insert_label(Label(id=seed.label_ui, project_id=seed.project, name="ui"))
        await tx.insert_label(Label(id=seed.label_api, project_id=seed.other_project, name="api"))


@pytest.fixture
async def store(seed: TeamSeed) -> InMemoryStore:
    """In-memory store holding one seeded team."""
    store = InMemoryStore()
    await seed_team(store, seed)
    return store


@pytest.fixture
async def legacy_store(seed: TeamSeed) -> InMemoryStore:
    """Seeded team created before the Review stage existed."""
    store = InMemoryStore()
    await seed_team(store, seed, with_review=False)
    return store


def build_service(store: InMemoryStore, identity: InMemoryIdentityResolver, clock: FakeClock) -> IssueService:
    return IssueService(
        store=store,
        identity=identity,
        team_cache=TeamExistenceCache(clock=clock),
        clock=clock,
        min_rejection_reason_length=10,
    )


@pytest.fixture
def service(store: InMemoryStore, identity: InMemoryIdentityResolver, clock: FakeClock) -> IssueService:
    return build_service(store, identity, clock)


@pytest.fixture
def legacy_service(
    legacy_store: InMemoryStore, identity: InMemoryIdentityResolver, clock: FakeClock
) -> IssueService:
    return build_service(legacy_store, identity, clock)


@pytest.fixture
def project_service(service: IssueService) -> ProjectService:
    return ProjectService(service)


IssueFactory = Callable[..., Awaitable[Issue]]


@pytest.fixture
def make_issue(service: IssueService, seed: TeamSeed) -> IssueFactory:
    """Create a complete issue through the strict path, overriding any field."""

    async def factory(actor: Optional[str] = None, **overrides: object) -> Issue:
        fields = {
            "title": "Fix login redirect",
            "workflow_state_id": seed.in_progress,
            "assignee_ids": [seed.dev],
            "due_date": date(2025, 1, 10),
            "label_ids": [seed.label_bug],
            "project_id": seed.project,
            "difficulty": Difficulty.M,
        }
        fields.update(overrides)
        return await service.create_issue(seed.team_id, IssueCreate(**fields), actor or seed.dev)

    return factory


@pytest.fixture
async def async_client(
    store: InMemoryStore, identity: InMemoryIdentityResolver
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client over the app, backed by the seeded store."""
    container.initialize(store=store, identity=identity)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
