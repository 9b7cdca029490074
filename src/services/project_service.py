"""
Project duplication and team stage setup.
"""

from __future__ import annotations

from typing import Optional

from src.core.config import settings
from src.core.constants import (
    COPY_KEY_SUFFIX,
    COPY_NAME_SUFFIX,
    REVIEW_STATE_COLOR,
    REVIEW_STATE_DEFAULT_POSITION,
    REVIEW_STATE_NAME,
    WorkflowStateType,
)
from src.core.exceptions import NotFoundError, ValidationError
from src.core.logging import LogContext, get_logger
from src.core.security import generate_issue_id, generate_label_id, generate_project_id, generate_state_id
from src.domain.issue import Issue, IssueAssignee, WorkflowState
from src.domain.team import Label, Project
from src.services.issue_service import IssueService, default_state, first_of_type

logger = get_logger(__name__)

# Stage types a clone may not start in: the duplicate has not been reviewed
_UNCLONEABLE_TYPES = frozenset({WorkflowStateType.REVIEW, WorkflowStateType.COMPLETED})


def parents_first(issues: list[Issue]) -> list[Issue]:
    """Order issues so every parent inside the list precedes its children."""
    by_id = {i.id: i for i in issues}
    depth: dict[str, int] = {}

    def depth_of(issue: Issue) -> int:
        seen: set[str] = set()
        d = 0
        current = issue
        while current.parent_id in by_id and current.id not in seen:
            seen.add(current.id)
            current = by_id[current.parent_id]
            d += 1
        return d

    for issue in issues:
        depth[issue.id] = depth_of(issue)
    return sorted(issues, key=lambda i: (depth[i.id], i.created_at, i.number))


class ProjectService:
    """
    Bulk project operations. Shares the issue service's store, identity
    resolver, number allocator and activity logger.
    """

    def __init__(self, issues: IssueService) -> None:
        self.issues = issues

    async def duplicate_project(
        self,
        team_id: str,
        project_id: str,
        actor_id: Optional[str],
    ) -> Project:
        """
        Clone a project with its labels and issues in one transaction.

        Clones get fresh numbers, remapped labels and parents, the actor as
        assignee when the original had none, and today as due date when the
        original had none. Issues without a difficulty are skipped. A clone
        never starts in Review or Done; those land in the team default stage.

        Returns:
            The new project

        Raises:
            NotFoundError: If the project does not exist in the team
            TimeoutError: If the duplicate exceeds the bulk transaction budget
        """
        svc = self.issues
        actor, _ = await svc.resolve_actor(team_id, actor_id)

        async def work() -> tuple[Project, int, int]:
            async with svc.store.transaction() as tx:
                await svc.ensure_team(tx, team_id)
                original = await tx.get_project(team_id, project_id)
                if original is None:
                    raise NotFoundError("Project", project_id)

                states = await svc.state_index(tx, team_id)
                landing = default_state(list(states.values()))

                lead = original.lead
                if original.lead_id:
                    lead = await svc.identity.display_name(original.lead_id)
                duplicate = Project(
                    id=generate_project_id(),
                    team_id=team_id,
                    name=f"{original.name}{COPY_NAME_SUFFIX}",
                    key=f"{original.key}{COPY_KEY_SUFFIX}",
                    description=original.description,
                    color=original.color,
                    icon=original.icon,
                    lead_id=original.lead_id,
                    lead=lead or actor.display_name,
                    created_at=svc.clock(),
                )
                await tx.insert_project(duplicate)

                label_map: dict[str, str] = {}
                for label in await tx.list_labels(original.id):
                    clone = Label(id=generate_label_id(), project_id=duplicate.id, name=label.name, color=label.color)
                    await tx.insert_label(clone)
                    label_map[label.id] = clone.id

                issue_map: dict[str, str] = {}
                skipped = 0
                next_number = await svc.sequence.next_number(tx, team_id)
                today = svc.clock().date()

                for source in parents_first(await tx.list_issues(team_id, project_id=original.id)):
                    if source.difficulty is None:
                        logger.warning("Skipping issue without difficulty", issue_id=source.id)
                        skipped += 1
                        continue

                    state_id = source.workflow_state_id
                    state = states.get(state_id)
                    if state is None or state.type in _UNCLONEABLE_TYPES:
                        if landing is None:
                            raise ValidationError("Team has no workflow stages", details={"field": "workflow_state"})
                        state_id = landing.id

                    assignees = source.assignees or [
                        IssueAssignee(user_id=actor.user_id, user_name=actor.display_name)
                    ]
                    now = svc.clock()
                    clone = Issue(
                        id=generate_issue_id(),
                        team_id=team_id,
                        number=next_number,
                        title=source.title,
                        description=source.description,
                        priority=source.priority,
                        difficulty=source.difficulty,
                        estimate=source.estimate,
                        due_date=source.due_date or today,
                        assignees=[a.model_copy() for a in assignees],
                        parent_id=issue_map.get(source.parent_id) if source.parent_id else None,
                        workflow_state_id=state_id,
                        project_id=duplicate.id,
                        label_ids=[label_map[i] for i in source.label_ids if i in label_map],
                        creator_id=actor.user_id,
                        creator=actor.display_name,
                        created_at=now,
                        updated_at=now,
                    )
                    next_number += 1
                    await tx.insert_issue(clone)
                    await svc.activity.log_created(tx, clone, actor)
                    issue_map[source.id] = clone.id

                return duplicate, len(issue_map), skipped

        with LogContext(team_id=team_id, project_id=project_id, actor_id=actor.user_id):
            project, cloned, skipped = await svc.run(
                "duplicate_project",
                work,
                timeout=settings.workflow.bulk_transaction_timeout_seconds,
            )
            logger.info("Project duplicated", new_project_id=project.id, issues=cloned, skipped=skipped)
        return project

    async def ensure_review_state(self, team_id: str, actor_id: Optional[str]) -> tuple[WorkflowState, bool]:
        """
        Add a Review stage right before the first Done stage if the team has none.

        Returns:
            (review stage, whether it was created now)
        """
        svc = self.issues
        actor, _ = await svc.resolve_actor(team_id, actor_id)

        async def work() -> tuple[WorkflowState, bool]:
            async with svc.store.transaction() as tx:
                await svc.ensure_team(tx, team_id)
                states = await tx.list_workflow_states(team_id)

                existing = first_of_type(states, WorkflowStateType.REVIEW)
                if existing is not None:
                    return existing, False

                done = first_of_type(states, WorkflowStateType.COMPLETED)
                position = done.position if done else REVIEW_STATE_DEFAULT_POSITION
                if done is not None:
                    for state in states:
                        if state.position >= position:
                            state.position += 1
                            await tx.update_workflow_state(state)

                review = WorkflowState(
                    id=generate_state_id(),
                    team_id=team_id,
                    name=REVIEW_STATE_NAME,
                    type=WorkflowStateType.REVIEW,
                    color=REVIEW_STATE_COLOR,
                    position=position,
                )
                await tx.insert_workflow_state(review)
                return review, True

        with LogContext(team_id=team_id, actor_id=actor.user_id):
            state, created = await svc.run("ensure_review_state", work)
            if created:
                logger.info("Review stage added", state_id=state.id, position=state.position)
        return state, created
