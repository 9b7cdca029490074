"""
Issue service: the operation boundary for every issue mutation.

Each operation runs in a single store transaction. The issue and its
team's stages are re-read inside that transaction, so the Review lock is
checked against the stage the write will actually see.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from src.core.clock import Clock, utcnow
from src.core.config import settings
from src.core.constants import (
    DEFAULT_PAGE_SIZE,
    ELEVATED_ROLES,
    SEND_BACK_TYPES,
    UNASSIGNED_SENTINELS,
    ReviewDecision,
    TeamRole,
    WorkflowStateType,
)
from src.core.exceptions import (
    AuthorizationError,
    DatabaseError,
    IssueNotFoundError,
    LockViolationError,
    NotFoundError,
    StateViolationError,
    TeamMemberNotFoundError,
    ValidationError,
)
from src.core.exceptions import TimeoutError as OperationTimeoutError
from src.core.logging import LogContext, get_logger
from src.core.security import generate_issue_id, require_actor
from src.domain.activity import ActivityPage
from src.domain.issue import Issue, IssueAssignee, IssueCreate, WorkflowState
from src.domain.patch import (
    IssuePatch,
    PatchField,
    ReviewerChange,
    WorkflowStateChange,
)
from src.domain.team import UserIdentity
from src.orchestration.state_machine import IssueTransitionRules
from src.repositories.base import IssueStore, StoreSession
from src.repositories.cache_repo import TeamExistenceCache
from src.services.activity_logger import ActivityLogger
from src.services.hierarchy import HierarchyValidator
from src.services.identity import IdentityResolver
from src.services.sequence import SequenceAllocator

logger = get_logger(__name__)

R = TypeVar("R")

# Scalar patch fields and the Issue attribute each one writes
SCALAR_FIELDS: list[tuple[PatchField, str]] = [
    (PatchField.TITLE, "title"),
    (PatchField.DESCRIPTION, "description"),
    (PatchField.PRIORITY, "priority"),
    (PatchField.DIFFICULTY, "difficulty"),
    (PatchField.ESTIMATE, "estimate"),
    (PatchField.DUE_DATE, "due_date"),
]


def normalize_ids(values: Iterable[Optional[str]]) -> list[str]:
    """Strip ids, drop blanks and 'unassigned' placeholders, dedupe keeping order."""
    seen: list[str] = []
    for value in values:
        if value is None:
            continue
        cleaned = value.strip()
        if cleaned.lower() in UNASSIGNED_SENTINELS or cleaned in seen:
            continue
        seen.append(cleaned)
    return seen


def default_state(states: list[WorkflowState]) -> Optional[WorkflowState]:
    """Stage new issues land in: first unstarted, else first backlog, else first stage."""
    ordered = sorted(states, key=lambda s: s.position)
    for wanted in (WorkflowStateType.UNSTARTED, WorkflowStateType.BACKLOG):
        for state in ordered:
            if state.type == wanted:
                return state
    return ordered[0] if ordered else None


def first_of_type(
    states: Iterable[WorkflowState], *types: WorkflowStateType
) -> Optional[WorkflowState]:
    """Lowest-position stage whose type is in `types`."""
    matching = [s for s in states if s.type in types]
    return min(matching, key=lambda s: s.position) if matching else None


class IssueService:
    """
    Creates, updates, reviews and deletes issues.
    """

    def __init__(
        self,
        store: IssueStore,
        identity: IdentityResolver,
        team_cache: Optional[TeamExistenceCache] = None,
        activity_logger: Optional[ActivityLogger] = None,
        sequence: Optional[SequenceAllocator] = None,
        hierarchy: Optional[HierarchyValidator] = None,
        rules: Optional[IssueTransitionRules] = None,
        clock: Optional[Clock] = None,
        min_rejection_reason_length: Optional[int] = None,
        transaction_timeout_seconds: Optional[float] = None,
        serialization_retries: Optional[int] = None,
    ) -> None:
        """
        Initialize the issue service.

        Args:
            store: Persistent store
            identity: Team membership and user directory
            team_cache: Team existence cache
            activity_logger: Activity log writer
            sequence: Issue number allocator
            hierarchy: Parent/child validator
            rules: Stage transition rules
            clock: Time source for timestamps
            min_rejection_reason_length: Minimum send-back reason length
            transaction_timeout_seconds: Budget for one operation
            serialization_retries: Re-runs allowed after a serialization conflict
        """
        self.store = store
        self.identity = identity
        self.team_cache = team_cache or TeamExistenceCache(
            ttl_seconds=settings.cache.team_ttl_seconds,
            max_entries=settings.cache.team_max_entries,
        )
        self.clock = clock or utcnow
        self.activity = activity_logger or ActivityLogger(clock=self.clock)
        self.sequence = sequence or SequenceAllocator()
        self.hierarchy = hierarchy or HierarchyValidator()
        self.rules = rules or IssueTransitionRules()
        self.min_rejection_reason_length = (
            min_rejection_reason_length or settings.workflow.min_rejection_reason_length
        )
        self.transaction_timeout = (
            transaction_timeout_seconds or settings.workflow.transaction_timeout_seconds
        )
        self.serialization_retries = (
            settings.database.serialization_retries
            if serialization_retries is None
            else serialization_retries
        )

    # =========================================================================
    # Shared helpers
    # =========================================================================

    async def run(
        self,
        operation: str,
        work: Callable[[], Awaitable[R]],
        timeout: Optional[float] = None,
    ) -> R:
        """Run `work` under a time budget; a timeout cancels and rolls it back.

        `work` opens its own transaction, so it is re-run from scratch when the
        store reports a serialization conflict. Retries share the one budget.
        """
        budget = timeout or self.transaction_timeout

        async def attempt() -> R:
            retries_left = self.serialization_retries
            while True:
                try:
                    return await work()
                except DatabaseError as e:
                    if not e.retryable or retries_left <= 0:
                        raise
                    retries_left -= 1
                    logger.info(
                        "Retrying after serialization conflict",
                        operation=operation,
                        retries_left=retries_left,
                    )

        try:
            return await asyncio.wait_for(attempt(), timeout=budget)
        except asyncio.TimeoutError as e:
            logger.error("Operation timed out", operation=operation, timeout_seconds=budget)
            raise OperationTimeoutError(operation, budget) from e

    async def resolve_actor(self, team_id: str, actor_id: Optional[str]) -> tuple[UserIdentity, TeamRole]:
        """
        Identify the acting user and their role in the team.

        Raises:
            AuthenticationError: If no actor id was given
            AuthorizationError: If the actor is not a team member
        """
        user_id = require_actor(actor_id)
        role = await self.identity.role_of(team_id, user_id)
        if role == TeamRole.NONE:
            raise AuthorizationError(
                "You are not a member of this team", action="team_access", user_id=user_id
            )
        name = await self.identity.display_name(user_id)
        return UserIdentity(user_id=user_id, display_name=name), role

    async def ensure_team(self, tx: StoreSession, team_id: str) -> None:
        if self.team_cache.contains(team_id):
            return
        if await tx.get_team(team_id) is None:
            raise NotFoundError("Team", team_id)
        self.team_cache.remember(team_id)

    async def load_issue(self, tx: StoreSession, team_id: str, issue_id: str) -> Issue:
        issue = await tx.get_issue(team_id, issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue

    @staticmethod
    async def state_index(tx: StoreSession, team_id: str) -> dict[str, WorkflowState]:
        return {s.id: s for s in await tx.list_workflow_states(team_id)}

    @staticmethod
    def require_state(states: dict[str, WorkflowState], state_id: str) -> WorkflowState:
        state = states.get(state_id)
        if state is None:
            raise NotFoundError("WorkflowState", state_id)
        return state

    async def resolve_assignees(self, team_id: str, user_ids: list[str]) -> list[IssueAssignee]:
        """
        Raises:
            TeamMemberNotFoundError: Listing every id that is not a member
        """
        missing = await self.identity.missing_members(team_id, user_ids)
        if missing:
            raise TeamMemberNotFoundError(team_id, missing)
        return [
            IssueAssignee(user_id=uid, user_name=await self.identity.display_name(uid))
            for uid in user_ids
        ]

    async def validate_labels(
        self, tx: StoreSession, project_id: Optional[str], label_ids: list[str]
    ) -> None:
        """Labels must exist and belong to the issue's project."""
        if not label_ids:
            return
        if project_id is None:
            raise ValidationError(
                "Labels require the issue to belong to a project",
                details={"field": "labels"},
            )

        labels = await tx.get_labels(label_ids)
        found = {label.id for label in labels}
        unknown = [i for i in label_ids if i not in found]
        if unknown:
            raise NotFoundError("Label", ", ".join(unknown))

        foreign = [label.id for label in labels if label.project_id != project_id]
        if foreign:
            raise ValidationError(
                "Labels must belong to the issue's project",
                details={"field": "labels", "label_ids": foreign, "project_id": project_id},
            )

    async def check_reviewer(self, team_id: str, issue: Issue, reviewer_id: str) -> UserIdentity:
        """
        Validate a reviewer against the issue's current assignees.

        Raises:
            ValidationError: If the reviewer id is blank
            TeamMemberNotFoundError: If the reviewer is not a team member
            StateViolationError: If the reviewer is one of the assignees
        """
        reviewer_id = reviewer_id.strip()
        if not reviewer_id:
            raise ValidationError("Reviewer is required", details={"field": "reviewer"})
        if not await self.identity.is_member(team_id, reviewer_id):
            raise TeamMemberNotFoundError(team_id, [reviewer_id])
        if reviewer_id in issue.assignee_ids:
            raise StateViolationError(
                "An assignee cannot review their own issue",
                rule="self_review",
                details={"reviewer_id": reviewer_id},
            )
        name = await self.identity.display_name(reviewer_id)
        return UserIdentity(user_id=reviewer_id, display_name=name)

    @staticmethod
    def authorize_review_decision(issue: Issue, actor: UserIdentity, role: TeamRole) -> None:
        if role in ELEVATED_ROLES or actor.user_id == issue.reviewer_id:
            return
        raise AuthorizationError(
            "Only the reviewer or a team owner/admin can act on an issue in Review",
            action="review_decision",
            user_id=actor.user_id,
        )

    # =========================================================================
    # Create
    # =========================================================================

    @staticmethod
    def missing_fields(fields: IssueCreate, assignee_ids: list[str], strict: bool) -> list[str]:
        """Every required field that is absent, in a stable order."""
        missing = []
        if not (fields.title or "").strip():
            missing.append("title")
        if not strict:
            return missing
        if not fields.workflow_state_id:
            missing.append("workflow_state")
        if not assignee_ids:
            missing.append("assignees")
        if fields.due_date is None:
            missing.append("due_date")
        if not normalize_ids(fields.label_ids):
            missing.append("labels")
        if fields.difficulty is None:
            missing.append("difficulty")
        return missing

    async def create_issue(
        self,
        team_id: str,
        fields: IssueCreate,
        creator_id: Optional[str],
        strict: bool = True,
    ) -> Issue:
        """
        Create an issue and allocate its number in the same transaction.

        Args:
            team_id: Owning team
            fields: Issue fields
            creator_id: Acting user
            strict: Require every field the full creation form requires

        Returns:
            The created issue

        Raises:
            ValidationError: Listing every missing field
            StateViolationError: If the target stage is Review or Done
        """
        actor, _ = await self.resolve_actor(team_id, creator_id)
        assignee_ids = normalize_ids(fields.assignee_ids)
        label_ids = normalize_ids(fields.label_ids)

        missing = self.missing_fields(fields, assignee_ids, strict)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"fields": missing},
                errors=[f"{name} is required" for name in missing],
            )

        async def work() -> Issue:
            async with self.store.transaction() as tx:
                await self.ensure_team(tx, team_id)
                states = await self.state_index(tx, team_id)

                if fields.workflow_state_id:
                    state = self.require_state(states, fields.workflow_state_id)
                else:
                    state = default_state(list(states.values()))
                    if state is None:
                        raise ValidationError(
                            "Team has no workflow stages", details={"field": "workflow_state"}
                        )
                self.rules.check_creation(state.type)

                if fields.project_id and await tx.get_project(team_id, fields.project_id) is None:
                    raise NotFoundError("Project", fields.project_id)
                await self.validate_labels(tx, fields.project_id, label_ids)

                if fields.parent_id:
                    await self.load_issue(tx, team_id, fields.parent_id)

                assignees = await self.resolve_assignees(team_id, assignee_ids)
                now = self.clock()
                issue = Issue(
                    id=generate_issue_id(),
                    team_id=team_id,
                    number=await self.sequence.next_number(tx, team_id),
                    title=(fields.title or "").strip(),
                    description=fields.description,
                    priority=fields.priority,
                    difficulty=fields.difficulty,
                    estimate=fields.estimate,
                    due_date=fields.due_date,
                    assignees=assignees,
                    parent_id=fields.parent_id,
                    workflow_state_id=state.id,
                    project_id=fields.project_id,
                    label_ids=label_ids,
                    creator_id=actor.user_id,
                    creator=actor.display_name,
                    created_at=now,
                    updated_at=now,
                )
                await tx.insert_issue(issue)
                await self.activity.log_created(tx, issue, actor)
                return issue

        with LogContext(team_id=team_id, actor_id=actor.user_id):
            issue = await self.run("create_issue", work)
            logger.info("Issue created", issue_id=issue.id, number=issue.number, state_id=issue.workflow_state_id)
        return issue

    # =========================================================================
    # Update
    # =========================================================================

    async def update_issue(
        self,
        team_id: str,
        issue_id: str,
        patch: IssuePatch,
        actor_id: Optional[str],
    ) -> Issue:
        """
        Apply a patch under the workflow rules.

        Raises:
            LockViolationError: If the issue is in Review and the patch touches
                anything besides the stage and the reviewer
            AuthorizationError: If a review decision comes from someone other
                than the reviewer or an owner/admin
            StateViolationError: On an illegal transition
            StructuralIntegrityError: On a parent cycle
        """
        actor, role = await self.resolve_actor(team_id, actor_id)

        async def work() -> Issue:
            async with self.store.transaction() as tx:
                await self.ensure_team(tx, team_id)
                issue = await self.load_issue(tx, team_id, issue_id)
                states = await self.state_index(tx, team_id)
                return await self.apply_patch(tx, issue, patch, actor, role, states)

        with LogContext(team_id=team_id, issue_id=issue_id, actor_id=actor.user_id):
            return await self.run("update_issue", work)

    async def apply_patch(
        self,
        tx: StoreSession,
        issue: Issue,
        patch: IssuePatch,
        actor: UserIdentity,
        role: TeamRole,
        states: dict[str, WorkflowState],
    ) -> Issue:
        """Validate and apply `patch` to `issue` on the open session."""
        current = self.require_state(states, issue.workflow_state_id)

        if current.type == WorkflowStateType.REVIEW:
            blocked = patch.blocked_while_locked()
            if blocked:
                logger.info("Locked issue edit rejected", fields=blocked)
                raise LockViolationError(issue.id, blocked)
            if not patch.is_empty():
                self.authorize_review_decision(issue, actor, role)

        changed: list[str] = []
        changed += await self._apply_scalars(tx, issue, patch, actor)
        changed += await self._apply_assignees(tx, issue, patch, actor)
        changed += await self._apply_project_and_labels(tx, issue, patch, actor)
        changed += await self._apply_parent(tx, issue, patch, actor)
        changed += await self._apply_workflow(tx, issue, patch, actor, current, states)

        if not changed:
            logger.debug("Patch had no effect", issue_id=issue.id)
            return issue

        issue.touch(self.clock())
        await tx.save_issue(issue)
        logger.info("Issue updated", issue_id=issue.id, fields=changed)
        return issue

    async def _apply_scalars(
        self, tx: StoreSession, issue: Issue, patch: IssuePatch, actor: UserIdentity
    ) -> list[str]:
        changed = []
        for tag, attr in SCALAR_FIELDS:
            change = patch.get(tag)
            if change is None:
                continue
            new_value: Any = change.value
            if tag == PatchField.TITLE:
                new_value = new_value.strip()
                if not new_value:
                    raise ValidationError("Title cannot be empty", details={"field": "title"})
            old_value = getattr(issue, attr)
            if old_value == new_value:
                continue
            setattr(issue, attr, new_value)
            await self.activity.log_field_update(tx, issue.id, actor, attr, old_value, new_value)
            changed.append(attr)
        return changed

    async def _apply_assignees(
        self, tx: StoreSession, issue: Issue, patch: IssuePatch, actor: UserIdentity
    ) -> list[str]:
        change = patch.get(PatchField.ASSIGNEES)
        if change is None:
            return []
        user_ids = normalize_ids(change.user_ids)
        if user_ids == issue.assignee_ids:
            return []

        assignees = await self.resolve_assignees(issue.team_id, user_ids)
        previous = [a.user_name for a in issue.assignees]
        issue.assignees = assignees
        await self.activity.log_assignment(tx, issue.id, actor, previous, [a.user_name for a in assignees])
        return ["assignees"]

    async def _apply_project_and_labels(
        self, tx: StoreSession, issue: Issue, patch: IssuePatch, actor: UserIdentity
    ) -> list[str]:
        changed = []
        project_change = patch.get(PatchField.PROJECT)
        labels_change = patch.get(PatchField.LABELS)

        if project_change is not None and project_change.project_id != issue.project_id:
            new_project_id = project_change.project_id
            if new_project_id is not None and await tx.get_project(issue.team_id, new_project_id) is None:
                raise NotFoundError("Project", new_project_id)

            old_project_id = issue.project_id
            issue.project_id = new_project_id
            await self.activity.log_field_update(tx, issue.id, actor, "project", old_project_id, new_project_id)

            # Numbers are team-scoped; moving projects allocates a fresh one
            old_number = issue.number
            issue.number = await self.sequence.next_number(tx, issue.team_id)
            await self.activity.log_field_update(tx, issue.id, actor, "number", old_number, issue.number)
            changed += ["project", "number"]

            if labels_change is None and issue.label_ids:
                kept = []
                if new_project_id is not None:
                    kept = [lbl.id for lbl in await tx.get_labels(issue.label_ids) if lbl.project_id == new_project_id]
                if kept != issue.label_ids:
                    await self.activity.log_labels_change(tx, issue.id, actor, issue.label_ids, kept)
                    issue.label_ids = kept
                    changed.append("labels")

        if labels_change is not None:
            label_ids = normalize_ids(labels_change.label_ids)
            if label_ids != issue.label_ids:
                await self.validate_labels(tx, issue.project_id, label_ids)
                await self.activity.log_labels_change(tx, issue.id, actor, issue.label_ids, label_ids)
                issue.label_ids = label_ids
                changed.append("labels")

        return changed

    async def _apply_parent(
        self, tx: StoreSession, issue: Issue, patch: IssuePatch, actor: UserIdentity
    ) -> list[str]:
        change = patch.get(PatchField.PARENT)
        if change is None or change.parent_id == issue.parent_id:
            return []

        if change.parent_id is not None:
            await self.hierarchy.validate_parent(tx, issue.team_id, issue.id, change.parent_id)
            await self.load_issue(tx, issue.team_id, change.parent_id)

        await self.activity.log_parent_change(tx, issue.id, actor, issue.parent_id, change.parent_id)
        issue.parent_id = change.parent_id
        return ["parent"]

    async def _apply_workflow(
        self,
        tx: StoreSession,
        issue: Issue,
        patch: IssuePatch,
        actor: UserIdentity,
        current: WorkflowState,
        states: dict[str, WorkflowState],
    ) -> list[str]:
        state_change: Optional[WorkflowStateChange] = patch.get(PatchField.WORKFLOW_STATE)
        reviewer_change: Optional[ReviewerChange] = patch.get(PatchField.REVIEWER)

        target = current
        if state_change is not None and state_change.state_id != current.id:
            target = self.require_state(states, state_change.state_id)
        moving = target.id != current.id
        if moving:
            self.rules.check(current.type, target.type)

        entering = moving and self.rules.is_entering_review(current.type, target.type)
        leaving = moving and self.rules.is_leaving_review(current.type, target.type)
        staying = current.type == WorkflowStateType.REVIEW and not leaving

        if reviewer_change is not None and not (entering or staying):
            raise StateViolationError(
                "A reviewer can only be set when sending an issue to Review or while it is in Review",
                rule="reviewer_outside_review",
            )

        now = self.clock()
        changed = []

        if entering:
            if reviewer_change is None:
                raise StateViolationError(
                    "A reviewer must be chosen to send an issue to Review",
                    rule="reviewer_required",
                )
            reviewer = await self.check_reviewer(issue.team_id, issue, reviewer_change.reviewer_id)
            issue.workflow_state_id = target.id
            issue.reviewed_at = now
            issue.reviewer_id = reviewer.user_id
            issue.reviewer = reviewer.display_name
            issue.completed_at = None
            await self.activity.log_sent_to_review(tx, issue.id, actor, current, reviewer)
            return ["workflow_state", "reviewer"]

        if leaving:
            if target.type == WorkflowStateType.COMPLETED:
                issue.completed_at = now
                await self.activity.log_approved(tx, issue.id, actor, target)
            elif target.type in SEND_BACK_TYPES:
                reason = ((state_change.reason if state_change else None) or "").strip()
                if len(reason) < self.min_rejection_reason_length:
                    raise StateViolationError(
                        f"Sending an issue back requires a reason of at least "
                        f"{self.min_rejection_reason_length} characters",
                        rule="rejection_reason_required",
                        details={"field": "reason", "min_length": self.min_rejection_reason_length},
                    )
                issue.completed_at = None
                await self.activity.log_sent_back(tx, issue.id, actor, target, reason)
            else:
                issue.completed_at = None
                await self.activity.log_status_change(tx, issue.id, actor, current, target)
            issue.workflow_state_id = target.id
            issue.reviewer_id = None
            issue.reviewer = None
            return ["workflow_state", "reviewer"]

        if moving:
            issue.workflow_state_id = target.id
            if target.type != WorkflowStateType.COMPLETED:
                issue.completed_at = None
            await self.activity.log_status_change(tx, issue.id, actor, current, target)
            changed.append("workflow_state")

        if reviewer_change is not None and reviewer_change.reviewer_id.strip() != issue.reviewer_id:
            reviewer = await self.check_reviewer(issue.team_id, issue, reviewer_change.reviewer_id)
            previous = (
                UserIdentity(user_id=issue.reviewer_id, display_name=issue.reviewer or issue.reviewer_id)
                if issue.reviewer_id
                else None
            )
            issue.reviewer_id = reviewer.user_id
            issue.reviewer = reviewer.display_name
            await self.activity.log_reviewer_reassigned(tx, issue.id, actor, previous, reviewer)
            changed.append("reviewer")

        return changed

    # =========================================================================
    # Review decisions
    # =========================================================================

    async def perform_review_decision(
        self,
        team_id: str,
        issue_id: str,
        actor_id: Optional[str],
        decision: ReviewDecision,
        target_state_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Issue:
        """
        Approve, send back or reassign an issue in Review.

        Args:
            team_id: Owning team
            issue_id: Issue under review
            actor_id: Acting user
            decision: approve | send_back | reassign
            target_state_id: Destination stage; defaults to the first Done
                stage (approve) or the first Todo stage (send_back)
            reviewer_id: New reviewer (reassign)
            reason: Why the issue is sent back (send_back)
        """
        actor, role = await self.resolve_actor(team_id, actor_id)

        async def work() -> Issue:
            async with self.store.transaction() as tx:
                await self.ensure_team(tx, team_id)
                issue = await self.load_issue(tx, team_id, issue_id)
                states = await self.state_index(tx, team_id)
                current = self.require_state(states, issue.workflow_state_id)
                if current.type != WorkflowStateType.REVIEW:
                    raise StateViolationError(
                        "Issue is not in Review",
                        rule="not_in_review",
                        details={"current_type": current.type.value},
                    )
                self.authorize_review_decision(issue, actor, role)

                patch = self._decision_patch(decision, states, target_state_id, reviewer_id, reason)
                return await self.apply_patch(tx, issue, patch, actor, role, states)

        with LogContext(team_id=team_id, issue_id=issue_id, actor_id=actor.user_id):
            issue = await self.run("review_decision", work)
            logger.info("Review decision applied", decision=decision.value)
        return issue

    def _decision_patch(
        self,
        decision: ReviewDecision,
        states: dict[str, WorkflowState],
        target_state_id: Optional[str],
        reviewer_id: Optional[str],
        reason: Optional[str],
    ) -> IssuePatch:
        if decision == ReviewDecision.REASSIGN:
            if not reviewer_id or not reviewer_id.strip():
                raise ValidationError("Reassigning requires a reviewer", details={"field": "reviewer_id"})
            return IssuePatch.of(ReviewerChange(reviewer_id=reviewer_id))

        if decision == ReviewDecision.APPROVE:
            allowed = {WorkflowStateType.COMPLETED}
            fallback = first_of_type(states.values(), WorkflowStateType.COMPLETED)
        else:
            allowed = set(SEND_BACK_TYPES)
            fallback = first_of_type(states.values(), WorkflowStateType.UNSTARTED)

        if target_state_id:
            target = self.require_state(states, target_state_id)
            if target.type not in allowed:
                raise ValidationError(
                    f"Stage '{target.name}' is not a valid target for {decision.value}",
                    details={"field": "target_state_id", "type": target.type.value},
                )
        elif fallback is None:
            raise StateViolationError(
                f"Team has no stage to {decision.value} into",
                rule="missing_target_stage",
                details={"decision": decision.value},
            )
        else:
            target = fallback

        return IssuePatch.of(WorkflowStateChange(state_id=target.id, reason=reason))

    # =========================================================================
    # Delete
    # =========================================================================

    def authorize_delete(self, actor: UserIdentity, role: TeamRole) -> None:
        if role not in ELEVATED_ROLES:
            raise AuthorizationError(
                "Only team owners and admins can delete issues",
                action="delete_issue",
                user_id=actor.user_id,
            )

    async def _detach_children(
        self,
        tx: StoreSession,
        team_id: str,
        issue_id: str,
        actor: UserIdentity,
        skip: frozenset[str] = frozenset(),
    ) -> int:
        detached = 0
        for child in await tx.list_children(team_id, issue_id):
            if child.id in skip:
                continue
            child.parent_id = None
            child.touch(self.clock())
            await tx.save_issue(child)
            await self.activity.log_parent_change(tx, child.id, actor, issue_id, None)
            detached += 1
        return detached

    async def delete_issue(self, team_id: str, issue_id: str, actor_id: Optional[str]) -> None:
        """
        Delete an issue. Its children lose their parent; its activity stays.

        Raises:
            AuthorizationError: If the actor is not an owner or admin
        """
        actor, role = await self.resolve_actor(team_id, actor_id)
        self.authorize_delete(actor, role)

        async def work() -> int:
            async with self.store.transaction() as tx:
                await self.ensure_team(tx, team_id)
                await self.load_issue(tx, team_id, issue_id)
                detached = await self._detach_children(tx, team_id, issue_id, actor)
                await tx.delete_issue(team_id, issue_id)
                return detached

        with LogContext(team_id=team_id, issue_id=issue_id, actor_id=actor.user_id):
            detached = await self.run("delete_issue", work)
            logger.info("Issue deleted", detached_children=detached)

    async def delete_issues(self, team_id: str, issue_ids: list[str], actor_id: Optional[str]) -> int:
        """
        Delete several issues atomically; one unknown id aborts the batch.

        Returns:
            Number of issues deleted
        """
        actor, role = await self.resolve_actor(team_id, actor_id)
        ids = normalize_ids(issue_ids)
        if not ids:
            raise ValidationError("No issues to delete", details={"field": "issue_ids"})
        self.authorize_delete(actor, role)
        doomed = frozenset(ids)

        async def work() -> int:
            async with self.store.transaction() as tx:
                await self.ensure_team(tx, team_id)
                for issue_id in ids:
                    await self.load_issue(tx, team_id, issue_id)
                for issue_id in ids:
                    await self._detach_children(tx, team_id, issue_id, actor, skip=doomed)
                    await tx.delete_issue(team_id, issue_id)
                return len(ids)

        with LogContext(team_id=team_id, actor_id=actor.user_id):
            count = await self.run("delete_issues", work, timeout=settings.workflow.bulk_transaction_timeout_seconds)
            logger.info("Issues deleted", count=count)
        return count

    # =========================================================================
    # Activity
    # =========================================================================

    async def list_activity(
        self,
        team_id: str,
        issue_id: str,
        actor_id: Optional[str],
        cursor: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ActivityPage:
        """Reverse-chronological, cursor-paginated activity of an issue."""
        await self.resolve_actor(team_id, actor_id)

        async def work() -> ActivityPage:
            async with self.store.transaction() as tx:
                await self.ensure_team(tx, team_id)
                await self.load_issue(tx, team_id, issue_id)
                return await self.activity.list_activity(tx, issue_id, cursor=cursor, limit=limit)

        return await self.run("list_activity", work)
