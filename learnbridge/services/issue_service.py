"""
Support issues raised by users and worked by admins.

Issues move open -> assigned -> in-progress -> resolved; an admin may
skip ahead but never go back.
"""

from datetime import datetime
from typing import Callable, Optional

from learnbridge.errors import InputValidationError, NotFoundError
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.records_schema import Issue, IssueCategory, IssuePriority, IssueStatus
from learnbridge.schemas.user_schema import Actor, UserRole
from learnbridge.services.access_guard import ensure_active, ensure_role
from learnbridge.services.audit import AuditLog
from learnbridge.store.base import ISSUES, USERS, DocumentStore, OrderBy, where
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)

ISSUE_TRANSITIONS: dict[IssueStatus, frozenset[IssueStatus]] = {
    IssueStatus.OPEN: frozenset({IssueStatus.ASSIGNED, IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED}),
    IssueStatus.ASSIGNED: frozenset({IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED}),
    IssueStatus.IN_PROGRESS: frozenset({IssueStatus.RESOLVED}),
    IssueStatus.RESOLVED: frozenset(),
}


class IssueTransitionError(InputValidationError):
    """The issue cannot move to the requested status."""


class IssueService:
    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
        audit: Optional[AuditLog] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self.audit = audit or AuditLog(store, clock)

    async def report(
        self,
        actor: Actor,
        title: str,
        description: str,
        priority: str = IssuePriority.NORMAL.value,
        category: str = IssueCategory.OTHER.value,
    ) -> Issue:
        set_actor_id(actor.id)
        ensure_active(actor)
        title, description = (title or "").strip(), (description or "").strip()
        if not title or not description:
            raise InputValidationError("Please fill in both title and description.")
        try:
            issue = Issue(
                reporter_id=actor.id,
                title=title,
                description=description,
                priority=IssuePriority(priority),
                category=IssueCategory(category),
                created_at=self._clock(),
            )
        except ValueError as exc:
            raise InputValidationError(str(exc)) from None
        issue_id = await self._store.create(ISSUES, issue.to_record())
        logger.info("Issue %s reported (%s, %s)", issue_id, issue.priority.value, issue.category.value)
        return issue.model_copy(update={"id": issue_id, "revision": 1})

    async def _get(self, issue_id: str) -> Issue:
        row = await self._store.get(ISSUES, issue_id)
        if row is None:
            raise NotFoundError(ISSUES, issue_id)
        return Issue.model_validate(row)

    async def _move(
        self, actor: Actor, issue_id: str, target: IssueStatus, **extra
    ) -> Issue:
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.ADMIN)
        issue = await self._get(issue_id)
        if target not in ISSUE_TRANSITIONS[issue.status]:
            raise IssueTransitionError(
                f"Issue is {issue.status.value}; it cannot become {target.value}."
            )
        changes = {"status": target, **extra}
        updated = issue.model_copy(update=changes)
        revision = await self._store.update(
            ISSUES, issue_id, updated.dump_fields(set(changes)), expected_revision=issue.revision
        )
        await self.audit.record(
            actor, f"issue.{target.value}", target=issue_id,
            details=updated.dump_fields(set(extra)) if extra else None,
        )
        return updated.model_copy(update={"revision": revision})

    async def assign(self, actor: Actor, issue_id: str, assignee_id: str) -> Issue:
        if await self._store.get(USERS, assignee_id) is None:
            raise NotFoundError(USERS, assignee_id)
        return await self._move(actor, issue_id, IssueStatus.ASSIGNED, assigned_to=assignee_id)

    async def start(self, actor: Actor, issue_id: str) -> Issue:
        return await self._move(actor, issue_id, IssueStatus.IN_PROGRESS)

    async def resolve(self, actor: Actor, issue_id: str) -> Issue:
        return await self._move(actor, issue_id, IssueStatus.RESOLVED, resolved_at=self._clock())

    async def list_open(self, actor: Actor) -> list[Issue]:
        """Unresolved issues, urgent ones first, then oldest first."""
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.ADMIN)
        rows = await self._store.query(
            ISSUES,
            [where("status", "in", [s.value for s in IssueStatus if s != IssueStatus.RESOLVED])],
            order_by=OrderBy("createdAt"),
        )
        issues = [Issue.model_validate(r) for r in rows]
        return sorted(issues, key=lambda i: i.priority != IssuePriority.URGENT)

    async def list_mine(self, actor: Actor) -> list[Issue]:
        rows = await self._store.query(
            ISSUES, [where("reporterId", "==", actor.id)],
            order_by=OrderBy("createdAt", descending=True),
        )
        return [Issue.model_validate(r) for r in rows]
