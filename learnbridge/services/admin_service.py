"""
Administration: accounts, catalogue, broadcasts and the audit trail.

Every mutating call is admin-only and leaves an ``audit_logs`` entry.
"""

from datetime import datetime
from typing import Any, Callable, Optional

from learnbridge.errors import AuthorizationError, InputValidationError, NotFoundError
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.records_schema import AuditLogEntry, Department, Module
from learnbridge.schemas.user_schema import AccountStatus, Actor, UserProfile, UserRole
from learnbridge.services.access_guard import ensure_role
from learnbridge.services.audit import AuditLog
from learnbridge.services.notification_service import NotificationService
from learnbridge.store.base import DEPARTMENTS, MODULES, USERS, DocumentStore, OrderBy, where
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)

EDITABLE_FIELDS = frozenset({
    "name", "role", "department", "modules", "year", "course",
    "bio", "qualifications", "location",
})


class AdminService:
    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditLog] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self.notifications = notifications or NotificationService(store, clock=clock)
        self.audit = audit or AuditLog(store, clock)

    def _authorize(self, actor: Actor) -> None:
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.ADMIN)

    async def _profile(self, user_id: str) -> UserProfile:
        row = await self._store.get(USERS, user_id)
        if row is None:
            raise NotFoundError(USERS, user_id)
        return UserProfile.model_validate(row)

    # ------------------------------------------------------------------ #
    # Accounts
    # ------------------------------------------------------------------ #

    async def list_users(
        self,
        actor: Actor,
        role: Optional[UserRole] = None,
        status: Optional[AccountStatus] = None,
    ) -> list[UserProfile]:
        self._authorize(actor)
        filters = [where("role", "==", UserRole(role).value)] if role else []
        rows = await self._store.query(USERS, filters, order_by=OrderBy("name"))
        users = [UserProfile.model_validate(r) for r in rows]
        if status:
            users = [u for u in users if u.status == AccountStatus(status)]
        return users

    async def _set_status(self, actor: Actor, user_id: str, status: AccountStatus) -> UserProfile:
        self._authorize(actor)
        if user_id == actor.id:
            raise AuthorizationError("You cannot change the status of your own account.")
        profile = await self._profile(user_id)
        changes: dict[str, Any] = {"status": status}
        if status == AccountStatus.ACTIVE:
            changes["approved_at"] = self._clock()
        updated = profile.model_copy(update=changes)
        revision = await self._store.update(
            USERS, user_id, updated.dump_fields(set(changes)), expected_revision=profile.revision
        )
        await self.audit.record(
            actor, f"user.{status.value}", target=user_id,
            details={"from": profile.status.value, "to": status.value},
        )
        logger.info("Account %s: %s -> %s", user_id, profile.status.value, status.value)
        return updated.model_copy(update={"revision": revision})

    async def approve_account(self, actor: Actor, user_id: str) -> UserProfile:
        return await self._set_status(actor, user_id, AccountStatus.ACTIVE)

    async def suspend_account(self, actor: Actor, user_id: str) -> UserProfile:
        return await self._set_status(actor, user_id, AccountStatus.SUSPENDED)

    async def update_user(self, actor: Actor, user_id: str, **fields: Any) -> UserProfile:
        """Edit profile fields on someone's behalf."""
        self._authorize(actor)
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise InputValidationError(f"Cannot edit: {', '.join(sorted(unknown))}.")
        profile = await self._profile(user_id)
        try:
            updated = UserProfile.model_validate({**profile.model_dump(), **fields})
        except ValueError as exc:
            raise InputValidationError(str(exc)) from None
        revision = await self._store.update(
            USERS, user_id, updated.dump_fields(set(fields)), expected_revision=profile.revision
        )
        await self.audit.record(actor, "user.update", target=user_id, details={"fields": sorted(fields)})
        return updated.model_copy(update={"revision": revision})

    # ------------------------------------------------------------------ #
    # Departments and modules
    # ------------------------------------------------------------------ #

    async def list_departments(self) -> list[Department]:
        rows = await self._store.query(DEPARTMENTS, order_by=OrderBy("name"))
        return [Department.model_validate(r) for r in rows]

    async def create_department(self, actor: Actor, name: str) -> Department:
        self._authorize(actor)
        name = (name or "").strip()
        if not name:
            raise InputValidationError("Department name is required.")
        if await self._store.count_where(DEPARTMENTS, [where("name", "==", name)]):
            raise InputValidationError(f"Department '{name}' already exists.")
        department = Department(name=name, created_at=self._clock())
        dept_id = await self._store.create(DEPARTMENTS, department.to_record())
        await self.audit.record(actor, "department.create", target=dept_id, details={"name": name})
        return department.model_copy(update={"id": dept_id, "revision": 1})

    async def rename_department(self, actor: Actor, dept_id: str, name: str) -> None:
        self._authorize(actor)
        name = (name or "").strip()
        if not name:
            raise InputValidationError("Department name is required.")
        await self._store.update(DEPARTMENTS, dept_id, {"name": name})
        await self.audit.record(actor, "department.rename", target=dept_id, details={"name": name})

    async def delete_department(self, actor: Actor, dept_id: str) -> None:
        self._authorize(actor)
        await self._store.delete(DEPARTMENTS, dept_id)
        await self.audit.record(actor, "department.delete", target=dept_id)

    async def list_modules(self, department: Optional[str] = None) -> list[Module]:
        filters = [where("department", "==", department)] if department else []
        rows = await self._store.query(MODULES, filters, order_by=OrderBy("code"))
        return [Module.model_validate(r) for r in rows]

    async def create_module(
        self, actor: Actor, code: str, name: str, department: Optional[str] = None
    ) -> Module:
        self._authorize(actor)
        code, name = (code or "").strip().upper(), (name or "").strip()
        if not code or not name:
            raise InputValidationError("Module code and name are required.")
        if await self._store.count_where(MODULES, [where("code", "==", code)]):
            raise InputValidationError(f"Module {code} already exists.")
        module = Module(code=code, name=name, department=department, created_at=self._clock())
        module_id = await self._store.create(MODULES, module.to_record())
        await self.audit.record(actor, "module.create", target=module_id, details={"code": code})
        return module.model_copy(update={"id": module_id, "revision": 1})

    async def delete_module(self, actor: Actor, module_id: str) -> None:
        self._authorize(actor)
        await self._store.delete(MODULES, module_id)
        await self.audit.record(actor, "module.delete", target=module_id)

    # ------------------------------------------------------------------ #
    # Broadcasts and audit
    # ------------------------------------------------------------------ #

    async def broadcast(self, actor: Actor, title: str, message: str, target: str = "all") -> str:
        self._authorize(actor)
        title, message = (title or "").strip(), (message or "").strip()
        if not title or not message:
            raise InputValidationError("Title and message are required.")
        note_id = await self.notifications.push(title, message, target=target, from_admin=True)
        await self.audit.record(actor, "notification.push", target=note_id, details={"target": target})
        return note_id

    async def audit_trail(self, actor: Actor, limit: int = 100) -> list[AuditLogEntry]:
        self._authorize(actor)
        return await self.audit.recent(limit)
