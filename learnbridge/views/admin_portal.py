"""Admin portal: accounts, all bookings, issues, catalogue and broadcasts."""

from typing import Any, Optional, Union

from learnbridge.errors import PortalError, SlotConflictError
from learnbridge.schemas.booking_schema import BookingRequest, BookingStatus
from learnbridge.schemas.records_schema import AuditLogEntry, Department, Issue, Module
from learnbridge.schemas.user_schema import AccountStatus, UserProfile, UserRole
from learnbridge.services.admin_service import AdminService
from learnbridge.services.dashboard import AdminDashboardStats
from learnbridge.services.issue_service import IssueService
from learnbridge.utils import Instant
from learnbridge.views.base import PortalView


class AdminPortal(PortalView):
    ROLES = (UserRole.ADMIN,)
    REQUIRE_ACTIVE = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.admin = AdminService(self._store, self._clock, self.notifications, self.audit)
        self.issues = IssueService(self._store, self._clock, self.audit)
        self.last_conflict: Optional[SlotConflictError] = None

    def exit(self) -> None:
        super().exit()
        self.last_conflict = None

    async def dashboard(self) -> Union[AdminDashboardStats, str]:
        return await self._load(self.dashboards.admin_dashboard(self._require_actor()))

    # ------------------------------------------------------------------ #
    # Accounts
    # ------------------------------------------------------------------ #

    async def users(
        self, role: Optional[UserRole] = None, status: Optional[AccountStatus] = None
    ) -> Union[list[UserProfile], str]:
        return await self._load(self.admin.list_users(self._require_actor(), role, status))

    async def approve_account(self, user_id: str) -> Optional[UserProfile]:
        return await self._act(
            self.admin.approve_account(self._require_actor(), user_id), "Error approving account"
        )

    async def suspend_account(self, user_id: str) -> Optional[UserProfile]:
        return await self._act(
            self.admin.suspend_account(self._require_actor(), user_id), "Error suspending account"
        )

    async def edit_user(self, user_id: str, **fields: Any) -> Optional[UserProfile]:
        return await self._act(
            self.admin.update_user(self._require_actor(), user_id, **fields), "Error saving user"
        )

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    async def all_bookings(
        self, status: Optional[BookingStatus] = None
    ) -> Union[list[BookingRequest], str]:
        return await self._load(self.bookings.list_all(self._require_actor(), status))

    async def approve_booking(
        self,
        booking_id: str,
        slot: Optional[Instant] = None,
        venue: Optional[str] = None,
        override_conflict: bool = False,
    ) -> Optional[BookingRequest]:
        self.last_conflict = None
        try:
            return await self.bookings.approve(
                self._require_actor(), booking_id, slot,
                venue=venue, override_conflict=override_conflict,
            )
        except SlotConflictError as exc:
            self.last_conflict = exc
            self.alert(f"{exc} Approve anyway?")
        except PortalError as exc:
            self._report(exc, "Error approving")
        return None

    async def reject_booking(self, booking_id: str, reason: Optional[str] = None) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.reject(self._require_actor(), booking_id, reason), "Error rejecting"
        )

    async def cancel_booking(self, booking_id: str) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.cancel(self._require_actor(), booking_id), "Error cancelling"
        )

    async def delete_booking(self, booking_id: str) -> bool:
        return await self._done(
            self.bookings.delete_booking(self._require_actor(), booking_id), "Error deleting"
        )

    # ------------------------------------------------------------------ #
    # Issues
    # ------------------------------------------------------------------ #

    async def open_issues(self) -> Union[list[Issue], str]:
        return await self._load(self.issues.list_open(self._require_actor()))

    async def assign_issue(self, issue_id: str, assignee_id: str) -> Optional[Issue]:
        return await self._act(
            self.issues.assign(self._require_actor(), issue_id, assignee_id), "Error assigning issue"
        )

    async def start_issue(self, issue_id: str) -> Optional[Issue]:
        return await self._act(self.issues.start(self._require_actor(), issue_id), "Error updating issue")

    async def resolve_issue(self, issue_id: str) -> Optional[Issue]:
        return await self._act(self.issues.resolve(self._require_actor(), issue_id), "Error resolving issue")

    # ------------------------------------------------------------------ #
    # Catalogue, broadcasts, audit
    # ------------------------------------------------------------------ #

    async def departments(self) -> Union[list[Department], str]:
        return await self._load(self.admin.list_departments())

    async def add_department(self, name: str) -> Optional[Department]:
        return await self._act(
            self.admin.create_department(self._require_actor(), name), "Error adding department"
        )

    async def rename_department(self, dept_id: str, name: str) -> bool:
        return await self._done(
            self.admin.rename_department(self._require_actor(), dept_id, name),
            "Error renaming department",
        )

    async def delete_department(self, dept_id: str) -> bool:
        return await self._done(
            self.admin.delete_department(self._require_actor(), dept_id), "Error deleting department"
        )

    async def modules(self, department: Optional[str] = None) -> Union[list[Module], str]:
        return await self._load(self.admin.list_modules(department))

    async def add_module(self, code: str, name: str, department: Optional[str] = None) -> Optional[Module]:
        return await self._act(
            self.admin.create_module(self._require_actor(), code, name, department),
            "Error adding module",
        )

    async def delete_module(self, module_id: str) -> bool:
        return await self._done(
            self.admin.delete_module(self._require_actor(), module_id), "Error deleting module"
        )

    async def broadcast(self, title: str, message: str, target: str = "all") -> Optional[str]:
        return await self._act(
            self.admin.broadcast(self._require_actor(), title, message, target), "Error sending"
        )

    async def audit_trail(self, limit: int = 100) -> Union[list[AuditLogEntry], str]:
        return await self._load(self.admin.audit_trail(self._require_actor(), limit))
