"""
Student portal: find staff, negotiate bookings, chat, rate and report.

The multi-slot builder and the selected staff member are this view's
own state; leaving the view discards them.
"""

from typing import Optional, Union

from learnbridge.booking.slot_builder import MultiSlotRequestBuilder
from learnbridge.schemas.booking_schema import BookingMode, BookingRequest
from learnbridge.schemas.records_schema import Issue, Rating
from learnbridge.schemas.user_schema import UserRole
from learnbridge.services.dashboard import RequesterDashboardStats
from learnbridge.services.issue_service import IssueService
from learnbridge.services.profile_service import StaffListing
from learnbridge.services.rating_service import RatingService
from learnbridge.utils import Instant
from learnbridge.views.base import PortalView


class StudentPortal(PortalView):
    ROLES = (UserRole.STUDENT,)

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.ratings = RatingService(self._store, self._clock)
        self.issues = IssueService(self._store, self._clock, self.audit)
        self.slot_builder = MultiSlotRequestBuilder(self._config.booking.max_preferred_slots)
        self.selected_staff_id: Optional[str] = None

    def exit(self) -> None:
        super().exit()
        self.slot_builder.clear()
        self.selected_staff_id = None

    async def dashboard(self) -> Union[RequesterDashboardStats, str]:
        return await self._load(self.dashboards.requester_dashboard(self._require_actor()))

    async def find_staff(
        self, role: Optional[UserRole] = None, query: str = ""
    ) -> Union[list[StaffListing], str]:
        return await self._load(self.profiles.search_staff(role, query))

    # ------------------------------------------------------------------ #
    # Booking
    # ------------------------------------------------------------------ #

    def select_staff(self, staff_id: str) -> None:
        """Start a fresh request for ``staff_id``."""
        self.selected_staff_id = staff_id
        self.slot_builder.clear()

    def add_slot(self, value: Instant) -> bool:
        ok, msg = self.slot_builder.add_slot(value)
        if not ok:
            self.alert(msg)
        return ok

    def remove_slot(self, index: int) -> bool:
        return self.slot_builder.remove_slot(index)

    async def submit_request(
        self, mode: BookingMode = BookingMode.ONLINE, notes: str = ""
    ) -> Optional[BookingRequest]:
        if self.selected_staff_id is None:
            self.alert("Choose a tutor or counsellor first.")
            return None
        booking = await self._act(
            self.bookings.request_session(
                self._require_actor(), self.selected_staff_id, self.slot_builder.slots,
                mode=mode, notes=notes,
            ),
            "Error sending request",
        )
        if booking is not None:
            self.slot_builder.clear()
        return booking

    async def my_sessions(self) -> Union[list[BookingRequest], str]:
        return await self._load(self.bookings.list_for_requester(self._require_actor()))

    async def accept_suggestion(self, booking_id: str) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.accept_suggestion(self._require_actor(), booking_id),
            "Error accepting suggestion",
        )

    async def decline_suggestion(self, booking_id: str) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.decline_suggestion(self._require_actor(), booking_id),
            "Error declining suggestion",
        )

    async def cancel(self, booking_id: str) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.cancel(self._require_actor(), booking_id), "Error cancelling"
        )

    # ------------------------------------------------------------------ #
    # Ratings and issues
    # ------------------------------------------------------------------ #

    async def rate(self, staff_id: str, stars: int, comment: str = "") -> Optional[Rating]:
        return await self._act(
            self.ratings.submit(self._require_actor(), staff_id, stars, comment),
            "Error submitting rating",
        )

    async def my_ratings(self, role: str = "", search: str = "") -> Union[list[Rating], str]:
        return await self._load(self.ratings.list_given(self._require_actor(), role, search))

    async def report_issue(
        self, title: str, description: str, priority: str = "Normal", category: str = "Other"
    ) -> Optional[Issue]:
        return await self._act(
            self.issues.report(self._require_actor(), title, description, priority, category),
            "Error reporting issue",
        )
