"""
Tutor and counsellor portal.

Staff evaluate incoming requests slot by slot, then approve, suggest or
reject. An approval that collides with the calendar is held in
``last_conflict`` so the view can offer "approve anyway" with
``override_conflict=True``. The weekly availability editor is opened
per view and dropped on exit.
"""

from datetime import datetime
from typing import Optional, Union

from learnbridge.booking.availability import AvailabilityEditor, is_available_at
from learnbridge.errors import InputValidationError, PortalError, SlotConflictError
from learnbridge.logging_context import get_actor_logger
from learnbridge.schemas.booking_schema import AvailabilitySlot, BookingRequest
from learnbridge.schemas.records_schema import Rating
from learnbridge.schemas.user_schema import UserRole
from learnbridge.services.booking_service import CandidateEvaluation
from learnbridge.services.dashboard import StaffDashboardStats
from learnbridge.services.rating_service import RatingService
from learnbridge.utils import Instant, format_instant
from learnbridge.views.base import PortalView

logger = get_actor_logger(__name__)


class StaffPortal(PortalView):
    ROLES = (UserRole.TUTOR, UserRole.COUNSELLOR)

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.ratings = RatingService(self._store, self._clock)
        self.availability: Optional[AvailabilityEditor] = None
        self.last_conflict: Optional[SlotConflictError] = None

    def exit(self) -> None:
        super().exit()
        if self.availability is not None and self.availability.dirty:
            logger.info("Discarding unsaved availability changes")
        self.availability = None
        self.last_conflict = None

    async def dashboard(self) -> Union[StaffDashboardStats, str]:
        return await self._load(self.dashboards.staff_dashboard(self._require_actor()))

    async def pending_today(self) -> Union[int, str]:
        return await self._load(self.dashboards.pending_today(self._require_actor()))

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def pending_requests(self) -> Union[list[BookingRequest], str]:
        return await self._load(self.bookings.list_pending_for_staff(self._require_actor()))

    async def upcoming(self) -> Union[list[BookingRequest], str]:
        return await self._load(self.bookings.list_upcoming_for_staff(self._require_actor()))

    async def evaluate(self, booking_id: str) -> Union[list[CandidateEvaluation], str]:
        return await self._load(self.bookings.evaluate_candidates(self._require_actor(), booking_id))

    async def approve(
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
            hint = (
                f"Next available: {format_instant(exc.next_available, self._config.tz)}."
                if exc.next_available else "No free slot found within the search window."
            )
            self.alert(f"This time conflicts with an existing booking. {hint} Approve anyway?")
        except PortalError as exc:
            self._report(exc, "Error approving")
        return None

    async def suggest(
        self, booking_id: str, suggested_time: Instant, venue: Optional[str] = None
    ) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.suggest_time(self._require_actor(), booking_id, suggested_time, venue=venue),
            "Error suggesting time",
        )

    async def suggest_next_available(
        self, booking_id: str, venue: Optional[str] = None
    ) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.suggest_next_available(self._require_actor(), booking_id, venue=venue),
            "Error suggesting time",
        )

    async def reject(self, booking_id: str, reason: Optional[str] = None) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.reject(self._require_actor(), booking_id, reason), "Error rejecting"
        )

    async def cancel(self, booking_id: str) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.cancel(self._require_actor(), booking_id), "Error cancelling"
        )

    async def start_session(self, booking_id: str, force: bool = False) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.start_session(self._require_actor(), booking_id, force=force),
            "Error starting session",
        )

    async def complete_session(self, booking_id: str) -> Optional[BookingRequest]:
        return await self._act(
            self.bookings.complete_session(self._require_actor(), booking_id),
            "Error completing session",
        )

    # ------------------------------------------------------------------ #
    # Weekly availability
    # ------------------------------------------------------------------ #

    async def open_availability(self) -> Union[list[AvailabilitySlot], str]:
        editor = AvailabilityEditor(self._store, self._require_actor().id)
        slots = await self._load(editor.load())
        if isinstance(slots, list):
            self.availability = editor
        return slots

    def _editor(self) -> AvailabilityEditor:
        if self.availability is None:
            raise InputValidationError("Open the availability editor first.")
        return self.availability

    def add_availability(
        self, day: str, from_: str, to: str, location: Optional[str] = None
    ) -> Optional[AvailabilitySlot]:
        try:
            return self._editor().add(day, from_, to, location)
        except InputValidationError as exc:
            self.alert(str(exc))
            return None

    def remove_availability(self, index: int) -> Optional[AvailabilitySlot]:
        try:
            return self._editor().remove(index)
        except InputValidationError as exc:
            self.alert(str(exc))
            return None

    def apply_weekday_preset(self, location: Optional[str] = None) -> bool:
        try:
            self._editor().apply_preset(location)
        except InputValidationError as exc:
            self.alert(str(exc))
            return False
        return True

    async def save_availability(self) -> bool:
        if self.availability is None:
            self.alert("Open the availability editor first.")
            return False
        return await self._done(self.availability.save(), "Error saving availability")

    def is_available_now(self, now: Optional[datetime] = None) -> bool:
        slots = self.availability.slots if self.availability else []
        return is_available_at(slots, now or self._clock(), self._config.tz)

    # ------------------------------------------------------------------ #
    # Ratings
    # ------------------------------------------------------------------ #

    async def my_ratings(self) -> Union[list[Rating], str]:
        return await self._load(self.ratings.list_for_staff(self._require_actor()))

    async def reply_to_rating(self, rating_id: str, text: str) -> Optional[Rating]:
        return await self._act(
            self.ratings.reply(self._require_actor(), rating_id, text), "Error sending reply"
        )
