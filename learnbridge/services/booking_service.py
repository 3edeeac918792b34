"""
Booking negotiation service.

Every lifecycle operation follows the same path: load the booking,
work out which party the actor is, let ``resolve_transition`` validate
the move and compute the field changes, check the calendar where a
time gets fixed, then write the changed fields guarded by the revision
the caller read. A concurrent change by the other party surfaces as
``ConcurrencyConflictError`` instead of being silently overwritten.
Notification and audit writes come after the booking write; when they
fail the booking stays saved and the failure goes to ``on_warning``.

Usage:
    service = BookingService(store)
    booking = await service.request_session(student, "uid-tutor", slots)
    await service.approve(tutor, booking.id, slot=slots[1])
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from learnbridge.booking.availability import fits_schedule
from learnbridge.booking.conflicts import (
    fetch_active_bookings,
    find_soft_conflicts,
    has_conflict,
    next_available_from,
)
from learnbridge.booking.slot_builder import MultiSlotRequestBuilder
from learnbridge.booking.state_machine import (
    BookingParty,
    BookingTrigger,
    TransitionPolicy,
    apply_changes,
    resolve_transition,
)
from learnbridge.config import AppConfig, settings
from learnbridge.errors import (
    AuthorizationError,
    InputValidationError,
    NotFoundError,
    SlotConflictError,
    StoreWriteError,
)
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.booking_schema import (
    AvailabilitySlot,
    BookingMode,
    BookingRequest,
    BookingStatus,
    StaffRole,
)
from learnbridge.schemas.user_schema import AccountStatus, Actor, UserProfile, UserRole
from learnbridge.services.access_guard import ensure_active, ensure_role
from learnbridge.services.audit import AuditLog
from learnbridge.services.notification_service import NotificationService
from learnbridge.store.base import SESSIONS, USERS, DocumentStore, OrderBy, Record, where
from learnbridge.utils import Instant, utc_now

logger = get_actor_logger(__name__)

_STAFF_ROLES = (UserRole.TUTOR, UserRole.COUNSELLOR)


@dataclass(frozen=True)
class CandidateEvaluation:
    """Conflict status of one requested slot, as shown to the staff member."""

    slot: datetime
    conflict: bool
    next_available: Optional[datetime] = None
    in_schedule: Optional[bool] = None
    overlaps_other_requests: int = 0


def party_for(actor: Actor, booking: BookingRequest) -> BookingParty:
    """Map the actor onto the booking's negotiating party."""
    if actor.is_admin:
        return BookingParty.ADMIN
    if actor.id == booking.staff_id:
        return BookingParty.STAFF
    if actor.id == booking.requester_id:
        return BookingParty.REQUESTER
    raise AuthorizationError("You are not a party to this booking.")


class BookingService:
    def __init__(
        self,
        store: DocumentStore,
        config: AppConfig = settings,
        clock: Callable[[], datetime] = utc_now,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditLog] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock
        self._policy = TransitionPolicy.from_config(config)
        self.notifications = notifications or NotificationService(store, config, clock)
        self.audit = audit or AuditLog(store, clock)
        self._on_warning = on_warning

    # ------------------------------------------------------------------ #
    # Follow-up writes
    # ------------------------------------------------------------------ #

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self._on_warning is not None:
            self._on_warning(message)

    async def _notify(self, booking: BookingRequest, event: str, actor: Actor) -> None:
        """Tell the other party; the booking is already saved, so a failure only warns."""
        try:
            await self.notifications.notify_booking(booking, event, actor)
        except StoreWriteError as exc:
            self._warn(f"Booking saved, but the notification could not be sent: {exc}")

    async def _audit(self, actor: Actor, action: str, target: str, details=None) -> None:
        try:
            await self.audit.record(actor, action, target=target, details=details)
        except StoreWriteError as exc:
            self._warn(f"Change saved, but the audit entry could not be written: {exc}")

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    async def _load_staff(self, staff_id: str) -> UserProfile:
        record = await self._store.get(USERS, staff_id)
        if record is None:
            raise NotFoundError(USERS, staff_id)
        staff = UserProfile.model_validate(record)
        if not staff.is_staff:
            raise InputValidationError(f"{staff.name or staff_id} is not a tutor or counsellor.")
        if staff.status != AccountStatus.ACTIVE:
            raise InputValidationError(f"{staff.name or staff_id} is not accepting bookings.")
        return staff

    async def request_session(
        self,
        actor: Actor,
        staff_id: str,
        slots: Sequence[Instant],
        *,
        mode: BookingMode = BookingMode.ONLINE,
        notes: str = "",
        duration: Optional[int] = None,
    ) -> BookingRequest:
        """
        Create a pending request offering one or more candidate slots.

        No calendar check happens here; the staff member evaluates the
        candidates with ``evaluate_candidates`` before approving.

        Raises:
            InputValidationError: No slots, malformed or duplicate slots,
                too many slots, or the staff member cannot take bookings.
            AuthorizationError: The actor is not an active student.
        """
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.STUDENT)
        ensure_active(actor)
        builder = MultiSlotRequestBuilder.from_slots(
            slots, max_slots=self._config.booking.max_preferred_slots
        )
        staff = await self._load_staff(staff_id)
        try:
            mode = BookingMode(mode)
        except ValueError:
            raise InputValidationError(f"Unknown session mode {mode!r}.") from None

        draft = builder.build(
            requester_id=actor.id,
            requester_name=actor.name,
            staff_id=staff_id,
            staff_name=staff.name,
            role=StaffRole(staff.role.value),
            mode=mode,
            notes=notes,
            duration=duration or self._config.booking.default_duration_minutes,
            now=self._clock(),
        )
        record_id = await self._store.create(SESSIONS, draft.to_record())
        booking = draft.model_copy(update={"id": record_id, "revision": 1})
        logger.info(
            "Booking %s requested with %s (%d slot(s))",
            record_id, staff_id, len(booking.preferred_slots),
        )
        await self._notify(booking, "created", actor)
        return booking

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_booking(self, booking_id: str) -> BookingRequest:
        record = await self._store.get(SESSIONS, booking_id)
        if record is None:
            raise NotFoundError(SESSIONS, booking_id)
        return BookingRequest.model_validate(record)

    async def _list(self, filters, order_by: Optional[OrderBy] = None) -> list[BookingRequest]:
        rows = await self._store.query(
            SESSIONS, filters, order_by=order_by, limit=self._config.dashboard.query_limit
        )
        return [BookingRequest.model_validate(r) for r in rows]

    async def list_for_requester(self, actor: Actor) -> list[BookingRequest]:
        set_actor_id(actor.id)
        return await self._list(
            [where("requesterId", "==", actor.id)], OrderBy("createdAt", descending=True)
        )

    async def list_pending_for_staff(self, actor: Actor) -> list[BookingRequest]:
        """Requests awaiting this staff member: pending and suggested."""
        set_actor_id(actor.id)
        ensure_role(actor, *_STAFF_ROLES)
        return await self._list(
            [
                where("staffId", "==", actor.id),
                where("status", "in", [BookingStatus.PENDING.value, BookingStatus.SUGGESTED.value]),
            ],
            OrderBy("createdAt", descending=True),
        )

    async def list_upcoming_for_staff(self, actor: Actor) -> list[BookingRequest]:
        """Approved and running sessions, soonest first."""
        set_actor_id(actor.id)
        ensure_role(actor, *_STAFF_ROLES)
        return await self._list(
            [
                where("staffId", "==", actor.id),
                where("status", "in", [BookingStatus.APPROVED.value, BookingStatus.IN_PROGRESS.value]),
            ],
            OrderBy("datetime"),
        )

    async def list_all(
        self, actor: Actor, status: Optional[BookingStatus] = None
    ) -> list[BookingRequest]:
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.ADMIN)
        filters = [where("status", "==", BookingStatus(status).value)] if status else []
        return await self._list(filters, OrderBy("createdAt", descending=True))

    # ------------------------------------------------------------------ #
    # Calendar checks
    # ------------------------------------------------------------------ #

    async def _schedule_for(self, staff_id: str) -> Optional[list[AvailabilitySlot]]:
        if not self._config.booking.next_available_respects_schedule:
            return None
        record = await self._store.get(USERS, staff_id)
        if record is None:
            return None
        return list(UserProfile.model_validate(record).availability)

    def _next_free(
        self,
        records: list[Record],
        booking: BookingRequest,
        slot: datetime,
        schedule: Optional[list[AvailabilitySlot]],
    ) -> Optional[datetime]:
        return next_available_from(
            records,
            slot,
            booking.duration,
            stride_minutes=self._config.booking.search_stride_minutes,
            steps=self._config.booking.search_steps,
            exclude_id=booking.id,
            default_minutes=self._config.booking.default_duration_minutes,
            schedule=schedule,
            tz=self._config.tz,
        )

    async def _ensure_free(
        self, actor: Actor, booking: BookingRequest, slot: datetime, override: bool
    ) -> None:
        records = await fetch_active_bookings(self._store, booking.staff_id)
        if not has_conflict(
            records, slot, booking.duration,
            exclude_id=booking.id,
            default_minutes=self._config.booking.default_duration_minutes,
        ):
            return
        if override:
            logger.warning(
                "Booking %s fixed at %s despite a conflict (override by %s)",
                booking.id, slot.isoformat(), actor.id,
            )
            return
        schedule = await self._schedule_for(booking.staff_id)
        raise SlotConflictError(slot, self._next_free(records, booking, slot, schedule))

    async def evaluate_candidates(
        self, actor: Actor, booking_id: str
    ) -> list[CandidateEvaluation]:
        """
        Per-slot conflict status for a request, for the staff member choosing one.

        Conflicting slots carry the next free start. ``in_schedule`` is set
        when the staff member has a weekly schedule on file.
        """
        set_actor_id(actor.id)
        booking = await self.get_booking(booking_id)
        if party_for(actor, booking) == BookingParty.REQUESTER:
            raise AuthorizationError("Only staff can evaluate candidate slots.")

        records = await fetch_active_bookings(self._store, booking.staff_id)
        staff_record = await self._store.get(USERS, booking.staff_id)
        availability = (
            UserProfile.model_validate(staff_record).availability if staff_record else []
        )
        schedule = availability if self._config.booking.next_available_respects_schedule else None
        negotiating = await self._store.query(
            SESSIONS,
            [
                where("staffId", "==", booking.staff_id),
                where("status", "in", [BookingStatus.PENDING.value, BookingStatus.SUGGESTED.value]),
            ],
        )

        candidates = booking.preferred_slots or (
            [booking.scheduled_at] if booking.scheduled_at else []
        )
        results = []
        for slot in candidates:
            conflict = has_conflict(
                records, slot, booking.duration,
                exclude_id=booking.id,
                default_minutes=self._config.booking.default_duration_minutes,
            )
            soft = find_soft_conflicts(
                negotiating, [slot], booking.duration,
                exclude_id=booking.id,
                default_minutes=self._config.booking.default_duration_minutes,
            )
            results.append(CandidateEvaluation(
                slot=slot,
                conflict=conflict,
                next_available=self._next_free(records, booking, slot, schedule) if conflict else None,
                in_schedule=(
                    fits_schedule(availability, slot, booking.duration, self._config.tz)
                    if availability else None
                ),
                overlaps_other_requests=len(soft),
            ))
        return results

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    async def _load_for(self, actor: Actor, booking_id: str) -> tuple[BookingRequest, BookingParty]:
        set_actor_id(actor.id)
        ensure_active(actor)
        booking = await self.get_booking(booking_id)
        return booking, party_for(actor, booking)

    def _resolve(
        self, actor: Actor, booking: BookingRequest, trigger: BookingTrigger,
        party: BookingParty, **params: Any,
    ) -> dict[str, Any]:
        return resolve_transition(
            booking, trigger, party,
            now=self._clock(), policy=self._policy, actor_id=actor.id, **params,
        )

    async def _commit(
        self,
        actor: Actor,
        booking: BookingRequest,
        party: BookingParty,
        trigger: BookingTrigger,
        changes: dict[str, Any],
        expected_revision: Optional[int] = None,
        audit_details: Optional[dict[str, Any]] = None,
    ) -> BookingRequest:
        updated = apply_changes(booking, changes)
        revision = expected_revision if expected_revision is not None else booking.revision
        new_revision = await self._store.update(
            SESSIONS, booking.id, updated.dump_fields(set(changes)), expected_revision=revision
        )
        updated = updated.model_copy(update={"revision": new_revision})
        logger.info(
            "Booking %s: %s -> %s (%s by %s)",
            booking.id, booking.status.value, updated.status.value, trigger.value, party.value,
        )
        if party == BookingParty.ADMIN:
            await self._audit(actor, f"booking.{trigger.value}", booking.id, audit_details)
        await self._notify(updated, trigger.value, actor)
        return updated

    async def approve(
        self,
        actor: Actor,
        booking_id: str,
        slot: Optional[Instant] = None,
        *,
        venue: Optional[str] = None,
        override_conflict: bool = False,
        expected_revision: Optional[int] = None,
    ) -> BookingRequest:
        """
        Confirm one of the requested slots.

        Raises:
            GuardFailedError: ``slot`` is not among the requested slots, or an
                in-person session has no venue.
            SlotConflictError: The slot overlaps an active booking and
                ``override_conflict`` was not given. Carries the next free start.
        """
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(actor, booking, BookingTrigger.APPROVE, party, slot=slot, venue=venue)
        await self._ensure_free(actor, booking, changes["scheduled_at"], override_conflict)
        return await self._commit(
            actor, booking, party, BookingTrigger.APPROVE, changes, expected_revision,
            {"slot": changes["scheduled_at"].isoformat(), "override": override_conflict},
        )

    async def suggest_time(
        self,
        actor: Actor,
        booking_id: str,
        suggested_time: Instant,
        *,
        venue: Optional[str] = None,
        override_conflict: bool = False,
        expected_revision: Optional[int] = None,
    ) -> BookingRequest:
        """Counter-propose a time that is not among the requested slots."""
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(
            actor, booking, BookingTrigger.SUGGEST, party,
            suggested_time=suggested_time, venue=venue, suggested_by=booking.role.value,
        )
        await self._ensure_free(actor, booking, changes["suggested_time"], override_conflict)
        return await self._commit(
            actor, booking, party, BookingTrigger.SUGGEST, changes, expected_revision
        )

    async def suggest_next_available(
        self,
        actor: Actor,
        booking_id: str,
        *,
        venue: Optional[str] = None,
        expected_revision: Optional[int] = None,
    ) -> BookingRequest:
        """Suggest the first free start after the request's earliest slot."""
        booking, _ = await self._load_for(actor, booking_id)
        anchor = min(booking.preferred_slots) if booking.preferred_slots else booking.scheduled_at
        if anchor is None:
            raise InputValidationError("The request carries no slot to start from.")
        records = await fetch_active_bookings(self._store, booking.staff_id)
        schedule = await self._schedule_for(booking.staff_id)
        proposal = self._next_free(records, booking, anchor, schedule)
        if proposal is None:
            raise SlotConflictError(anchor, None)
        return await self.suggest_time(
            actor, booking_id, proposal, venue=venue, expected_revision=expected_revision
        )

    async def accept_suggestion(
        self,
        actor: Actor,
        booking_id: str,
        *,
        venue: Optional[str] = None,
        override_conflict: bool = False,
        expected_revision: Optional[int] = None,
    ) -> BookingRequest:
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(actor, booking, BookingTrigger.ACCEPT_SUGGESTION, party, venue=venue)
        await self._ensure_free(actor, booking, changes["scheduled_at"], override_conflict)
        return await self._commit(
            actor, booking, party, BookingTrigger.ACCEPT_SUGGESTION, changes, expected_revision
        )

    async def decline_suggestion(
        self, actor: Actor, booking_id: str, *, expected_revision: Optional[int] = None
    ) -> BookingRequest:
        """Drop the counter-proposal; the request goes back to pending."""
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(actor, booking, BookingTrigger.DECLINE_SUGGESTION, party)
        return await self._commit(
            actor, booking, party, BookingTrigger.DECLINE_SUGGESTION, changes, expected_revision
        )

    async def reject(
        self,
        actor: Actor,
        booking_id: str,
        reason: Optional[str] = None,
        *,
        expected_revision: Optional[int] = None,
    ) -> BookingRequest:
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(actor, booking, BookingTrigger.REJECT, party, reason=reason)
        return await self._commit(
            actor, booking, party, BookingTrigger.REJECT, changes, expected_revision,
            {"reason": changes["rejection_reason"]},
        )

    async def cancel(
        self, actor: Actor, booking_id: str, *, expected_revision: Optional[int] = None
    ) -> BookingRequest:
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(actor, booking, BookingTrigger.CANCEL, party)
        return await self._commit(
            actor, booking, party, BookingTrigger.CANCEL, changes, expected_revision
        )

    async def start_session(
        self,
        actor: Actor,
        booking_id: str,
        *,
        force: bool = False,
        expected_revision: Optional[int] = None,
    ) -> BookingRequest:
        """Open an online session; outside the start window only with ``force``."""
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(actor, booking, BookingTrigger.START, party, force=force)
        return await self._commit(
            actor, booking, party, BookingTrigger.START, changes, expected_revision
        )

    async def complete_session(
        self, actor: Actor, booking_id: str, *, expected_revision: Optional[int] = None
    ) -> BookingRequest:
        booking, party = await self._load_for(actor, booking_id)
        changes = self._resolve(actor, booking, BookingTrigger.COMPLETE, party)
        return await self._commit(
            actor, booking, party, BookingTrigger.COMPLETE, changes, expected_revision
        )

    async def delete_booking(self, actor: Actor, booking_id: str) -> None:
        """Remove a closed booking record (admin only)."""
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.ADMIN)
        booking = await self.get_booking(booking_id)
        if not booking.is_terminal:
            raise InputValidationError(
                f"Only rejected, cancelled or completed bookings can be deleted "
                f"(this one is {booking.status.value})."
            )
        await self._store.delete(SESSIONS, booking_id)
        await self._audit(actor, "booking.delete", booking_id, {"status": booking.status.value})
        logger.info("Booking %s deleted", booking_id)

