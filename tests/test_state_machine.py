"""Tests for the booking state machine and its transition guards."""

from datetime import timedelta

import pytest

from learnbridge.booking.state_machine import (
    BookingParty,
    BookingStateMachine,
    BookingTrigger,
    GuardFailedError,
    InvalidTransitionError,
    TransitionPolicy,
    apply_changes,
    resolve_transition,
)
from learnbridge.schemas.booking_schema import (
    TERMINAL_STATUSES,
    BookingMode,
    BookingRequest,
    BookingStatus,
    StaffRole,
)
from learnbridge.utils import normalize_instant
from conftest import NOW

POLICY = TransitionPolicy()
SLOT_A = normalize_instant("2025-03-10T10:00:00Z")
SLOT_B = normalize_instant("2025-03-11T09:30:00Z")


def make_booking(**fields) -> BookingRequest:
    data = dict(
        id="b1",
        revision=1,
        requester_id="uid-student",
        staff_id="uid-tutor",
        role=StaffRole.TUTOR,
        preferred_slots=[SLOT_A, SLOT_B],
        mode=BookingMode.ONLINE,
        status=BookingStatus.PENDING,
    )
    data.update(fields)
    return BookingRequest(**data)


def resolve(booking, trigger, party=BookingParty.STAFF, **params):
    return resolve_transition(booking, trigger, party, now=NOW, policy=POLICY, **params)


class TestInitialState:
    def test_starts_pending(self):
        assert BookingStateMachine().current_state == BookingStatus.PENDING

    def test_initial_history_has_one_entry(self):
        assert len(BookingStateMachine().get_history()) == 1

    def test_pending_not_terminal(self):
        assert not BookingStateMachine().is_terminal()

    def test_staff_triggers_from_pending(self):
        triggers = BookingStateMachine().get_valid_triggers(BookingParty.STAFF)
        assert set(triggers) == {
            BookingTrigger.APPROVE, BookingTrigger.SUGGEST,
            BookingTrigger.REJECT, BookingTrigger.CANCEL,
        }

    def test_requester_may_only_cancel_pending(self):
        triggers = BookingStateMachine().get_valid_triggers(BookingParty.REQUESTER)
        assert triggers == [BookingTrigger.CANCEL]


class TestTransitionTable:
    @pytest.mark.parametrize("start,trigger,party,end", [
        (BookingStatus.PENDING, BookingTrigger.APPROVE, BookingParty.STAFF, BookingStatus.APPROVED),
        (BookingStatus.PENDING, BookingTrigger.APPROVE, BookingParty.ADMIN, BookingStatus.APPROVED),
        (BookingStatus.PENDING, BookingTrigger.SUGGEST, BookingParty.STAFF, BookingStatus.SUGGESTED),
        (BookingStatus.PENDING, BookingTrigger.REJECT, BookingParty.ADMIN, BookingStatus.REJECTED),
        (BookingStatus.PENDING, BookingTrigger.CANCEL, BookingParty.REQUESTER, BookingStatus.CANCELLED),
        (BookingStatus.SUGGESTED, BookingTrigger.ACCEPT_SUGGESTION, BookingParty.REQUESTER,
         BookingStatus.APPROVED),
        (BookingStatus.SUGGESTED, BookingTrigger.DECLINE_SUGGESTION, BookingParty.REQUESTER,
         BookingStatus.PENDING),
        (BookingStatus.SUGGESTED, BookingTrigger.REJECT, BookingParty.STAFF, BookingStatus.REJECTED),
        (BookingStatus.APPROVED, BookingTrigger.START, BookingParty.STAFF, BookingStatus.IN_PROGRESS),
        (BookingStatus.APPROVED, BookingTrigger.CANCEL, BookingParty.ADMIN, BookingStatus.CANCELLED),
        (BookingStatus.IN_PROGRESS, BookingTrigger.COMPLETE, BookingParty.STAFF,
         BookingStatus.COMPLETED),
        (BookingStatus.IN_PROGRESS, BookingTrigger.CANCEL, BookingParty.STAFF,
         BookingStatus.CANCELLED),
    ])
    def test_listed_transition(self, start, trigger, party, end):
        machine = BookingStateMachine(start)
        assert machine.transition(trigger, party) == end

    def test_history_records_trigger_and_party(self):
        machine = BookingStateMachine()
        machine.transition(BookingTrigger.APPROVE, BookingParty.STAFF)
        last = machine.get_history()[-1]
        assert last.trigger == BookingTrigger.APPROVE
        assert last.party == BookingParty.STAFF
        assert machine.get_state_trace() == ["pending", "approved"]

    def test_requester_cannot_approve(self):
        with pytest.raises(InvalidTransitionError, match="Allowed"):
            BookingStateMachine().transition(BookingTrigger.APPROVE, BookingParty.REQUESTER)

    def test_admin_cannot_suggest(self):
        with pytest.raises(InvalidTransitionError):
            BookingStateMachine().transition(BookingTrigger.SUGGEST, BookingParty.ADMIN)

    def test_requester_cannot_start_session(self):
        machine = BookingStateMachine(BookingStatus.APPROVED)
        with pytest.raises(InvalidTransitionError):
            machine.transition(BookingTrigger.START, BookingParty.REQUESTER)

    def test_failed_transition_keeps_state(self):
        machine = BookingStateMachine(BookingStatus.APPROVED)
        with pytest.raises(InvalidTransitionError):
            machine.transition(BookingTrigger.COMPLETE, BookingParty.STAFF)
        assert machine.current_state == BookingStatus.APPROVED
        assert len(machine.get_history()) == 1


class TestTerminalStates:
    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    @pytest.mark.parametrize("trigger", list(BookingTrigger))
    def test_terminal_rejects_every_trigger(self, status, trigger):
        machine = BookingStateMachine(status)
        assert machine.is_terminal()
        for party in BookingParty:
            assert not machine.can_transition(trigger, party)
            with pytest.raises(InvalidTransitionError):
                machine.transition(trigger, party)
        assert machine.current_state == status

    def test_completed_to_approved_rejected_with_valid_list(self):
        booking = make_booking(status=BookingStatus.COMPLETED, preferred_slots=[])
        with pytest.raises(InvalidTransitionError, match="Valid triggers: \\[\\]"):
            resolve(booking, BookingTrigger.APPROVE, slot=SLOT_A)


class TestApproveGuard:
    def test_approve_fixes_chosen_slot_and_clears_candidates(self):
        booking = make_booking()
        changes = resolve(booking, BookingTrigger.APPROVE, slot="2025-03-11T09:30:00Z")
        updated = apply_changes(booking, changes)
        assert updated.status == BookingStatus.APPROVED
        assert updated.scheduled_at == SLOT_B
        assert updated.preferred_slots == []
        assert updated.approved_at == NOW

    def test_approve_matches_other_spelling_of_slot(self):
        changes = resolve(make_booking(), BookingTrigger.APPROVE, slot="2025-03-10T11:00:00+01:00")
        assert changes["scheduled_at"] == SLOT_A

    def test_approve_without_choice_rejected(self):
        with pytest.raises(GuardFailedError, match="Choose one"):
            resolve(make_booking(), BookingTrigger.APPROVE)

    def test_approve_unrequested_slot_rejected(self):
        with pytest.raises(GuardFailedError, match="suggest it instead"):
            resolve(make_booking(), BookingTrigger.APPROVE, slot="2025-03-12T10:00:00Z")

    def test_online_approval_gets_placeholder_venue(self):
        changes = resolve(make_booking(), BookingTrigger.APPROVE, slot=SLOT_A)
        assert changes["venue"] == POLICY.online_venue_placeholder

    def test_in_person_without_venue_rejected(self):
        booking = make_booking(mode=BookingMode.IN_PERSON)
        with pytest.raises(GuardFailedError, match="venue is required"):
            resolve(booking, BookingTrigger.APPROVE, slot=SLOT_A)
        with pytest.raises(GuardFailedError):
            resolve(booking, BookingTrigger.APPROVE, slot=SLOT_A, venue="   ")

    def test_in_person_with_venue_approved(self):
        booking = make_booking(mode=BookingMode.IN_PERSON)
        changes = resolve(booking, BookingTrigger.APPROVE, slot=SLOT_A, venue="Library room 2")
        assert changes["venue"] == "Library room 2"
        assert changes["status"] == BookingStatus.APPROVED

    def test_single_slot_request_approved_at_own_time(self):
        booking = make_booking(preferred_slots=[], scheduled_at=SLOT_A)
        changes = resolve(booking, BookingTrigger.APPROVE)
        assert changes["scheduled_at"] == SLOT_A

    def test_single_slot_request_rejects_other_time(self):
        booking = make_booking(preferred_slots=[], scheduled_at=SLOT_A)
        with pytest.raises(GuardFailedError):
            resolve(booking, BookingTrigger.APPROVE, slot=SLOT_B)

    def test_request_without_any_slot_cannot_be_approved(self):
        with pytest.raises(GuardFailedError, match="no slot"):
            resolve(make_booking(preferred_slots=[]), BookingTrigger.APPROVE)


class TestSuggestGuards:
    def test_suggest_sets_proposal(self):
        changes = resolve(make_booking(), BookingTrigger.SUGGEST, suggested_time="2025-03-12T11:00:00Z")
        assert changes["status"] == BookingStatus.SUGGESTED
        assert changes["suggested_time"] == normalize_instant("2025-03-12T11:00:00Z")
        assert changes["suggested_by"] == "tutor"

    def test_suggest_requested_slot_rejected(self):
        with pytest.raises(GuardFailedError, match="already requested"):
            resolve(make_booking(), BookingTrigger.SUGGEST, suggested_time=SLOT_A)

    def test_suggest_requires_time(self):
        with pytest.raises(GuardFailedError):
            resolve(make_booking(), BookingTrigger.SUGGEST)

    def test_in_person_suggestion_requires_venue(self):
        booking = make_booking(mode=BookingMode.IN_PERSON)
        with pytest.raises(GuardFailedError, match="venue"):
            resolve(booking, BookingTrigger.SUGGEST, suggested_time="2025-03-12T11:00:00Z")

    def test_accept_moves_suggestion_into_datetime(self):
        proposal = normalize_instant("2025-03-12T11:00:00Z")
        booking = make_booking(
            status=BookingStatus.SUGGESTED, suggested_time=proposal, suggested_by="tutor"
        )
        updated = apply_changes(
            booking, resolve(booking, BookingTrigger.ACCEPT_SUGGESTION, BookingParty.REQUESTER)
        )
        assert updated.status == BookingStatus.APPROVED
        assert updated.scheduled_at == proposal
        assert updated.suggested_time is None
        assert updated.suggested_by is None
        assert updated.preferred_slots == []

    def test_accept_without_suggestion_rejected(self):
        booking = make_booking(status=BookingStatus.SUGGESTED)
        with pytest.raises(GuardFailedError):
            resolve(booking, BookingTrigger.ACCEPT_SUGGESTION, BookingParty.REQUESTER)

    def test_decline_keeps_candidates(self):
        booking = make_booking(
            status=BookingStatus.SUGGESTED,
            suggested_time=normalize_instant("2025-03-12T11:00:00Z"),
        )
        updated = apply_changes(
            booking, resolve(booking, BookingTrigger.DECLINE_SUGGESTION, BookingParty.REQUESTER)
        )
        assert updated.status == BookingStatus.PENDING
        assert updated.suggested_time is None
        assert updated.preferred_slots == [SLOT_A, SLOT_B]


class TestOtherEffects:
    def test_reject_stamps_time_and_reason(self):
        changes = resolve(make_booking(), BookingTrigger.REJECT, reason="  Fully booked  ")
        assert changes["rejected_at"] == NOW
        assert changes["rejection_reason"] == "Fully booked"

    def test_blank_reason_stored_as_none(self):
        assert resolve(make_booking(), BookingTrigger.REJECT, reason=" ")["rejection_reason"] is None

    def test_cancel_records_who(self):
        changes = resolve(
            make_booking(), BookingTrigger.CANCEL, BookingParty.REQUESTER, actor_id="uid-student"
        )
        assert changes["cancelled_at"] == NOW
        assert changes["cancelled_by"] == "uid-student"

    def test_terminal_booking_keeps_candidates(self):
        booking = make_booking()
        updated = apply_changes(booking, resolve(booking, BookingTrigger.REJECT))
        assert updated.preferred_slots == [SLOT_A, SLOT_B]

    def test_complete_stamps_time(self):
        booking = make_booking(status=BookingStatus.IN_PROGRESS, preferred_slots=[], scheduled_at=SLOT_A)
        assert resolve(booking, BookingTrigger.COMPLETE)["completed_at"] == NOW


class TestStartGuard:
    def approved(self, **fields):
        return make_booking(
            status=BookingStatus.APPROVED, preferred_slots=[], scheduled_at=NOW, **fields
        )

    def test_start_inside_window(self):
        booking = self.approved()
        policy = TransitionPolicy(start_window=timedelta(minutes=15))
        changes = resolve_transition(
            booking, BookingTrigger.START, BookingParty.STAFF,
            now=NOW + timedelta(minutes=10), policy=policy,
        )
        assert changes["status"] == BookingStatus.IN_PROGRESS
        assert changes["started_at"] == NOW + timedelta(minutes=10)

    def test_start_outside_window_rejected(self):
        booking = self.approved()
        with pytest.raises(GuardFailedError, match="15-minute start window"):
            resolve_transition(
                booking, BookingTrigger.START, BookingParty.STAFF,
                now=NOW - timedelta(hours=2), policy=POLICY,
            )

    def test_force_overrides_window(self):
        booking = self.approved()
        changes = resolve_transition(
            booking, BookingTrigger.START, BookingParty.STAFF,
            now=NOW - timedelta(hours=2), policy=POLICY, force=True,
        )
        assert changes["status"] == BookingStatus.IN_PROGRESS

    def test_window_disabled_by_policy(self):
        booking = self.approved()
        policy = TransitionPolicy(enforce_start_window=False)
        changes = resolve_transition(
            booking, BookingTrigger.START, BookingParty.STAFF,
            now=NOW - timedelta(days=1), policy=policy,
        )
        assert changes["status"] == BookingStatus.IN_PROGRESS

    def test_in_person_cannot_start_online(self):
        booking = self.approved(mode=BookingMode.IN_PERSON, venue="Room 1")
        with pytest.raises(GuardFailedError, match="not online"):
            resolve(booking, BookingTrigger.START, force=True)

    def test_policy_from_config(self):
        from conftest import make_config
        policy = TransitionPolicy.from_config(make_config(start_window_minutes=30))
        assert policy.start_window == timedelta(minutes=30)
        assert policy.enforce_start_window is True
