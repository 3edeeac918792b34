"""
Finite state machine for the booking request lifecycle.

One authoritative transition table decides which status changes exist
and which party may fire them. ``resolve_transition`` layers the guards
and side effects of each transition on top of the table, so every
portal computes the same field changes for the same action.

Usage:
    sm = BookingStateMachine()
    sm.transition(BookingTrigger.APPROVE, BookingParty.STAFF)
    assert sm.current_state == BookingStatus.APPROVED

    changes = resolve_transition(
        booking, BookingTrigger.APPROVE, BookingParty.STAFF,
        now=now, policy=TransitionPolicy.from_config(settings), slot=chosen,
    )
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from learnbridge.config import AppConfig
from learnbridge.errors import PortalError
from learnbridge.schemas.booking_schema import (
    TERMINAL_STATUSES,
    BookingMode,
    BookingRequest,
    BookingStatus,
)
from learnbridge.utils import Instant, normalize_instant, utc_now

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Actions that move a booking between states."""
    APPROVE = "approve"
    SUGGEST = "suggest"
    ACCEPT_SUGGESTION = "accept_suggestion"
    DECLINE_SUGGESTION = "decline_suggestion"
    REJECT = "reject"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"


class BookingParty(str, Enum):
    """How the acting user relates to the booking."""
    REQUESTER = "requester"
    STAFF = "staff"
    ADMIN = "admin"


_REQUESTER = BookingParty.REQUESTER
_STAFF = BookingParty.STAFF
_ADMIN = BookingParty.ADMIN


@dataclass(frozen=True)
class Transition:
    """A single valid state transition and the parties allowed to fire it."""
    from_state: BookingStatus
    to_state: BookingStatus
    trigger: BookingTrigger
    parties: frozenset[BookingParty]


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: BookingStatus
    entered_at: datetime
    trigger: Optional[BookingTrigger] = None
    party: Optional[BookingParty] = None


class InvalidTransitionError(PortalError):
    """Raised when a transition is not valid from the current state or for the party."""


class GuardFailedError(PortalError):
    """Raised when a valid transition's precondition is not met."""


def _t(
    from_state: BookingStatus,
    to_state: BookingStatus,
    trigger: BookingTrigger,
    *parties: BookingParty,
) -> Transition:
    return Transition(from_state, to_state, trigger, frozenset(parties))


class BookingStateMachine:
    """
    Deterministic state machine for one booking request.

    Every transition must be explicitly listed. Anything else, including
    transitions out of a terminal state, is rejected with an error naming
    the triggers that are allowed.
    """

    TRANSITIONS: list[Transition] = [
        # --- Staff decision on a fresh request ---
        _t(BookingStatus.PENDING, BookingStatus.APPROVED, BookingTrigger.APPROVE, _STAFF, _ADMIN),
        _t(BookingStatus.PENDING, BookingStatus.SUGGESTED, BookingTrigger.SUGGEST, _STAFF),
        _t(BookingStatus.PENDING, BookingStatus.REJECTED, BookingTrigger.REJECT, _STAFF, _ADMIN),
        _t(BookingStatus.PENDING, BookingStatus.CANCELLED, BookingTrigger.CANCEL,
           _REQUESTER, _STAFF, _ADMIN),

        # --- Counter-proposal ---
        _t(BookingStatus.SUGGESTED, BookingStatus.APPROVED, BookingTrigger.ACCEPT_SUGGESTION,
           _REQUESTER, _STAFF),
        _t(BookingStatus.SUGGESTED, BookingStatus.PENDING, BookingTrigger.DECLINE_SUGGESTION,
           _REQUESTER, _STAFF),
        _t(BookingStatus.SUGGESTED, BookingStatus.REJECTED, BookingTrigger.REJECT, _STAFF, _ADMIN),
        _t(BookingStatus.SUGGESTED, BookingStatus.CANCELLED, BookingTrigger.CANCEL,
           _REQUESTER, _STAFF, _ADMIN),

        # --- Confirmed session ---
        _t(BookingStatus.APPROVED, BookingStatus.IN_PROGRESS, BookingTrigger.START, _STAFF),
        _t(BookingStatus.APPROVED, BookingStatus.CANCELLED, BookingTrigger.CANCEL,
           _REQUESTER, _STAFF, _ADMIN),
        _t(BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, BookingTrigger.COMPLETE, _STAFF),
        _t(BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, BookingTrigger.CANCEL,
           _REQUESTER, _STAFF, _ADMIN),
    ]

    def __init__(
        self,
        status: BookingStatus = BookingStatus.PENDING,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._clock = clock
        self._current_state = BookingStatus(status)
        self._history: list[StateEntry] = [
            StateEntry(state=self._current_state, entered_at=clock())
        ]

    @property
    def current_state(self) -> BookingStatus:
        return self._current_state

    def _find(self, trigger: BookingTrigger) -> Optional[Transition]:
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                return t
        return None

    def can_transition(self, trigger: BookingTrigger, party: BookingParty) -> bool:
        t = self._find(trigger)
        return t is not None and party in t.parties

    def transition(self, trigger: BookingTrigger, party: BookingParty) -> BookingStatus:
        """
        Execute a state transition.

        Args:
            trigger: The action being taken.
            party: How the acting user relates to the booking.

        Returns:
            The new booking status.

        Raises:
            InvalidTransitionError: If no such transition exists, or the
                party may not fire it.
        """
        t = self._find(trigger)
        if t is None:
            valid = [v.value for v in self.get_valid_triggers()]
            raise InvalidTransitionError(
                f"No valid transition from '{self._current_state.value}' "
                f"with trigger '{trigger.value}'. Valid triggers: {valid}"
            )
        if party not in t.parties:
            allowed = sorted(p.value for p in t.parties)
            raise InvalidTransitionError(
                f"'{party.value}' may not {trigger.value} a "
                f"'{self._current_state.value}' booking. Allowed: {allowed}"
            )

        old_state = self._current_state
        self._current_state = t.to_state
        self._history.append(StateEntry(
            state=self._current_state,
            entered_at=self._clock(),
            trigger=trigger,
            party=party,
        ))
        logger.debug(
            "Booking transition: %s -> %s (trigger: %s, party: %s)",
            old_state.value, self._current_state.value, trigger.value, party.value,
        )
        return self._current_state

    def get_valid_triggers(self, party: Optional[BookingParty] = None) -> list[BookingTrigger]:
        """Return the triggers valid from the current state, optionally for one party."""
        return [
            t.trigger
            for t in self.TRANSITIONS
            if t.from_state == self._current_state and (party is None or party in t.parties)
        ]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATUSES


# ---------------------------------------------------------------------- #
# Guards and side effects
# ---------------------------------------------------------------------- #


@dataclass(frozen=True)
class TransitionPolicy:
    """Configurable parts of the transition guards."""

    online_venue_placeholder: str = "Online (details via chat)"
    enforce_start_window: bool = True
    start_window: timedelta = timedelta(minutes=15)

    @classmethod
    def from_config(cls, config: AppConfig) -> "TransitionPolicy":
        return cls(
            online_venue_placeholder=config.portal.online_venue_placeholder,
            enforce_start_window=config.booking.enforce_start_window,
            start_window=timedelta(minutes=config.booking.start_window_minutes),
        )


def _resolve_venue(
    booking: BookingRequest, venue: Optional[str], policy: TransitionPolicy
) -> str:
    chosen = (venue or booking.venue or "").strip()
    if booking.mode == BookingMode.IN_PERSON and not chosen:
        raise GuardFailedError("A venue is required to confirm an in-person session.")
    return chosen or policy.online_venue_placeholder


def _approve(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
             slot: Optional[Instant] = None, venue: Optional[str] = None,
             **_: Any) -> dict[str, Any]:
    chosen = normalize_instant(slot) if slot is not None else None
    if booking.preferred_slots:
        if chosen is None:
            raise GuardFailedError("Choose one of the requested slots to approve.")
        if not booking.offers_slot(chosen):
            raise GuardFailedError(
                f"{chosen.isoformat()} is not one of the requested slots; suggest it instead."
            )
    elif booking.scheduled_at is not None:
        # Single-slot request created before multi-slot negotiation.
        if chosen is not None and chosen != booking.scheduled_at:
            raise GuardFailedError("A single-slot request can only be approved at its own time.")
        chosen = booking.scheduled_at
    else:
        raise GuardFailedError("The request carries no slot to approve.")

    return {
        "scheduled_at": chosen,
        "preferred_slots": [],
        "venue": _resolve_venue(booking, venue, policy),
        "approved_at": now,
        "suggested_time": None,
        "suggested_by": None,
    }


def _suggest(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
             suggested_time: Optional[Instant] = None, suggested_by: Optional[str] = None,
             venue: Optional[str] = None, **_: Any) -> dict[str, Any]:
    if suggested_time is None:
        raise GuardFailedError("A suggested time is required.")
    proposal = normalize_instant(suggested_time)
    if booking.offers_slot(proposal) or proposal == booking.scheduled_at:
        raise GuardFailedError(
            "That time was already requested; approve it instead of suggesting it."
        )
    changes: dict[str, Any] = {
        "suggested_time": proposal,
        "suggested_by": suggested_by or booking.role.value,
    }
    if venue is not None or booking.mode == BookingMode.IN_PERSON:
        changes["venue"] = _resolve_venue(booking, venue, policy)
    return changes


def _accept_suggestion(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
                       venue: Optional[str] = None, **_: Any) -> dict[str, Any]:
    if booking.suggested_time is None:
        raise GuardFailedError("There is no suggested time to accept.")
    return {
        "scheduled_at": booking.suggested_time,
        "preferred_slots": [],
        "venue": _resolve_venue(booking, venue, policy),
        "approved_at": now,
        "suggested_time": None,
        "suggested_by": None,
    }


def _decline_suggestion(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
                        **_: Any) -> dict[str, Any]:
    return {"suggested_time": None, "suggested_by": None}


def _reject(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
            reason: Optional[str] = None, **_: Any) -> dict[str, Any]:
    return {
        "rejected_at": now,
        "rejection_reason": (reason or "").strip() or None,
        "suggested_time": None,
        "suggested_by": None,
    }


def _cancel(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
            actor_id: Optional[str] = None, **_: Any) -> dict[str, Any]:
    return {"cancelled_at": now, "cancelled_by": actor_id}


def _start(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
           force: bool = False, **_: Any) -> dict[str, Any]:
    if booking.mode != BookingMode.ONLINE:
        raise GuardFailedError(
            "This session is not online. Start in-person sessions at the scheduled location."
        )
    if policy.enforce_start_window and not force:
        if booking.scheduled_at is None or abs(now - booking.scheduled_at) > policy.start_window:
            minutes = int(policy.start_window.total_seconds() // 60)
            raise GuardFailedError(
                f"Session is not within the {minutes}-minute start window."
            )
    return {"started_at": now}


def _complete(booking: BookingRequest, now: datetime, policy: TransitionPolicy,
              **_: Any) -> dict[str, Any]:
    return {"completed_at": now}


_EFFECTS: dict[BookingTrigger, Callable[..., dict[str, Any]]] = {
    BookingTrigger.APPROVE: _approve,
    BookingTrigger.SUGGEST: _suggest,
    BookingTrigger.ACCEPT_SUGGESTION: _accept_suggestion,
    BookingTrigger.DECLINE_SUGGESTION: _decline_suggestion,
    BookingTrigger.REJECT: _reject,
    BookingTrigger.CANCEL: _cancel,
    BookingTrigger.START: _start,
    BookingTrigger.COMPLETE: _complete,
}


def resolve_transition(
    booking: BookingRequest,
    trigger: BookingTrigger,
    party: BookingParty,
    *,
    now: datetime,
    policy: TransitionPolicy,
    **params: Any,
) -> dict[str, Any]:
    """
    Validate a transition against the table and its guard, and return the field changes.

    The returned mapping uses model field names and always includes the
    new ``status``. Nothing is written; the caller persists the changes.

    Raises:
        InvalidTransitionError: The transition is not in the table for this party.
        GuardFailedError: The transition's precondition is not met.
    """
    machine = BookingStateMachine(booking.status, clock=lambda: now)
    new_status = machine.transition(trigger, party)
    changes = _EFFECTS[trigger](booking, now, policy, **params)
    changes["status"] = new_status
    return changes


def apply_changes(booking: BookingRequest, changes: dict[str, Any]) -> BookingRequest:
    """Return a copy of ``booking`` with ``changes`` applied."""
    return booking.model_copy(update=changes)
