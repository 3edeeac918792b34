from learnbridge.booking.availability import AvailabilityEditor, fits_schedule, is_available_at
from learnbridge.booking.conflicts import (
    SoftConflict,
    check_conflict,
    find_conflicting,
    find_next_available,
    find_soft_conflicts,
    has_conflict,
    next_available_from,
)
from learnbridge.booking.slot_builder import MultiSlotRequestBuilder
from learnbridge.booking.state_machine import (
    BookingParty,
    BookingStateMachine,
    BookingTrigger,
    GuardFailedError,
    InvalidTransitionError,
    TransitionPolicy,
    resolve_transition,
)

__all__ = [
    "BookingStateMachine",
    "BookingTrigger",
    "BookingParty",
    "InvalidTransitionError",
    "GuardFailedError",
    "TransitionPolicy",
    "resolve_transition",
    "MultiSlotRequestBuilder",
    "check_conflict",
    "has_conflict",
    "find_conflicting",
    "find_next_available",
    "next_available_from",
    "find_soft_conflicts",
    "SoftConflict",
    "AvailabilityEditor",
    "is_available_at",
    "fits_schedule",
]
