"""
Appointment conflict detection and next-available probing.

A staff member's calendar is blocked by every booking that is approved,
pending or in progress and carries a confirmed ``datetime``. Requests
still negotiating between several candidate slots have no ``datetime``
and therefore never block, and never collide with each other; use
``find_soft_conflicts`` to surface those overlaps as warnings.

The pure functions work on raw store records so they tolerate missing
or malformed fields. The async wrappers fetch the staff member's active
bookings once and then search in memory.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from learnbridge.booking.availability import fits_schedule
from learnbridge.config import BookingConfig, settings
from learnbridge.schemas.booking_schema import ACTIVE_STATUSES, AvailabilitySlot, BookingStatus
from learnbridge.store.base import SESSIONS, DocumentStore, Record, where
from learnbridge.utils import Instant, normalize_instant, parse_instant

logger = logging.getLogger(__name__)

_ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open overlap test: ``[a_start, a_end)`` meets ``[b_start, b_end)``."""
    return a_start < b_end and a_end > b_start


def _duration(record: Record, default_minutes: int) -> int:
    try:
        value = int(record.get("duration") or default_minutes)
    except (TypeError, ValueError):
        return default_minutes
    return value if value > 0 else default_minutes


def booking_interval(
    record: Record, default_minutes: int
) -> Optional[tuple[datetime, datetime]]:
    """Return the ``[start, end)`` interval a record occupies, or None if unscheduled."""
    start = parse_instant(record.get("datetime"))
    if start is None:
        return None
    return start, start + timedelta(minutes=_duration(record, default_minutes))


def _is_active(record: Record) -> bool:
    return record.get("status") in _ACTIVE_VALUES


def find_conflicting(
    records: Iterable[Record],
    desired: Instant,
    duration_minutes: int,
    *,
    exclude_id: Optional[str] = None,
    default_minutes: int = 60,
) -> list[Record]:
    """Return every active record whose interval overlaps the desired one."""
    start = normalize_instant(desired)
    end = start + timedelta(minutes=duration_minutes)
    hits = []
    for record in records:
        if exclude_id is not None and record.get("id") == exclude_id:
            continue
        if not _is_active(record):
            continue
        interval = booking_interval(record, default_minutes)
        if interval is None:
            continue
        if intervals_overlap(start, end, *interval):
            hits.append(record)
    return hits


def has_conflict(
    records: Iterable[Record],
    desired: Instant,
    duration_minutes: int,
    *,
    exclude_id: Optional[str] = None,
    default_minutes: int = 60,
) -> bool:
    for record in find_conflicting(
        records, desired, duration_minutes, exclude_id=exclude_id, default_minutes=default_minutes
    ):
        logger.info("Conflict found with appointment %s", record.get("id"))
        return True
    return False


def next_available_from(
    records: Sequence[Record],
    desired: Instant,
    duration_minutes: int,
    *,
    stride_minutes: int = 60,
    steps: int = 24,
    exclude_id: Optional[str] = None,
    default_minutes: int = 60,
    schedule: Optional[Sequence[AvailabilitySlot]] = None,
    tz: Optional[ZoneInfo] = None,
) -> Optional[datetime]:
    """
    Try ``desired + k*stride`` for k = 1..steps and return the first free start.

    With ``schedule`` given, candidates outside the staff member's weekly
    windows are skipped; they still count toward ``steps``.
    """
    base = normalize_instant(desired)
    for k in range(1, steps + 1):
        candidate = base + timedelta(minutes=k * stride_minutes)
        if schedule is not None and not fits_schedule(
            schedule, candidate, duration_minutes, tz or ZoneInfo("UTC")
        ):
            continue
        if not find_conflicting(
            records, candidate, duration_minutes,
            exclude_id=exclude_id, default_minutes=default_minutes,
        ):
            return candidate
    return None


@dataclass(frozen=True)
class SoftConflict:
    """A candidate slot overlapping another still-negotiating request's candidate."""

    slot: datetime
    other_booking_id: Optional[str]
    other_slot: datetime


def find_soft_conflicts(
    records: Iterable[Record],
    candidate_slots: Sequence[Instant],
    duration_minutes: int,
    *,
    exclude_id: Optional[str] = None,
    default_minutes: int = 60,
) -> list[SoftConflict]:
    """
    Advisory only: overlaps between ``candidate_slots`` and the preferred
    slots of other pending/suggested requests for the same staff member.
    ``check_conflict`` never reports these.
    """
    negotiating = {BookingStatus.PENDING.value, BookingStatus.SUGGESTED.value}
    found = []
    for slot in (normalize_instant(s) for s in candidate_slots):
        slot_end = slot + timedelta(minutes=duration_minutes)
        for record in records:
            if record.get("id") == exclude_id or record.get("status") not in negotiating:
                continue
            other_minutes = _duration(record, default_minutes)
            for raw in record.get("preferredSlots") or []:
                other = parse_instant(raw)
                if other is None:
                    continue
                if intervals_overlap(slot, slot_end, other, other + timedelta(minutes=other_minutes)):
                    found.append(SoftConflict(slot, record.get("id"), other))
    return found


# ---------------------------------------------------------------------- #
# Store-backed entry points
# ---------------------------------------------------------------------- #


async def fetch_active_bookings(store: DocumentStore, staff_id: str) -> list[Record]:
    """All approved/pending/in-progress bookings assigned to ``staff_id``."""
    return await store.query(
        SESSIONS, [where("staffId", "==", staff_id), where("status", "in", _ACTIVE_VALUES)]
    )


async def check_conflict(
    store: DocumentStore,
    staff_id: str,
    desired: Instant,
    duration_minutes: Optional[int] = None,
    *,
    exclude_id: Optional[str] = None,
    config: BookingConfig = settings.booking,
) -> bool:
    """True if a booking for ``staff_id`` at ``desired`` would overlap an active one."""
    records = await fetch_active_bookings(store, staff_id)
    return has_conflict(
        records,
        desired,
        duration_minutes or config.default_duration_minutes,
        exclude_id=exclude_id,
        default_minutes=config.default_duration_minutes,
    )


async def find_next_available(
    store: DocumentStore,
    staff_id: str,
    desired: Instant,
    duration_minutes: Optional[int] = None,
    *,
    exclude_id: Optional[str] = None,
    schedule: Optional[Sequence[AvailabilitySlot]] = None,
    tz: Optional[ZoneInfo] = None,
    config: BookingConfig = settings.booking,
) -> Optional[datetime]:
    """First conflict-free start within the search window, or None."""
    records = await fetch_active_bookings(store, staff_id)
    return next_available_from(
        records,
        desired,
        duration_minutes or config.default_duration_minutes,
        stride_minutes=config.search_stride_minutes,
        steps=config.search_steps,
        exclude_id=exclude_id,
        default_minutes=config.default_duration_minutes,
        schedule=schedule,
        tz=tz,
    )
