"""
Weekly recurring availability for tutors and counsellors.

A staff profile carries a list of ``AvailabilitySlot`` windows (weekday,
``HH:MM`` from/to, optional location) interpreted in the portal time
zone. ``AvailabilityEditor`` is the edit buffer one settings view owns
while the schedule is being changed; nothing else shares it.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError as SchemaError

from learnbridge.errors import InputValidationError, NotFoundError
from learnbridge.schemas.booking_schema import AvailabilitySlot, Weekday
from learnbridge.schemas.user_schema import UserProfile
from learnbridge.store.base import USERS, DocumentStore

logger = logging.getLogger(__name__)

WORKING_DAYS = [
    Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY,
]
PRESET_FROM = "09:00"
PRESET_TO = "17:00"


def is_available_at(
    schedule: Iterable[AvailabilitySlot], instant: datetime, tz: ZoneInfo
) -> bool:
    """True if ``instant`` falls inside one of the weekly windows (bounds inclusive)."""
    local = instant.astimezone(tz)
    day = Weekday.from_date(local)
    hhmm = local.strftime("%H:%M")
    for slot in schedule:
        if slot.day == day and slot.is_well_formed and slot.from_ <= hhmm <= slot.to:
            return True
    return False


def fits_schedule(
    schedule: Iterable[AvailabilitySlot], start: datetime, duration_minutes: int, tz: ZoneInfo
) -> bool:
    """True if the whole interval ``[start, start+duration)`` sits inside one window."""
    local_start = start.astimezone(tz)
    local_end = (start + timedelta(minutes=duration_minutes)).astimezone(tz)
    if local_end.date() != local_start.date():
        return False
    day = Weekday.from_date(local_start)
    begin = local_start.strftime("%H:%M")
    end = local_end.strftime("%H:%M")
    return any(
        slot.day == day and slot.is_well_formed and slot.from_ <= begin and end <= slot.to
        for slot in schedule
    )


def _make_slot(day: str, from_: str, to: str, location: Optional[str]) -> AvailabilitySlot:
    try:
        slot = AvailabilitySlot(day=day, from_=from_, to=to, location=(location or "").strip() or None)
    except SchemaError as exc:
        raise InputValidationError(f"Invalid availability slot: {exc.errors()[0]['msg']}") from None
    if not slot.is_well_formed:
        raise InputValidationError(f"Slot must end after it starts ({from_} - {to}).")
    return slot


class AvailabilityEditor:
    """
    Edit buffer for one staff member's weekly schedule.

    Changes stay local until ``save``; ``load`` discards unsaved edits.
    """

    def __init__(self, store: DocumentStore, staff_id: str) -> None:
        self._store = store
        self.staff_id = staff_id
        self._slots: list[AvailabilitySlot] = []
        self._dirty = False

    @property
    def slots(self) -> list[AvailabilitySlot]:
        return list(self._slots)

    @property
    def dirty(self) -> bool:
        return self._dirty

    async def load(self) -> list[AvailabilitySlot]:
        record = await self._store.get(USERS, self.staff_id)
        if record is None:
            raise NotFoundError(USERS, self.staff_id)
        self._slots = list(UserProfile.model_validate(record).availability)
        self._dirty = False
        return self.slots

    def add(self, day: str, from_: str, to: str, location: Optional[str] = None) -> AvailabilitySlot:
        slot = _make_slot(day, from_, to, location)
        self._slots.append(slot)
        self._dirty = True
        return slot

    def update(
        self,
        index: int,
        day: Optional[str] = None,
        from_: Optional[str] = None,
        to: Optional[str] = None,
        location: Optional[str] = None,
    ) -> AvailabilitySlot:
        current = self._get(index)
        slot = _make_slot(
            day or current.day.value,
            from_ or current.from_,
            to or current.to,
            location if location is not None else current.location,
        )
        self._slots[index] = slot
        self._dirty = True
        return slot

    def remove(self, index: int) -> AvailabilitySlot:
        slot = self._get(index)
        del self._slots[index]
        self._dirty = True
        return slot

    def apply_preset(self, location: Optional[str] = None) -> None:
        """Replace the buffer with Monday-Friday 09:00-17:00."""
        self._slots = [_make_slot(d.value, PRESET_FROM, PRESET_TO, location) for d in WORKING_DAYS]
        self._dirty = True

    async def save(self) -> None:
        await self._store.update(
            USERS, self.staff_id, {"availability": [s.to_record() for s in self._slots]}
        )
        self._dirty = False
        logger.info("Saved %d availability slots for %s", len(self._slots), self.staff_id)

    def _get(self, index: int) -> AvailabilitySlot:
        if not 0 <= index < len(self._slots):
            raise InputValidationError(f"No availability slot at position {index + 1}.")
        return self._slots[index]
