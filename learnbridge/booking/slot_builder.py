"""
Multi-slot request builder: collect 1..N candidate times, then submit once.

Instead of asking for a single fixed time, the requester offers a small
bucket of preferences and the staff member approves one of them.
Candidates are compared as normalized instants, so the same moment
typed two ways is still a duplicate. Entry order is preserved for
display ("Option 1, 2, ...") but carries no priority.

Usage:
    builder = MultiSlotRequestBuilder()
    ok, msg = builder.add_slot("2025-03-10T14:00")
    ok, msg = builder.add_slot("2025-03-11T09:30")
    draft = builder.build(requester=actor, staff=profile, role=StaffRole.TUTOR)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

from learnbridge.config import settings
from learnbridge.errors import InputValidationError
from learnbridge.schemas.booking_schema import (
    BookingMode,
    BookingRequest,
    BookingStatus,
    StaffRole,
)
from learnbridge.utils import Instant, normalize_instant, utc_now

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 2000


@dataclass
class SlotEntry:
    """One candidate time and the raw value it was typed as."""

    instant: datetime
    raw_value: str
    correction_history: list[str] = field(default_factory=list)


class MultiSlotRequestBuilder:
    """
    Collects candidate slots with duplicate and capacity checks.

    ``build`` refuses to produce a request until at least one slot is held.
    """

    def __init__(self, max_slots: Optional[int] = None) -> None:
        self.max_slots = max_slots or settings.booking.max_preferred_slots
        self._entries: list[SlotEntry] = []
        self.attempts = 0

    @classmethod
    def from_slots(
        cls, slots: Sequence[Instant], max_slots: Optional[int] = None
    ) -> "MultiSlotRequestBuilder":
        """Build from a complete sequence, raising on the first rejected slot."""
        builder = cls(max_slots=max_slots)
        for value in slots:
            ok, msg = builder.add_slot(value)
            if not ok:
                raise InputValidationError(msg)
        return builder

    def _position_of(self, instant: datetime) -> Optional[int]:
        for idx, entry in enumerate(self._entries):
            if entry.instant == instant:
                return idx
        return None

    def add_slot(self, value: Instant) -> tuple[bool, str]:
        """
        Add a candidate time.

        Returns:
            (success, message): success=False for malformed, duplicate
            or over-capacity input.
        """
        self.attempts += 1
        raw = value if isinstance(value, str) else value.isoformat()
        if len(self._entries) >= self.max_slots:
            logger.debug("Slot rejected, already holding %d", len(self._entries))
            return False, f"You can offer at most {self.max_slots} time slots."
        try:
            instant = normalize_instant(value)
        except (TypeError, ValueError):
            return False, f"The time '{raw}' doesn't look right."

        existing = self._position_of(instant)
        if existing is not None:
            return False, f"That time is already listed as Option {existing + 1}."

        self._entries.append(SlotEntry(instant=instant, raw_value=raw))
        logger.debug("Slot %d set to %s", len(self._entries), instant.isoformat())
        return True, f"Added Option {len(self._entries)}: {instant.isoformat()}"

    def replace_slot(self, index: int, value: Instant) -> tuple[bool, str]:
        """Swap the candidate at ``index``, keeping the old raw value in history."""
        if not 0 <= index < len(self._entries):
            return False, f"There is no Option {index + 1}."
        try:
            instant = normalize_instant(value)
        except (TypeError, ValueError):
            return False, f"The time '{value}' doesn't look right."
        existing = self._position_of(instant)
        if existing is not None and existing != index:
            return False, f"That time is already listed as Option {existing + 1}."
        entry = self._entries[index]
        entry.correction_history.append(entry.raw_value)
        entry.instant = instant
        entry.raw_value = value if isinstance(value, str) else value.isoformat()
        return True, f"Option {index + 1} is now {instant.isoformat()}"

    def remove_slot(self, index: int) -> bool:
        if not 0 <= index < len(self._entries):
            return False
        del self._entries[index]
        return True

    def clear(self) -> None:
        self._entries.clear()

    @property
    def slots(self) -> list[datetime]:
        return [e.instant for e in self._entries]

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self.max_slots

    def get_summary(self) -> str:
        """Read-back of the options in entry order."""
        if not self._entries:
            return "No time slots selected yet."
        lines = [
            f"  Option {idx}: {entry.instant.isoformat()}"
            for idx, entry in enumerate(self._entries, start=1)
        ]
        return "Requested times:\n" + "\n".join(lines)

    def build(
        self,
        *,
        requester_id: str,
        requester_name: str,
        staff_id: str,
        staff_name: str,
        role: StaffRole,
        mode: BookingMode = BookingMode.ONLINE,
        notes: str = "",
        duration: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> BookingRequest:
        """Package the held slots into a pending request (not yet persisted)."""
        if not self._entries:
            raise InputValidationError("Please pick at least one date & time.")
        notes = (notes or "").strip()
        if len(notes) > MAX_NOTES_LENGTH:
            raise InputValidationError(f"Notes are limited to {MAX_NOTES_LENGTH} characters.")
        duration = duration or settings.booking.default_duration_minutes
        if duration < 1:
            raise InputValidationError("Duration must be at least one minute.")
        return BookingRequest(
            requester_id=requester_id,
            requester_name=requester_name,
            staff_id=staff_id,
            staff_name=staff_name,
            role=role,
            preferred_slots=self.slots,
            scheduled_at=None,
            mode=mode,
            duration=duration,
            notes=notes,
            status=BookingStatus.PENDING,
            created_at=now or utc_now(),
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "slots_held": len(self._entries),
            "max_slots": self.max_slots,
            "total_attempts": self.attempts,
            "total_corrections": sum(len(e.correction_history) for e in self._entries),
        }
