"""Booking and weekly availability data models."""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from learnbridge.schemas.base import TimestampedModel, utc_field

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

DEFAULT_DURATION_MINUTES = 60


class BookingStatus(str, Enum):
    """Lifecycle status of a booking request."""

    PENDING = "pending"
    SUGGESTED = "suggested"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


# Statuses whose datetime blocks the staff member's calendar.
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.APPROVED, BookingStatus.PENDING, BookingStatus.IN_PROGRESS}
)
TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.REJECTED, BookingStatus.CANCELLED, BookingStatus.COMPLETED}
)


class StaffRole(str, Enum):
    TUTOR = "tutor"
    COUNSELLOR = "counsellor"


class BookingMode(str, Enum):
    ONLINE = "online"
    IN_PERSON = "in-person"


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def from_date(cls, value: datetime) -> "Weekday":
        return list(cls)[value.weekday()]


class AvailabilitySlot(BaseModel):
    """One window of a staff member's weekly recurring schedule."""

    model_config = ConfigDict(populate_by_name=True)

    day: Weekday
    from_: str = Field(alias="from")
    to: str
    location: Optional[str] = None

    @field_validator("from_", "to")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        value = value.strip()
        if not _HHMM.match(value):
            raise ValueError(f"expected zero-padded HH:MM, got {value!r}")
        return value

    @property
    def is_well_formed(self) -> bool:
        return self.from_ < self.to

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BookingRequest(TimestampedModel):
    """A requested, negotiated or confirmed appointment."""

    requester_id: str
    requester_name: str = ""
    staff_id: str
    staff_name: str = ""
    role: StaffRole
    preferred_slots: list[datetime] = Field(default_factory=list)
    scheduled_at: Optional[datetime] = Field(default=None, alias="datetime")
    venue: Optional[str] = None
    mode: BookingMode = BookingMode.ONLINE
    duration: int = DEFAULT_DURATION_MINUTES
    notes: str = ""
    status: BookingStatus = BookingStatus.PENDING
    suggested_time: Optional[datetime] = None
    suggested_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None

    @field_validator(
        "scheduled_at", "suggested_time", "approved_at", "rejected_at",
        "cancelled_at", "completed_at", "started_at",
        mode="before",
    )
    @classmethod
    def _normalize_instants(cls, value: Any) -> Optional[datetime]:
        return utc_field(value)

    @field_validator("preferred_slots", mode="before")
    @classmethod
    def _normalize_slots(cls, value: Any) -> list[datetime]:
        return [utc_field(v) for v in (value or []) if v not in (None, "")]

    @field_validator("duration", mode="before")
    @classmethod
    def _default_duration(cls, value: Any) -> int:
        if value in (None, "", 0):
            return DEFAULT_DURATION_MINUTES
        return int(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def offers_slot(self, slot: datetime) -> bool:
        """True if ``slot`` is one of the requester's candidate times."""
        return slot in self.preferred_slots
