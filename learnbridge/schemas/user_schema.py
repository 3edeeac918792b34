"""User profile models and the authenticated actor."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from learnbridge.schemas.base import TimestampedModel, utc_field
from learnbridge.schemas.booking_schema import AvailabilitySlot


class UserRole(str, Enum):
    STUDENT = "student"
    TUTOR = "tutor"
    COUNSELLOR = "counsellor"
    ADMIN = "admin"


STAFF_ROLES: frozenset[UserRole] = frozenset({UserRole.TUTOR, UserRole.COUNSELLOR})


class AccountStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class NotificationPrefs(BaseModel):
    sms: bool = False
    email: bool = True
    in_app: bool = Field(default=True, alias="inApp")

    model_config = {"populate_by_name": True}


class UserProfile(TimestampedModel):
    """Companion profile document for an identity-provider account."""

    name: str = ""
    email: str = ""
    role: UserRole
    status: AccountStatus = AccountStatus.ACTIVE
    department: Optional[str] = None
    modules: Optional[str] = None
    year: Optional[str] = None
    course: Optional[str] = None
    bio: Optional[str] = None
    qualifications: Optional[str] = None
    location: Optional[str] = None
    availability: list[AvailabilitySlot] = Field(default_factory=list)
    notification_prefs: NotificationPrefs = Field(default_factory=NotificationPrefs)
    approved_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _missing_status_is_active(cls, value: Any) -> Any:
        return value or AccountStatus.ACTIVE

    @field_validator("approved_at", mode="before")
    @classmethod
    def _normalize_approved_at(cls, value: Any) -> Optional[datetime]:
        return utc_field(value)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


@dataclass(frozen=True)
class AuthUser:
    """What the identity provider knows about the signed-in account."""

    id: str
    email: str


@dataclass(frozen=True)
class Actor:
    """A signed-in user whose profile passed the access guard."""

    id: str
    email: str
    name: str
    role: UserRole
    status: AccountStatus

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
