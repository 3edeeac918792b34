"""Ratings, issues, notifications, chat, audit and catalogue records."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from learnbridge.schemas.base import RecordModel, TimestampedModel, utc_field


class Rating(TimestampedModel):
    student_id: str
    person_id: str
    person_name: str = ""
    role: str = ""
    stars: int = Field(ge=1, le=5)
    comment: str = ""
    reply: Optional[str] = None
    replied_at: Optional[datetime] = None

    @field_validator("replied_at", mode="before")
    @classmethod
    def _normalize_replied_at(cls, value: Any) -> Optional[datetime]:
        return utc_field(value)


class IssueStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


class IssuePriority(str, Enum):
    NORMAL = "Normal"
    URGENT = "Urgent"


class IssueCategory(str, Enum):
    TECHNICAL = "Technical"
    BEHAVIOUR = "Student Behavior"
    SCHEDULING = "Scheduling"
    OTHER = "Other"


class Issue(TimestampedModel):
    reporter_id: str
    title: str
    description: str
    priority: IssuePriority = IssuePriority.NORMAL
    category: IssueCategory = IssueCategory.OTHER
    status: IssueStatus = IssueStatus.OPEN
    assigned_to: Optional[str] = None
    resolved_at: Optional[datetime] = None

    @field_validator("resolved_at", mode="before")
    @classmethod
    def _normalize_resolved_at(cls, value: Any) -> Optional[datetime]:
        return utc_field(value)


class Notification(TimestampedModel):
    title: str
    message: str
    target: str = "all"
    meta: dict[str, Any] = Field(default_factory=dict)
    from_admin: bool = False
    read: bool = False


class ChatMessage(TimestampedModel):
    chat_id: str
    from_: str = Field(alias="from")
    to: str
    text: str


class AuditLogEntry(RecordModel):
    ts: datetime
    actor: str
    action: str
    target: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)

    @field_validator("ts", mode="before")
    @classmethod
    def _normalize_ts(cls, value: Any) -> Optional[datetime]:
        return utc_field(value)


class Department(TimestampedModel):
    name: str


class Module(TimestampedModel):
    code: str
    name: str
    department: Optional[str] = None
