"""Shared test fixtures and helpers."""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest

from learnbridge.config import AppConfig, BookingConfig, DashboardConfig, PortalConfig
from learnbridge.schemas.user_schema import AccountStatus, Actor, AuthUser, UserRole
from learnbridge.services.booking_service import BookingService
from learnbridge.store.base import SESSIONS, USERS
from learnbridge.store.memory import InMemoryDocumentStore, InMemoryIdentityProvider
from learnbridge.utils import normalize_instant

# Friday 7 March 2025, 09:00 UTC
NOW = normalize_instant("2025-03-07T09:00:00Z")

WEEKDAY_HOURS = [
    {"day": day, "from": "09:00", "to": "17:00"}
    for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
]

USERS_SEED: dict[str, dict[str, Any]] = {
    "uid-student": {"name": "Sam Okafor", "email": "sam@uni.test", "role": "student"},
    "uid-student-2": {
        "name": "Priya Nair", "email": "priya@uni.test", "role": "student", "status": "active",
    },
    "uid-tutor": {
        "name": "Lena Fischer", "email": "lena@uni.test", "role": "tutor", "status": "active",
        "department": "Computer Science", "modules": "CS101", "availability": WEEKDAY_HOURS,
    },
    "uid-tutor-2": {
        "name": "Marco Rossi", "email": "marco@uni.test", "role": "tutor", "status": "active",
    },
    "uid-counsellor": {
        "name": "Tom Reyes", "email": "tom@uni.test", "role": "counsellor", "status": "active",
    },
    "uid-tutor-pending": {
        "name": "Nina Park", "email": "nina@uni.test", "role": "tutor", "status": "pending",
    },
    "uid-admin": {"name": "Ada Admin", "email": "admin@uni.test", "role": "admin"},
}


class FixedClock:
    """Injectable clock that only moves when a test moves it."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: str) -> None:
        self.now = normalize_instant(value)

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_config(**booking: Any) -> AppConfig:
    """Config with the documented defaults, independent of the environment."""
    base = BookingConfig(
        default_duration_minutes=60,
        max_preferred_slots=5,
        search_stride_minutes=60,
        search_steps=24,
        enforce_start_window=True,
        start_window_minutes=15,
        next_available_respects_schedule=False,
        notify_on_transitions=True,
    )
    return AppConfig(
        portal=PortalConfig(
            name="Test Portal", timezone="UTC", online_venue_placeholder="Online (details via chat)"
        ),
        booking=replace(base, **booking),
        dashboard=DashboardConfig(notification_limit=50, query_limit=1000, chat_history_limit=20),
        log_level="INFO",
    )


def make_actor(uid: str, status: Optional[AccountStatus] = None) -> Actor:
    data = USERS_SEED[uid]
    return Actor(
        id=uid,
        email=data["email"],
        name=data["name"],
        role=UserRole(data["role"]),
        status=status or AccountStatus(data.get("status", "active")),
    )


def seed_booking(store: InMemoryDocumentStore, booking_id: str, **fields: Any) -> None:
    """Seed a booking for uid-tutor requested by uid-student, overridable per field."""
    record = {
        "requesterId": "uid-student",
        "requesterName": "Sam Okafor",
        "staffId": "uid-tutor",
        "staffName": "Lena Fischer",
        "role": "tutor",
        "mode": "online",
        "duration": 60,
        "status": "pending",
        "createdAt": "2025-03-06T12:00:00Z",
    }
    record.update(fields)
    store.seed(SESSIONS, booking_id, record)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def store():
    memory = InMemoryDocumentStore()
    for uid, data in USERS_SEED.items():
        memory.seed(USERS, uid, data)
    return memory


@pytest.fixture
def identity():
    return InMemoryIdentityProvider()


def sign_in(identity: InMemoryIdentityProvider, uid: str) -> None:
    identity.sign_in(AuthUser(id=uid, email=USERS_SEED[uid]["email"]))


@pytest.fixture
def student():
    return make_actor("uid-student")


@pytest.fixture
def tutor():
    return make_actor("uid-tutor")


@pytest.fixture
def other_tutor():
    return make_actor("uid-tutor-2")


@pytest.fixture
def admin():
    return make_actor("uid-admin")


@pytest.fixture
def booking_service(store, config, clock):
    return BookingService(store, config, clock)
