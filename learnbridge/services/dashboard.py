"""
Dashboard counters for the three portals.

Nothing here is stored. Each view recomputes its counters on activation
from a bounded fetch of candidate records, or from ``count_where`` where
a plain count suffices. Records missing the field a counter depends on
are left out of that counter rather than counted as zero.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional, Union
from zoneinfo import ZoneInfo

from learnbridge.config import AppConfig, settings
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.booking_schema import BookingStatus
from learnbridge.schemas.records_schema import IssueStatus
from learnbridge.schemas.user_schema import AccountStatus, Actor, UserRole
from learnbridge.services.access_guard import ensure_role
from learnbridge.store.base import (
    ISSUES,
    RATINGS,
    SESSIONS,
    USERS,
    DocumentStore,
    Record,
    where,
)
from learnbridge.utils import day_bounds, parse_instant, utc_now, week_bounds

logger = get_actor_logger(__name__)


@dataclass
class StaffDashboardStats:
    """Counters on the tutor / counsellor home page."""

    total_this_week: int = 0
    upcoming: int = 0
    pending_requests: int = 0
    completed_sessions: int = 0
    average_rating: Optional[float] = None
    rating_count: int = 0
    new_notifications: int = 0


@dataclass
class RequesterDashboardStats:
    """Counters on the student home page."""

    pending_requests: int = 0
    upcoming_sessions: int = 0
    completed_sessions: int = 0
    ratings_given: int = 0


@dataclass
class AdminDashboardStats:
    users_by_role: dict[str, int] = field(default_factory=dict)
    accounts_pending_approval: int = 0
    pending_bookings: int = 0
    open_issues: int = 0
    sessions_today: int = 0


DashboardStats = Union[StaffDashboardStats, RequesterDashboardStats, AdminDashboardStats]


def _status(record: Record) -> Optional[str]:
    return record.get("status")


def _in_range(record: Record, key: str, start: datetime, end: datetime) -> bool:
    instant = parse_instant(record.get(key))
    return instant is not None and start <= instant < end


def _is_future(record: Record, now: datetime) -> bool:
    instant = parse_instant(record.get("datetime"))
    return instant is not None and instant > now


def count_pending_today(records: Iterable[Record], now: datetime, tz: ZoneInfo) -> int:
    """Pending requests created during the local day containing ``now``."""
    start, end = day_bounds(now, tz)
    return sum(
        1 for r in records
        if _status(r) == BookingStatus.PENDING.value and _in_range(r, "createdAt", start, end)
    )


def _numeric_stars(ratings: Iterable[Record]) -> list[float]:
    return [
        r["stars"] for r in ratings
        if isinstance(r.get("stars"), (int, float)) and not isinstance(r.get("stars"), bool)
    ]


def average_rating(ratings: Iterable[Record]) -> Optional[float]:
    """Mean of the numeric ``stars`` values, or None when there are none."""
    stars = _numeric_stars(ratings)
    if not stars:
        return None
    return sum(stars) / len(stars)


def compute_staff_stats(
    bookings: list[Record], ratings: list[Record], now: datetime, tz: ZoneInfo
) -> StaffDashboardStats:
    stats = StaffDashboardStats()
    week_start, week_end = week_bounds(now, tz)

    stats.total_this_week = sum(1 for b in bookings if _in_range(b, "datetime", week_start, week_end))
    stats.upcoming = sum(
        1 for b in bookings if _status(b) == BookingStatus.APPROVED.value and _is_future(b, now)
    )
    stats.pending_requests = sum(1 for b in bookings if _status(b) == BookingStatus.PENDING.value)
    stats.completed_sessions = sum(
        1 for b in bookings if _status(b) == BookingStatus.COMPLETED.value
    )
    stats.average_rating = average_rating(ratings)
    stats.rating_count = len(_numeric_stars(ratings))
    stats.new_notifications = stats.pending_requests + sum(
        1 for b in bookings if _status(b) == BookingStatus.APPROVED.value
    )
    return stats


def compute_requester_stats(
    bookings: list[Record], ratings_given: int, now: datetime
) -> RequesterDashboardStats:
    negotiating = {BookingStatus.PENDING.value, BookingStatus.SUGGESTED.value}
    return RequesterDashboardStats(
        pending_requests=sum(1 for b in bookings if _status(b) in negotiating),
        upcoming_sessions=sum(
            1 for b in bookings
            if _status(b) == BookingStatus.APPROVED.value and _is_future(b, now)
        ),
        completed_sessions=sum(1 for b in bookings if _status(b) == BookingStatus.COMPLETED.value),
        ratings_given=ratings_given,
    )


class DashboardAggregator:
    """Fetches candidate records and feeds them to the pure counters."""

    def __init__(
        self,
        store: DocumentStore,
        config: AppConfig = settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock

    @property
    def _limit(self) -> int:
        return self._config.dashboard.query_limit

    async def staff_dashboard(self, actor: Actor) -> StaffDashboardStats:
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.TUTOR, UserRole.COUNSELLOR)
        bookings = await self._store.query(
            SESSIONS, [where("staffId", "==", actor.id)], limit=self._limit
        )
        ratings = await self._store.query(
            RATINGS, [where("personId", "==", actor.id)], limit=self._limit
        )
        stats = compute_staff_stats(bookings, ratings, self._clock(), self._config.tz)
        logger.debug("Staff dashboard from %d bookings, %d ratings", len(bookings), len(ratings))
        return stats

    async def requester_dashboard(self, actor: Actor) -> RequesterDashboardStats:
        set_actor_id(actor.id)
        bookings = await self._store.query(
            SESSIONS, [where("requesterId", "==", actor.id)], limit=self._limit
        )
        ratings_given = await self._store.count_where(RATINGS, [where("studentId", "==", actor.id)])
        return compute_requester_stats(bookings, ratings_given, self._clock())

    async def pending_today(self, actor: Actor) -> int:
        """Pending requests addressed to a staff member (or, for admins, anyone) today."""
        set_actor_id(actor.id)
        filters = [where("status", "==", BookingStatus.PENDING.value)]
        if not actor.is_admin:
            filters.append(where("staffId", "==", actor.id))
        records = await self._store.query(SESSIONS, filters, limit=self._limit)
        return count_pending_today(records, self._clock(), self._config.tz)

    async def admin_dashboard(self, actor: Actor) -> AdminDashboardStats:
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.ADMIN)
        stats = AdminDashboardStats()
        for role in UserRole:
            stats.users_by_role[role.value] = await self._store.count_where(
                USERS, [where("role", "==", role.value)]
            )
        stats.accounts_pending_approval = await self._store.count_where(
            USERS, [where("status", "==", AccountStatus.PENDING.value)]
        )
        stats.pending_bookings = await self._store.count_where(
            SESSIONS, [where("status", "==", BookingStatus.PENDING.value)]
        )
        stats.open_issues = await self._store.count_where(
            ISSUES, [where("status", "in", [s.value for s in IssueStatus if s != IssueStatus.RESOLVED])]
        )
        scheduled = await self._store.query(
            SESSIONS,
            [where("status", "in", [
                BookingStatus.APPROVED.value,
                BookingStatus.IN_PROGRESS.value,
                BookingStatus.COMPLETED.value,
            ])],
            limit=self._limit,
        )
        start, end = day_bounds(self._clock(), self._config.tz)
        stats.sessions_today = sum(1 for b in scheduled if _in_range(b, "datetime", start, end))
        return stats


def _rating_text(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.1f}"


def format_report(stats: DashboardStats, title: Optional[str] = None) -> str:
    """Render dashboard counters as a plain-text block."""
    lines = ["=" * 48, (title or settings.portal.name).upper(), "=" * 48]
    if isinstance(stats, StaffDashboardStats):
        lines += [
            f"  Sessions this week:   {stats.total_this_week}",
            f"  Upcoming:             {stats.upcoming}",
            f"  Pending requests:     {stats.pending_requests}",
            f"  Completed sessions:   {stats.completed_sessions}",
            f"  Average rating:       {_rating_text(stats.average_rating)}"
            f"  ({stats.rating_count} rating(s))",
            f"  New notifications:    {stats.new_notifications}",
        ]
    elif isinstance(stats, RequesterDashboardStats):
        lines += [
            f"  Pending requests:     {stats.pending_requests}",
            f"  Upcoming sessions:    {stats.upcoming_sessions}",
            f"  Completed sessions:   {stats.completed_sessions}",
            f"  Ratings given:        {stats.ratings_given}",
        ]
    else:
        lines += [f"  {role.title() + 's:':<22}{count}" for role, count in stats.users_by_role.items()]
        lines += [
            f"  Awaiting approval:    {stats.accounts_pending_approval}",
            f"  Pending bookings:     {stats.pending_bookings}",
            f"  Open issues:          {stats.open_issues}",
            f"  Sessions today:       {stats.sessions_today}",
        ]
    lines.append("=" * 48)
    return "\n".join(lines)
