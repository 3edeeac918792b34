"""Tests for dashboard counters."""

from zoneinfo import ZoneInfo

import pytest

from learnbridge.errors import AuthorizationError
from learnbridge.services.dashboard import (
    AdminDashboardStats,
    DashboardAggregator,
    RequesterDashboardStats,
    StaffDashboardStats,
    average_rating,
    compute_requester_stats,
    compute_staff_stats,
    count_pending_today,
    format_report,
)
from learnbridge.store.base import ISSUES, RATINGS
from conftest import NOW, seed_booking

UTC = ZoneInfo("UTC")


class TestPendingToday:
    def test_empty_result_is_zero(self):
        assert count_pending_today([], NOW, UTC) == 0

    def test_counts_only_todays_pending(self):
        records = [
            {"status": "pending", "createdAt": "2025-03-07T08:00:00Z"},
            {"status": "pending", "createdAt": "2025-03-07T23:59:00Z"},
            {"status": "pending", "createdAt": "2025-03-06T23:59:00Z"},
            {"status": "approved", "createdAt": "2025-03-07T08:00:00Z"},
        ]
        assert count_pending_today(records, NOW, UTC) == 2

    def test_missing_or_malformed_created_at_excluded(self):
        records = [
            {"status": "pending"},
            {"status": "pending", "createdAt": None},
            {"status": "pending", "createdAt": "yesterday"},
            {"status": "pending", "createdAt": "2025-03-07T10:00:00Z"},
        ]
        assert count_pending_today(records, NOW, UTC) == 1

    def test_missing_status_excluded(self):
        assert count_pending_today([{"createdAt": "2025-03-07T10:00:00Z"}], NOW, UTC) == 0


class TestAverageRating:
    def test_none_when_no_ratings(self):
        assert average_rating([]) is None

    def test_missing_stars_excluded_not_zero(self):
        assert average_rating([{"stars": 4}, {"comment": "no stars"}, {"stars": None}]) == 4

    def test_non_numeric_excluded(self):
        assert average_rating([{"stars": "5"}, {"stars": True}, {"stars": 3}, {"stars": 5}]) == 4

    def test_mean(self):
        assert average_rating([{"stars": 5}, {"stars": 4}]) == pytest.approx(4.5)


class TestStaffStats:
    def test_empty(self):
        stats = compute_staff_stats([], [], NOW, UTC)
        assert stats == StaffDashboardStats()
        assert stats.average_rating is None

    def test_counters(self):
        bookings = [
            {"status": "approved", "datetime": "2025-03-07T15:00:00Z"},   # this week, upcoming
            {"status": "approved", "datetime": "2025-03-03T10:00:00Z"},   # this week, past
            {"status": "approved", "datetime": "2025-03-11T10:00:00Z"},   # next week, upcoming
            {"status": "completed", "datetime": "2025-03-04T10:00:00Z"},  # this week
            {"status": "pending", "preferredSlots": ["2025-03-07T16:00:00Z"]},
            {"status": "pending"},
        ]
        ratings = [{"stars": 5}, {"stars": 3}]
        stats = compute_staff_stats(bookings, ratings, NOW, UTC)
        assert stats.total_this_week == 3
        assert stats.upcoming == 2
        assert stats.pending_requests == 2
        assert stats.completed_sessions == 1
        assert stats.average_rating == 4
        assert stats.rating_count == 2
        assert stats.new_notifications == 5

    def test_rating_count_matches_average_inputs(self):
        ratings = [{"stars": 5}, {"stars": "4"}, {"stars": True}, {"stars": 3}, {"comment": "none"}]
        stats = compute_staff_stats([], ratings, NOW, UTC)
        assert stats.average_rating == 4
        assert stats.rating_count == 2


class TestRequesterStats:
    def test_empty(self):
        assert compute_requester_stats([], 0, NOW) == RequesterDashboardStats()

    def test_counters(self):
        bookings = [
            {"status": "pending"},
            {"status": "suggested"},
            {"status": "approved", "datetime": "2025-03-10T10:00:00Z"},
            {"status": "approved"},
            {"status": "completed", "datetime": "2025-03-01T10:00:00Z"},
        ]
        stats = compute_requester_stats(bookings, 2, NOW)
        assert stats.pending_requests == 2
        assert stats.upcoming_sessions == 1
        assert stats.completed_sessions == 1
        assert stats.ratings_given == 2


class TestAggregator:
    @pytest.mark.asyncio
    async def test_staff_dashboard(self, store, config, clock, tutor):
        seed_booking(store, "b-1", status="approved", datetime="2025-03-07T15:00:00Z")
        seed_booking(store, "b-2", createdAt="2025-03-07T08:30:00Z")
        seed_booking(store, "b-3", staffId="uid-counsellor")
        store.seed(RATINGS, "r-1", {"personId": "uid-tutor", "studentId": "uid-student", "stars": 4})
        stats = await DashboardAggregator(store, config, clock).staff_dashboard(tutor)
        assert stats.total_this_week == 1
        assert stats.upcoming == 1
        assert stats.pending_requests == 1
        assert stats.average_rating == 4

    @pytest.mark.asyncio
    async def test_staff_dashboard_empty(self, store, config, clock, tutor):
        stats = await DashboardAggregator(store, config, clock).staff_dashboard(tutor)
        assert stats.pending_requests == 0
        assert stats.average_rating is None

    @pytest.mark.asyncio
    async def test_student_cannot_open_staff_dashboard(self, store, config, clock, student):
        with pytest.raises(AuthorizationError):
            await DashboardAggregator(store, config, clock).staff_dashboard(student)

    @pytest.mark.asyncio
    async def test_requester_dashboard(self, store, config, clock, student):
        seed_booking(store, "b-1", status="suggested")
        store.seed(RATINGS, "r-1", {"personId": "uid-tutor", "studentId": "uid-student", "stars": 5})
        stats = await DashboardAggregator(store, config, clock).requester_dashboard(student)
        assert stats.pending_requests == 1
        assert stats.ratings_given == 1

    @pytest.mark.asyncio
    async def test_pending_today_scoped_to_staff(self, store, config, clock, tutor, admin):
        seed_booking(store, "b-1", createdAt="2025-03-07T08:00:00Z")
        seed_booking(store, "b-2", staffId="uid-counsellor", createdAt="2025-03-07T08:00:00Z")
        aggregator = DashboardAggregator(store, config, clock)
        assert await aggregator.pending_today(tutor) == 1
        assert await aggregator.pending_today(admin) == 2

    @pytest.mark.asyncio
    async def test_pending_today_empty_store(self, store, config, clock, tutor):
        assert await DashboardAggregator(store, config, clock).pending_today(tutor) == 0

    @pytest.mark.asyncio
    async def test_admin_dashboard(self, store, config, clock, admin):
        seed_booking(store, "b-1")
        seed_booking(store, "b-2", status="approved", datetime="2025-03-07T13:00:00Z")
        seed_booking(store, "b-3", status="completed", datetime="2025-03-06T13:00:00Z")
        store.seed(ISSUES, "i-1", {"status": "open", "title": "t", "description": "d"})
        store.seed(ISSUES, "i-2", {"status": "resolved", "title": "t", "description": "d"})
        stats = await DashboardAggregator(store, config, clock).admin_dashboard(admin)
        assert stats.users_by_role == {"student": 2, "tutor": 3, "counsellor": 1, "admin": 1}
        assert stats.accounts_pending_approval == 1
        assert stats.pending_bookings == 1
        assert stats.open_issues == 1
        assert stats.sessions_today == 1


class TestFormatReport:
    def test_missing_average_shows_placeholder(self):
        text = format_report(StaffDashboardStats(), "Tutor dashboard")
        assert "TUTOR DASHBOARD" in text
        assert "Average rating:       n/a" in text

    def test_average_formatted(self):
        text = format_report(StaffDashboardStats(average_rating=4.5, rating_count=4))
        assert "4.5" in text
        assert "(4 rating(s))" in text

    def test_requester_report(self):
        text = format_report(RequesterDashboardStats(pending_requests=3))
        assert "Pending requests:     3" in text

    def test_admin_report(self):
        text = format_report(AdminDashboardStats(users_by_role={"student": 12}, open_issues=2))
        assert "Students:" in text
        assert "Open issues:          2" in text
