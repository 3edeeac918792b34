"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""


class TestSchemaImports:
    def test_import_booking_schema(self):
        from learnbridge.schemas.booking_schema import BookingRequest, BookingStatus
        assert BookingStatus.IN_PROGRESS == "in-progress"
        assert BookingRequest.model_fields["scheduled_at"].alias == "datetime"

    def test_import_user_schema(self):
        from learnbridge.schemas.user_schema import AccountStatus, UserProfile, UserRole
        profile = UserProfile(role=UserRole.STUDENT)
        assert profile.status == AccountStatus.ACTIVE

    def test_import_records_schema(self):
        from learnbridge.schemas.records_schema import ChatMessage, Issue, Rating
        assert Rating.model_fields["stars"] is not None
        assert Issue is not None
        assert ChatMessage.model_fields["from_"].alias == "from"


class TestBookingImports:
    def test_booking_package_reexports(self):
        from learnbridge.booking import (
            BookingStateMachine,
            MultiSlotRequestBuilder,
            check_conflict,
            find_next_available,
            resolve_transition,
        )
        assert BookingStateMachine().current_state == "pending"
        assert MultiSlotRequestBuilder(max_slots=3).max_slots == 3
        assert callable(check_conflict)
        assert callable(find_next_available)
        assert callable(resolve_transition)


class TestStoreImports:
    def test_store_package_reexports(self):
        from learnbridge.store import SESSIONS, InMemoryDocumentStore, where
        store = InMemoryDocumentStore()
        assert store.listener_count == 0
        assert SESSIONS == "sessions"
        assert where("status", "==", "pending").op == "=="


class TestServiceImports:
    def test_services_package_reexports(self):
        from learnbridge.services import (
            AccessGuard,
            AdminService,
            BookingService,
            ChatService,
            DashboardAggregator,
            IssueService,
            NotificationService,
            ProfileService,
            RatingService,
        )
        for cls in (
            AccessGuard, AdminService, BookingService, ChatService, DashboardAggregator,
            IssueService, NotificationService, ProfileService, RatingService,
        ):
            assert cls is not None


class TestViewImports:
    def test_views_registered_on_import(self):
        from learnbridge.views import get_registered_portals
        assert set(get_registered_portals()) >= {"student", "tutor", "counsellor", "admin"}


class TestEntryPoints:
    def test_console_demo_importable(self):
        import console_demo
        assert set(console_demo.ConsoleSession.SCENARIOS) == {"booking", "suggest", "conflict"}

    def test_main_importable(self):
        import main
        assert callable(main._run_console_mode)
