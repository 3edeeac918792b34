from learnbridge.services.access_guard import AccessGuard, ensure_active, ensure_role
from learnbridge.services.admin_service import AdminService
from learnbridge.services.audit import AuditLog
from learnbridge.services.booking_service import BookingService, CandidateEvaluation, party_for
from learnbridge.services.chat_service import ChatChannel, ChatRegistry, ChatService, chat_id_for
from learnbridge.services.dashboard import (
    AdminDashboardStats,
    DashboardAggregator,
    RequesterDashboardStats,
    StaffDashboardStats,
    count_pending_today,
    format_report,
)
from learnbridge.services.issue_service import IssueService
from learnbridge.services.notification_service import NotificationItem, NotificationService
from learnbridge.services.profile_service import ProfileService, StaffListing
from learnbridge.services.rating_service import RatingService

__all__ = [
    "AccessGuard",
    "ensure_role",
    "ensure_active",
    "AuditLog",
    "BookingService",
    "CandidateEvaluation",
    "party_for",
    "DashboardAggregator",
    "StaffDashboardStats",
    "RequesterDashboardStats",
    "AdminDashboardStats",
    "count_pending_today",
    "format_report",
    "ChatService",
    "ChatChannel",
    "ChatRegistry",
    "chat_id_for",
    "NotificationService",
    "NotificationItem",
    "RatingService",
    "IssueService",
    "AdminService",
    "ProfileService",
    "StaffListing",
]
