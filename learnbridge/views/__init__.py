from learnbridge.views.admin_portal import AdminPortal
from learnbridge.views.base import LOAD_FAILED, PortalView
from learnbridge.views.registry import (
    create_portal,
    create_portal_for_role,
    get_registered_portals,
    register_portal,
)
from learnbridge.views.staff_portal import StaffPortal
from learnbridge.views.student_portal import StudentPortal

__all__ = [
    "PortalView",
    "LOAD_FAILED",
    "StudentPortal",
    "StaffPortal",
    "AdminPortal",
    "create_portal",
    "create_portal_for_role",
    "register_portal",
    "get_registered_portals",
]
