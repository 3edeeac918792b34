"""
Portal registry: build the right view for a role by name.

Entry points ask the registry instead of importing each portal class, so
adding a portal only touches this module.
"""

import logging
from typing import Any, Callable

from learnbridge.schemas.user_schema import UserRole

logger = logging.getLogger(__name__)

_PORTAL_REGISTRY: dict[str, Callable[..., Any]] = {}


def register_portal(name: str, factory: Callable[..., Any]) -> None:
    """Register a portal factory by name."""
    _PORTAL_REGISTRY[name] = factory
    logger.debug("Portal registered: %s", name)


def create_portal(name: str, **kwargs: Any) -> Any:
    """Create a portal instance by registered name.

    Raises:
        KeyError: If the portal name is not registered.
    """
    if name not in _PORTAL_REGISTRY:
        registered = list(_PORTAL_REGISTRY.keys())
        raise KeyError(f"Portal '{name}' not registered. Available: {registered}")
    return _PORTAL_REGISTRY[name](**kwargs)


def create_portal_for_role(role: UserRole, **kwargs: Any) -> Any:
    return create_portal(UserRole(role).value, **kwargs)


def get_registered_portals() -> list[str]:
    """Return names of all registered portals."""
    return list(_PORTAL_REGISTRY.keys())


def _auto_register() -> None:
    """Register the built-in portals. Called once at import time."""
    from learnbridge.views.admin_portal import AdminPortal
    from learnbridge.views.staff_portal import StaffPortal
    from learnbridge.views.student_portal import StudentPortal

    register_portal(UserRole.STUDENT.value, StudentPortal)
    register_portal(UserRole.TUTOR.value, StaffPortal)
    register_portal(UserRole.COUNSELLOR.value, StaffPortal)
    register_portal(UserRole.ADMIN.value, AdminPortal)


_auto_register()
