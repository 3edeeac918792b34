"""Self-service profile reads and edits, and the staff directory."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from learnbridge.booking.availability import is_available_at
from learnbridge.config import AppConfig, settings
from learnbridge.errors import AuthorizationError, InputValidationError, NotFoundError
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.user_schema import (
    STAFF_ROLES,
    AccountStatus,
    Actor,
    NotificationPrefs,
    UserProfile,
    UserRole,
)
from learnbridge.store.base import USERS, DocumentStore, where
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)

SELF_EDITABLE_FIELDS = frozenset({
    "name", "department", "modules", "year", "course", "bio", "qualifications", "location",
})


@dataclass(frozen=True)
class StaffListing:
    profile: UserProfile
    available_now: bool


class ProfileService:
    def __init__(
        self,
        store: DocumentStore,
        config: AppConfig = settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock

    async def get_profile(self, actor: Actor) -> UserProfile:
        row = await self._store.get(USERS, actor.id)
        if row is None:
            raise NotFoundError(USERS, actor.id)
        return UserProfile.model_validate(row)

    async def update_own_profile(self, actor: Actor, **fields: Any) -> UserProfile:
        set_actor_id(actor.id)
        if actor.status == AccountStatus.SUSPENDED:
            raise AuthorizationError("Your account is suspended; profile changes are disabled.")
        unknown = set(fields) - SELF_EDITABLE_FIELDS
        if unknown:
            raise InputValidationError(f"Cannot edit: {', '.join(sorted(unknown))}.")
        if "name" in fields and not str(fields["name"] or "").strip():
            raise InputValidationError("Name cannot be empty.")
        profile = await self.get_profile(actor)
        updated = profile.model_copy(update=fields)
        revision = await self._store.update(
            USERS, actor.id, updated.dump_fields(set(fields)), expected_revision=profile.revision
        )
        logger.info("Profile updated: %s", ", ".join(sorted(fields)))
        return updated.model_copy(update={"revision": revision})

    async def save_notification_prefs(
        self, actor: Actor, *, sms: bool, email: bool, in_app: bool
    ) -> NotificationPrefs:
        set_actor_id(actor.id)
        prefs = NotificationPrefs(sms=sms, email=email, in_app=in_app)
        await self._store.update(
            USERS, actor.id, {"notificationPrefs": prefs.model_dump(by_alias=True)}
        )
        return prefs

    async def search_staff(
        self, role: Optional[UserRole] = None, query: str = ""
    ) -> list[StaffListing]:
        """Active tutors and counsellors, optionally by role and free text."""
        roles = [UserRole(role)] if role else sorted(STAFF_ROLES, key=lambda r: r.value)
        rows = await self._store.query(USERS, [where("role", "in", [r.value for r in roles])])
        needle = query.strip().lower()
        now = self._clock()
        listings = []
        for row in rows:
            profile = UserProfile.model_validate(row)
            if profile.status != AccountStatus.ACTIVE:
                continue
            haystack = " ".join(filter(None, [profile.name, profile.department, profile.modules])).lower()
            if needle and needle not in haystack:
                continue
            listings.append(StaffListing(
                profile=profile,
                available_now=is_available_at(profile.availability, now, self._config.tz),
            ))
        return sorted(listings, key=lambda item: (not item.available_now, item.profile.name))
