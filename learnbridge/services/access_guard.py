"""
Role and account-status enforcement.

``AccessGuard`` runs when a portal opens: it resolves the signed-in
account to an ``Actor`` and signs the user out when the profile is
missing or the role is wrong for the portal. Portals that need an active
account say so with ``require_active``. Services then authorize every
call against the actor with ``ensure_role`` and ``ensure_active``.
"""

from pydantic import ValidationError as SchemaError

from learnbridge.errors import AuthorizationError, InputValidationError
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.user_schema import AccountStatus, Actor, UserProfile, UserRole
from learnbridge.store.base import USERS, DocumentStore, IdentityProvider

logger = get_actor_logger(__name__)


def ensure_role(actor: Actor, *roles: UserRole) -> None:
    if actor.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise AuthorizationError(f"This action requires one of: {allowed}.")


def ensure_active(actor: Actor) -> None:
    if actor.status != AccountStatus.ACTIVE:
        raise AuthorizationError(
            f"Your account is {actor.status.value}; changes are disabled until an admin activates it."
        )


class AccessGuard:
    """Resolves the identity provider's user into an authorized ``Actor``."""

    def __init__(self, store: DocumentStore, identity: IdentityProvider) -> None:
        self._store = store
        self._identity = identity

    async def _deny(self, message: str) -> None:
        logger.warning("Access denied: %s", message)
        await self._identity.sign_out()
        raise AuthorizationError(message)

    async def resolve_actor(self, *allowed_roles: UserRole, require_active: bool = False) -> Actor:
        """
        Return the signed-in actor, or sign out and raise ``AuthorizationError``.

        Args:
            allowed_roles: Roles admitted by the calling portal; empty admits all.
            require_active: Also reject accounts still pending approval.
        """
        user = self._identity.current_user()
        if user is None:
            raise AuthorizationError("Not signed in.")
        set_actor_id(user.id)

        record = await self._store.get(USERS, user.id)
        if record is None:
            await self._deny("Profile data missing.")
        try:
            profile = UserProfile.model_validate(record)
        except SchemaError:
            await self._deny("Profile data is invalid.")

        if allowed_roles and profile.role not in allowed_roles:
            portal = "/".join(r.value for r in allowed_roles)
            await self._deny(
                f"Access denied: your role is '{profile.role.value}'. This portal is for {portal}."
            )
        if require_active and profile.status != AccountStatus.ACTIVE:
            await self._deny(f"Your account is {profile.status.value}.")

        return Actor(
            id=user.id,
            email=profile.email or user.email,
            name=profile.name,
            role=profile.role,
            status=profile.status,
        )

    async def request_password_reset(self, email: str) -> None:
        email = (email or "").strip()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise InputValidationError("Enter a valid e-mail address.")
        await self._identity.send_password_reset_email(email)
        logger.info("Password reset requested for %s", email)

    async def sign_out(self) -> None:
        await self._identity.sign_out()
