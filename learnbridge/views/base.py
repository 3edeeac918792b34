"""
Behaviour shared by the role-specific portals.

A portal view owns its state explicitly: the signed-in actor, the chat
contact currently open, its chat subscriptions and whatever edit buffers
the subclass adds. Feedback follows two rules. Failed reads return
``LOAD_FAILED`` for the section, and failed actions append a message to
``alerts`` and return None. Nothing is retried.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar, Union

from learnbridge.config import AppConfig, settings
from learnbridge.errors import AuthorizationError, InputValidationError, PortalError, StoreReadError
from learnbridge.logging_context import get_actor_logger
from learnbridge.schemas.user_schema import Actor, UserRole
from learnbridge.services.access_guard import AccessGuard
from learnbridge.services.audit import AuditLog
from learnbridge.services.booking_service import BookingService
from learnbridge.services.chat_service import ChatChannel, ChatRegistry, ChatService, chat_id_for
from learnbridge.services.dashboard import DashboardAggregator
from learnbridge.services.notification_service import NotificationItem, NotificationService
from learnbridge.services.profile_service import ProfileService
from learnbridge.store.base import DocumentStore, IdentityProvider
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)

LOAD_FAILED = "Failed to load. Reload this section to try again."

T = TypeVar("T")


class PortalView:
    """Base portal: access check on entry, feedback helpers, chat lifecycle."""

    ROLES: tuple[UserRole, ...] = ()
    REQUIRE_ACTIVE = False

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        config: AppConfig = settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock
        self.guard = AccessGuard(store, identity)
        self.notifications = NotificationService(store, config, clock)
        self.audit = AuditLog(store, clock)
        self.bookings = BookingService(
            store, config, clock, self.notifications, self.audit, on_warning=self.alert
        )
        self.dashboards = DashboardAggregator(store, config, clock)
        self.chat = ChatService(store, clock)
        self.profiles = ProfileService(store, config, clock)

        self.actor: Optional[Actor] = None
        self.alerts: list[str] = []
        self.chats = ChatRegistry()
        self.current_chat_contact: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def enter(self) -> Actor:
        """Run the access guard; on failure the user is already signed out."""
        try:
            self.actor = await self.guard.resolve_actor(
                *self.ROLES, require_active=self.REQUIRE_ACTIVE
            )
        except AuthorizationError as exc:
            self.alert(str(exc))
            raise
        logger.info("%s opened by %s", type(self).__name__, self.actor.id)
        return self.actor

    def exit(self) -> None:
        """Leave the view, releasing every chat subscription."""
        self.chats.close_all()
        self.current_chat_contact = None

    async def sign_out(self) -> None:
        self.exit()
        await self.guard.sign_out()
        self.actor = None

    def _require_actor(self) -> Actor:
        if self.actor is None:
            raise AuthorizationError("Not signed in.")
        return self.actor

    # ------------------------------------------------------------------ #
    # Feedback
    # ------------------------------------------------------------------ #

    def alert(self, message: str) -> None:
        logger.warning("Alert: %s", message)
        self.alerts.append(message)

    async def _load(self, operation: Awaitable[T]) -> Union[T, str]:
        try:
            return await operation
        except StoreReadError as exc:
            logger.error("Load failed: %s", exc)
            return LOAD_FAILED
        except PortalError as exc:
            self.alert(str(exc))
            return LOAD_FAILED

    def _report(self, exc: PortalError, failure: str) -> None:
        if isinstance(exc, InputValidationError):
            self.alert(str(exc))
        else:
            self.alert(f"{failure}: {exc}")

    async def _act(self, operation: Awaitable[T], failure: str = "Error") -> Optional[T]:
        """Await an action; on failure alert and return None."""
        try:
            return await operation
        except PortalError as exc:
            self._report(exc, failure)
            return None

    async def _done(self, operation: Awaitable[None], failure: str = "Error") -> bool:
        """Like ``_act`` for actions without a result: True on success."""
        try:
            await operation
        except PortalError as exc:
            self._report(exc, failure)
            return False
        return True

    # ------------------------------------------------------------------ #
    # Shared sections
    # ------------------------------------------------------------------ #

    async def notification_centre(self) -> Union[list[NotificationItem], str]:
        return await self._load(self.notifications.list_for(self._require_actor()))

    async def notification_badge(self) -> Union[int, str]:
        return await self._load(self.notifications.unread_badge_count(self._require_actor()))

    async def request_password_reset(self, email: str) -> bool:
        return await self._done(self.guard.request_password_reset(email), "Reset failed")

    async def update_profile(self, **fields):
        return await self._act(
            self.profiles.update_own_profile(self._require_actor(), **fields), "Error saving profile"
        )

    def open_chat(
        self, contact_id: str, on_messages: Optional[Callable] = None
    ) -> ChatChannel:
        """Open the conversation with ``contact_id``, closing any other one first."""
        actor = self._require_actor()
        self.close_chat()
        channel = self.chats.open(
            self._store,
            chat_id_for(actor.id, contact_id),
            on_messages,
            on_error=lambda exc: self.alert(f"{LOAD_FAILED} ({exc})"),
        )
        self.current_chat_contact = contact_id
        return channel

    def close_chat(self) -> None:
        if self.current_chat_contact is not None and self.actor is not None:
            self.chats.close(chat_id_for(self.actor.id, self.current_chat_contact))
        self.current_chat_contact = None

    async def send_message(self, text: str) -> Optional[str]:
        if self.current_chat_contact is None:
            self.alert("Open a conversation first.")
            return None
        return await self._act(
            self.chat.send(self._require_actor(), self.current_chat_contact, text),
            "Failed to send message",
        )
