"""
Notification centre: targeted notices plus incoming chat messages.

A notification targets one user id, one role name, or ``all``. Booking
transitions write a notice to the other party when enabled in config.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from learnbridge.config import AppConfig, settings
from learnbridge.errors import AuthorizationError, NotFoundError, StoreWriteError
from learnbridge.logging_context import get_actor_logger
from learnbridge.schemas.booking_schema import BookingRequest
from learnbridge.schemas.records_schema import ChatMessage, Notification
from learnbridge.schemas.user_schema import Actor
from learnbridge.store.base import CHATS, NOTIFICATIONS, DocumentStore, OrderBy, where
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

BOOKING_TITLES = {
    "created": "New booking request",
    "approve": "Booking approved",
    "suggest": "New time suggested",
    "accept_suggestion": "Suggested time accepted",
    "decline_suggestion": "Suggested time declined",
    "reject": "Booking rejected",
    "cancel": "Booking cancelled",
    "start": "Session started",
    "complete": "Session completed",
}


@dataclass(frozen=True)
class NotificationItem:
    """One line in the notification centre."""

    text: str
    ts: Optional[datetime]
    source: str
    record_id: Optional[str] = None
    read: bool = True


class NotificationService:
    def __init__(
        self,
        store: DocumentStore,
        config: AppConfig = settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock

    async def push(
        self,
        title: str,
        message: str,
        target: str = "all",
        meta: Optional[dict[str, Any]] = None,
        from_admin: bool = False,
    ) -> str:
        note = Notification(
            title=title,
            message=message,
            target=target,
            meta=meta or {},
            from_admin=from_admin,
            created_at=self._clock(),
        )
        return await self._store.create(NOTIFICATIONS, note.to_record())

    async def notify_booking(
        self, booking: BookingRequest, event: str, actor: Actor
    ) -> list[str]:
        """Tell the other party(ies) about a booking event."""
        if not self._config.booking.notify_on_transitions:
            return []
        if actor.id == booking.requester_id:
            targets = [booking.staff_id]
        elif actor.id == booking.staff_id:
            targets = [booking.requester_id]
        else:
            targets = [booking.requester_id, booking.staff_id]

        title = BOOKING_TITLES.get(event, "Booking updated")
        when = booking.scheduled_at or booking.suggested_time
        message = f"{booking.role.value.title()} session with {booking.staff_name or 'staff'}"
        if when is not None:
            message += f" at {when.isoformat()}"
        message += f" is now {booking.status.value}."
        ids = []
        try:
            for target in targets:
                ids.append(await self.push(
                    title, message, target=target,
                    meta={"bookingId": booking.id, "status": booking.status.value, "event": event},
                ))
        except StoreWriteError:
            logger.exception("Booking %s saved but notification failed", booking.id)
            raise
        return ids

    async def list_for(self, actor: Actor) -> list[NotificationItem]:
        """Targeted notices and recent incoming chat messages, newest first."""
        limit = self._config.dashboard.notification_limit
        notes = await self._store.query(
            NOTIFICATIONS,
            [where("target", "in", [actor.id, actor.role.value, "all"])],
            order_by=OrderBy("createdAt", descending=True),
            limit=limit,
        )
        chats = await self._store.query(
            CHATS,
            [where("to", "==", actor.id)],
            order_by=OrderBy("createdAt", descending=True),
            limit=self._config.dashboard.chat_history_limit,
        )
        items = []
        for row in notes:
            note = Notification.model_validate(row)
            items.append(NotificationItem(
                text=f"{note.title}: {note.message}",
                ts=note.created_at,
                source="notification",
                record_id=note.id,
                read=note.read or note.target != actor.id,
            ))
        for row in chats:
            msg = ChatMessage.model_validate(row)
            items.append(NotificationItem(
                text=f"Message from {msg.from_}: {msg.text}",
                ts=msg.created_at,
                source="chat",
                record_id=msg.id,
            ))
        items.sort(key=lambda i: i.ts or _EPOCH, reverse=True)
        return items[:limit]

    async def unread_badge_count(self, actor: Actor) -> int:
        return await self._store.count_where(
            NOTIFICATIONS, [where("target", "==", actor.id), where("read", "==", False)]
        )

    async def mark_read(self, actor: Actor, notification_id: str) -> None:
        row = await self._store.get(NOTIFICATIONS, notification_id)
        if row is None:
            raise NotFoundError(NOTIFICATIONS, notification_id)
        if row.get("target") != actor.id:
            raise AuthorizationError("You can only mark your own notifications as read.")
        await self._store.update(NOTIFICATIONS, notification_id, {"read": True})
