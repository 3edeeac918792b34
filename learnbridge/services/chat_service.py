"""
One-to-one chat between a student and a staff member.

A conversation is identified by ``chat_id_for(a, b)``, which is the same
whichever side opens it. ``ChatChannel`` owns exactly one live store
subscription: it is taken on enter and released on exit, whether the
view closed the chat, navigated away or the delivery callback failed.
"""

from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError as SchemaError

from learnbridge.errors import InputValidationError, NotFoundError
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.records_schema import ChatMessage
from learnbridge.schemas.user_schema import Actor
from learnbridge.store.base import CHATS, USERS, DocumentStore, OrderBy, Record, Unsubscribe, where
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)

MAX_MESSAGE_LENGTH = 4000

OnMessages = Callable[[list[ChatMessage]], None]
OnError = Callable[[Exception], None]


def chat_id_for(a: str, b: str) -> str:
    """Order-independent conversation id for two user ids."""
    return "__".join(sorted([a, b]))


class ChatChannel:
    """
    A scoped subscription to one conversation's messages.

    Usage:
        with ChatChannel(store, chat_id, render) as channel:
            ...  # render() runs on every change
        # unsubscribed here
    """

    def __init__(
        self,
        store: DocumentStore,
        chat_id: str,
        on_messages: Optional[OnMessages] = None,
        on_error: Optional[OnError] = None,
    ) -> None:
        self._store = store
        self.chat_id = chat_id
        self._on_messages = on_messages
        self._on_error = on_error
        self._unsubscribe: Optional[Unsubscribe] = None
        self.messages: list[ChatMessage] = []
        self.error: Optional[Exception] = None

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    def open(self) -> "ChatChannel":
        if self._unsubscribe is None:
            self.error = None
            self._unsubscribe = self._store.subscribe(
                CHATS, [where("chatId", "==", self.chat_id)], self._deliver,
                order_by=OrderBy("createdAt"),
            )
            # The initial delivery runs before the handle is stored.
            if self.error is not None:
                self.close()
            else:
                logger.debug("Chat %s opened", self.chat_id)
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.debug("Chat %s closed", self.chat_id)

    def _deliver(self, rows: list[Record]) -> None:
        try:
            self.messages = [ChatMessage.model_validate(r) for r in rows]
            if self._on_messages is not None:
                self._on_messages(self.messages)
        except (SchemaError, ValueError, TypeError) as exc:
            # Delivery runs inside the store's write path; the failure is
            # recorded on the channel and reported through on_error.
            logger.error("Failed to load messages for %s: %s", self.chat_id, exc)
            self.error = exc
            self.close()
            if self._on_error is not None:
                self._on_error(exc)

    def __enter__(self) -> "ChatChannel":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChatRegistry:
    """Open channels belonging to one portal view."""

    def __init__(self) -> None:
        self._channels: dict[str, ChatChannel] = {}

    def open(
        self,
        store: DocumentStore,
        chat_id: str,
        on_messages: Optional[OnMessages] = None,
        on_error: Optional[OnError] = None,
    ) -> ChatChannel:
        self.close(chat_id)
        channel = ChatChannel(store, chat_id, on_messages, on_error).open()
        self._channels[chat_id] = channel
        return channel

    def get(self, chat_id: str) -> Optional[ChatChannel]:
        return self._channels.get(chat_id)

    def close(self, chat_id: str) -> None:
        channel = self._channels.pop(chat_id, None)
        if channel is not None:
            channel.close()

    def close_all(self) -> None:
        for chat_id in list(self._channels):
            self.close(chat_id)

    def __len__(self) -> int:
        return len(self._channels)


class ChatService:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def channel(
        self,
        actor: Actor,
        other_id: str,
        on_messages: Optional[OnMessages] = None,
        on_error: Optional[OnError] = None,
    ) -> ChatChannel:
        """An unopened channel for the actor's conversation with ``other_id``."""
        return ChatChannel(self._store, chat_id_for(actor.id, other_id), on_messages, on_error)

    async def send(self, actor: Actor, to_id: str, text: str) -> str:
        set_actor_id(actor.id)
        text = (text or "").strip()
        if not text:
            raise InputValidationError("Message cannot be empty.")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise InputValidationError(f"Messages are limited to {MAX_MESSAGE_LENGTH} characters.")
        if to_id == actor.id:
            raise InputValidationError("You cannot message yourself.")
        if await self._store.get(USERS, to_id) is None:
            raise NotFoundError(USERS, to_id)

        message = ChatMessage(
            chat_id=chat_id_for(actor.id, to_id),
            from_=actor.id,
            to=to_id,
            text=text,
            created_at=self._clock(),
        )
        message_id = await self._store.create(CHATS, message.to_record())
        logger.debug("Message %s sent to %s", message_id, to_id)
        return message_id

    async def history(self, actor: Actor, other_id: str) -> list[ChatMessage]:
        rows = await self._store.query(
            CHATS, [where("chatId", "==", chat_id_for(actor.id, other_id))],
            order_by=OrderBy("createdAt"),
        )
        return [ChatMessage.model_validate(r) for r in rows]

    async def contacts(self, actor: Actor) -> list[str]:
        """Ids of everyone the actor has exchanged messages with, most recent first."""
        sent = await self._store.query(CHATS, [where("from", "==", actor.id)])
        received = await self._store.query(CHATS, [where("to", "==", actor.id)])
        latest: dict[str, str] = {}
        for row in sent + received:
            other = row["to"] if row.get("from") == actor.id else row.get("from")
            if other and row.get("createdAt", "") >= latest.get(other, ""):
                latest[other] = row.get("createdAt", "")
        return sorted(latest, key=latest.get, reverse=True)
