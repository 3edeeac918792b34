"""
In-memory document store and identity provider.

Used by the test suite and the console demo. Behaves like the hosted
backend where it matters to the portal: per-document revisions for
optimistic concurrency, immediate listener delivery on subscribe and on
every write, and store errors raised as ``StoreReadError`` /
``StoreWriteError``.
"""

import copy
import logging
import uuid
from typing import Any, Optional, Sequence

from learnbridge.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    StoreReadError,
    StoreWriteError,
)
from learnbridge.schemas.user_schema import AuthUser
from learnbridge.store.base import Filter, OnChange, OrderBy, Record, Unsubscribe

logger = logging.getLogger(__name__)


class _Listener:
    def __init__(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_change: OnChange,
        order_by: Optional[OrderBy],
    ) -> None:
        self.collection = collection
        self.filters = tuple(filters)
        self.on_change = on_change
        self.order_by = order_by
        self.active = True


def _sort_key(field: str):
    # Missing values sort first, mirroring how the hosted store orders nulls.
    def key(record: Record) -> tuple[int, Any]:
        value = record.get(field)
        return (0, "") if value is None else (1, value)

    return key


class InMemoryDocumentStore:
    """Dict-backed ``DocumentStore`` implementation."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Record]] = {}
        self._listeners: list[_Listener] = []
        self.fail_reads = False
        self.fail_writes = False
        self.failing_collections: set[str] = set()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _docs(self, collection: str) -> dict[str, Record]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _materialize(record_id: str, data: Record) -> Record:
        return {"id": record_id, **copy.deepcopy(data)}

    def _check_read(self, collection: str) -> None:
        if self.fail_reads:
            raise StoreReadError(f"Simulated read failure on '{collection}'")

    def _check_write(self, collection: str) -> None:
        if self.fail_writes or collection in self.failing_collections:
            raise StoreWriteError(f"Simulated write failure on '{collection}'")

    def _select(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Record]:
        rows = [
            self._materialize(rid, data)
            for rid, data in self._docs(collection).items()
            if all(f.matches(data) for f in filters)
        ]
        if order_by is not None:
            rows.sort(key=_sort_key(order_by.field), reverse=order_by.descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners):
            if listener.active and listener.collection == collection:
                listener.on_change(
                    self._select(collection, listener.filters, listener.order_by)
                )

    def seed(self, collection: str, record_id: str, data: Record) -> None:
        """Insert a document synchronously (fixtures and demos)."""
        stored = copy.deepcopy(data)
        stored["revision"] = stored.get("revision", 1)
        self._docs(collection)[record_id] = stored

    @property
    def listener_count(self) -> int:
        return sum(1 for listener in self._listeners if listener.active)

    # ------------------------------------------------------------------ #
    # DocumentStore protocol
    # ------------------------------------------------------------------ #

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        self._check_read(collection)
        data = self._docs(collection).get(record_id)
        return None if data is None else self._materialize(record_id, data)

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Record]:
        self._check_read(collection)
        return self._select(collection, filters, order_by, limit)

    async def create(self, collection: str, data: Record) -> str:
        self._check_write(collection)
        record_id = uuid.uuid4().hex[:20]
        stored = copy.deepcopy(data)
        stored.pop("id", None)
        stored["revision"] = 1
        self._docs(collection)[record_id] = stored
        logger.debug("Created %s/%s", collection, record_id)
        self._notify(collection)
        return record_id

    async def update(
        self,
        collection: str,
        record_id: str,
        data: Record,
        expected_revision: Optional[int] = None,
    ) -> int:
        self._check_write(collection)
        docs = self._docs(collection)
        if record_id not in docs:
            raise NotFoundError(collection, record_id)
        current = docs[record_id]
        actual = current.get("revision", 1)
        if expected_revision is not None and expected_revision != actual:
            raise ConcurrencyConflictError(collection, record_id, expected_revision, actual)
        patch = copy.deepcopy(data)
        patch.pop("id", None)
        patch.pop("revision", None)
        current.update(patch)
        current["revision"] = actual + 1
        logger.debug("Updated %s/%s -> revision %d", collection, record_id, actual + 1)
        self._notify(collection)
        return actual + 1

    async def delete(self, collection: str, record_id: str) -> None:
        self._check_write(collection)
        if self._docs(collection).pop(record_id, None) is None:
            raise NotFoundError(collection, record_id)
        self._notify(collection)

    async def count_where(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        self._check_read(collection)
        return sum(
            1 for data in self._docs(collection).values() if all(f.matches(data) for f in filters)
        )

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_change: OnChange,
        order_by: Optional[OrderBy] = None,
    ) -> Unsubscribe:
        listener = _Listener(collection, filters, on_change, order_by)
        self._listeners.append(listener)
        on_change(self._select(collection, listener.filters, order_by))

        def unsubscribe() -> None:
            if listener.active:
                listener.active = False
                self._listeners.remove(listener)

        return unsubscribe


class InMemoryIdentityProvider:
    """Single-session ``IdentityProvider`` for tests and the console demo."""

    def __init__(self, user: Optional[AuthUser] = None) -> None:
        self._user = user
        self.reset_emails_sent: list[str] = []

    def sign_in(self, user: AuthUser) -> None:
        self._user = user

    def current_user(self) -> Optional[AuthUser]:
        return self._user

    async def sign_out(self) -> None:
        self._user = None

    async def send_password_reset_email(self, email: str) -> None:
        self.reset_emails_sent.append(email)
