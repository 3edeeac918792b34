"""
Collaborator contracts: the hosted document store and the identity provider.

The portal never talks to a concrete backend directly; services receive
objects satisfying these protocols. Store reads and writes are awaitable
network operations. ``subscribe`` registers a live listener and returns
the callable that releases it.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

from learnbridge.schemas.user_schema import AuthUser

Record = dict[str, Any]
Unsubscribe = Callable[[], None]
OnChange = Callable[[list[Record]], None]

FILTER_OPS = frozenset({"==", "!=", "in", "<", "<=", ">", ">=", "array-contains"})

# Collection names
USERS = "users"
SESSIONS = "sessions"
RATINGS = "ratings"
ISSUES = "issues"
NOTIFICATIONS = "notifications"
CHATS = "chats"
DEPARTMENTS = "departments"
MODULES = "modules"
AUDIT_LOGS = "audit_logs"


@dataclass(frozen=True)
class Filter:
    """A single ``field op value`` predicate."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op {self.op!r}; expected one of {sorted(FILTER_OPS)}")

    def matches(self, record: Record) -> bool:
        if self.field not in record:
            return False
        actual = record[self.field]
        try:
            if self.op == "==":
                return actual == self.value
            if self.op == "!=":
                return actual != self.value
            if self.op == "in":
                return actual in self.value
            if self.op == "array-contains":
                return isinstance(actual, list) and self.value in actual
            if actual is None:
                return False
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            return actual >= self.value
        except TypeError:
            return False


def where(field: str, op: str, value: Any) -> Filter:
    return Filter(field, op, value)


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


class DocumentStore(Protocol):
    """Managed document database used by every portal."""

    async def get(self, collection: str, record_id: str) -> Optional[Record]: ...

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Record]: ...

    async def create(self, collection: str, data: Record) -> str: ...

    async def update(
        self,
        collection: str,
        record_id: str,
        data: Record,
        expected_revision: Optional[int] = None,
    ) -> int: ...

    async def delete(self, collection: str, record_id: str) -> None: ...

    async def count_where(self, collection: str, filters: Sequence[Filter] = ()) -> int: ...

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_change: OnChange,
        order_by: Optional[OrderBy] = None,
    ) -> Unsubscribe: ...


class IdentityProvider(Protocol):
    """Hosted authentication service."""

    def current_user(self) -> Optional[AuthUser]: ...

    async def sign_out(self) -> None: ...

    async def send_password_reset_email(self, email: str) -> None: ...
