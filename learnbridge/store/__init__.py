from learnbridge.store.base import (
    AUDIT_LOGS,
    CHATS,
    DEPARTMENTS,
    ISSUES,
    MODULES,
    NOTIFICATIONS,
    RATINGS,
    SESSIONS,
    USERS,
    DocumentStore,
    Filter,
    IdentityProvider,
    OrderBy,
    Record,
    where,
)
from learnbridge.store.memory import InMemoryDocumentStore, InMemoryIdentityProvider

__all__ = [
    "DocumentStore",
    "IdentityProvider",
    "Filter",
    "OrderBy",
    "Record",
    "where",
    "InMemoryDocumentStore",
    "InMemoryIdentityProvider",
    "USERS",
    "SESSIONS",
    "RATINGS",
    "ISSUES",
    "NOTIFICATIONS",
    "CHATS",
    "DEPARTMENTS",
    "MODULES",
    "AUDIT_LOGS",
]
