"""
Error taxonomy shared by the store, the booking domain and the services.

Views map these onto user-facing feedback: read failures become an inline
"failed to load" placeholder, everything else becomes a blocking alert.
Nothing is retried automatically.
"""

from datetime import datetime
from typing import Optional


class PortalError(Exception):
    """Base class for every error raised by the portal."""


class InputValidationError(PortalError):
    """Input rejected before any write was attempted."""


class AuthorizationError(PortalError):
    """The acting user may not perform the operation."""


class NotFoundError(PortalError):
    """A referenced record does not exist."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection}/{record_id} not found")
        self.collection = collection
        self.record_id = record_id


class StoreError(PortalError):
    """The document store failed."""


class StoreReadError(StoreError):
    """A read against the document store failed."""


class StoreWriteError(StoreError):
    """A write against the document store failed."""


class ConcurrencyConflictError(PortalError):
    """The record changed since the caller read it."""

    def __init__(self, collection: str, record_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"{collection}/{record_id} was modified concurrently "
            f"(expected revision {expected}, found {actual})"
        )
        self.expected = expected
        self.actual = actual


class SlotConflictError(PortalError):
    """The chosen slot overlaps an active booking of the same staff member."""

    def __init__(self, slot: datetime, next_available: Optional[datetime]) -> None:
        hint = (
            f" Next available: {next_available.isoformat()}."
            if next_available else " No alternative found within the search window."
        )
        super().__init__(f"Slot {slot.isoformat()} conflicts with an existing booking.{hint}")
        self.slot = slot
        self.next_available = next_available
