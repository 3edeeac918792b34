"""Actor ID logging context for tracing a user's actions across services.

Every service entry point records who is acting; the filter attaches that
id to each log record so one user's booking negotiation can be followed
through the booking, notification and audit modules.

Usage:
    from learnbridge.logging_context import get_actor_logger, set_actor_id

    set_actor_id("uid-tutor-1")
    logger = get_actor_logger(__name__)
    logger.info("Approving request")  # record.actor_id == "uid-tutor-1"
"""

import logging
from contextvars import ContextVar

_actor_id: ContextVar[str] = ContextVar("actor_id", default="NO_ACTOR")


def set_actor_id(actor_id: str) -> None:
    """Set the acting user id for the current async context."""
    _actor_id.set(actor_id)


def get_actor_id() -> str:
    """Retrieve the current acting user id."""
    return _actor_id.get()


class ActorIdFilter(logging.Filter):
    """Injects actor_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.actor_id = _actor_id.get()  # type: ignore[attr-defined]
        return True


def get_actor_logger(name: str) -> logging.Logger:
    """Return a logger with the ActorIdFilter attached.

    The filter adds ``actor_id`` to each record so formatters can
    include ``%(actor_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, ActorIdFilter) for f in logger.filters):
        logger.addFilter(ActorIdFilter())
    return logger
