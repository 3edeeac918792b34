"""Append-only audit trail for administrative actions."""

from datetime import datetime
from typing import Any, Callable, Optional

from learnbridge.logging_context import get_actor_logger
from learnbridge.schemas.records_schema import AuditLogEntry
from learnbridge.schemas.user_schema import Actor
from learnbridge.store.base import AUDIT_LOGS, DocumentStore, OrderBy
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)


class AuditLog:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def record(
        self,
        actor: Actor,
        action: str,
        target: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> str:
        entry = AuditLogEntry(
            ts=self._clock(), actor=actor.id, action=action, target=target, details=details or {}
        )
        entry_id = await self._store.create(AUDIT_LOGS, entry.to_record())
        logger.info("Audit: %s on %s", action, target)
        return entry_id

    async def recent(self, limit: int = 100) -> list[AuditLogEntry]:
        rows = await self._store.query(AUDIT_LOGS, order_by=OrderBy("ts", descending=True), limit=limit)
        return [AuditLogEntry.model_validate(r) for r in rows]
