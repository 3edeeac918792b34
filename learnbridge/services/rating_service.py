"""Star ratings left by students, with an optional reply from the staff member."""

from datetime import datetime
from typing import Callable, Optional

from learnbridge.errors import AuthorizationError, InputValidationError, NotFoundError
from learnbridge.logging_context import get_actor_logger, set_actor_id
from learnbridge.schemas.records_schema import Rating
from learnbridge.schemas.user_schema import Actor, UserProfile, UserRole
from learnbridge.services.access_guard import ensure_active, ensure_role
from learnbridge.store.base import RATINGS, USERS, DocumentStore, OrderBy, where
from learnbridge.utils import utc_now

logger = get_actor_logger(__name__)

MAX_COMMENT_LENGTH = 1000


class RatingService:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def submit(self, actor: Actor, staff_id: str, stars: int, comment: str = "") -> Rating:
        """Rate a tutor or counsellor from 1 to 5 stars."""
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.STUDENT)
        ensure_active(actor)
        if isinstance(stars, bool) or not isinstance(stars, int) or not 1 <= stars <= 5:
            raise InputValidationError("Please choose a rating between 1 and 5 stars.")
        comment = (comment or "").strip()
        if len(comment) > MAX_COMMENT_LENGTH:
            raise InputValidationError(f"Comments are limited to {MAX_COMMENT_LENGTH} characters.")

        record = await self._store.get(USERS, staff_id)
        if record is None:
            raise NotFoundError(USERS, staff_id)
        staff = UserProfile.model_validate(record)
        if not staff.is_staff:
            raise InputValidationError("Only tutors and counsellors can be rated.")

        rating = Rating(
            student_id=actor.id,
            person_id=staff_id,
            person_name=staff.name,
            role=staff.role.value,
            stars=stars,
            comment=comment,
            created_at=self._clock(),
        )
        rating_id = await self._store.create(RATINGS, rating.to_record())
        logger.info("Rating %s: %d star(s) for %s", rating_id, stars, staff_id)
        return rating.model_copy(update={"id": rating_id, "revision": 1})

    async def reply(self, actor: Actor, rating_id: str, text: str) -> Rating:
        """Attach the rated staff member's reply."""
        set_actor_id(actor.id)
        ensure_role(actor, UserRole.TUTOR, UserRole.COUNSELLOR)
        ensure_active(actor)
        text = (text or "").strip()
        if not text:
            raise InputValidationError("Reply cannot be empty.")
        row = await self._store.get(RATINGS, rating_id)
        if row is None:
            raise NotFoundError(RATINGS, rating_id)
        rating = Rating.model_validate(row)
        if rating.person_id != actor.id:
            raise AuthorizationError("You can only reply to ratings addressed to you.")

        updated = rating.model_copy(update={"reply": text, "replied_at": self._clock()})
        revision = await self._store.update(
            RATINGS, rating_id, updated.dump_fields({"reply", "replied_at"}),
            expected_revision=rating.revision,
        )
        return updated.model_copy(update={"revision": revision})

    async def list_for_staff(self, actor: Actor, staff_id: Optional[str] = None) -> list[Rating]:
        """Ratings received by a staff member; staff see only their own."""
        set_actor_id(actor.id)
        target = staff_id or actor.id
        if not actor.is_admin and target != actor.id:
            raise AuthorizationError("You can only view your own ratings.")
        rows = await self._store.query(
            RATINGS, [where("personId", "==", target)], order_by=OrderBy("createdAt", descending=True)
        )
        return [Rating.model_validate(r) for r in rows]

    async def list_given(self, actor: Actor, role: str = "", search: str = "") -> list[Rating]:
        """The actor's own ratings, filtered by staff role and free text."""
        set_actor_id(actor.id)
        rows = await self._store.query(
            RATINGS, [where("studentId", "==", actor.id)], order_by=OrderBy("createdAt", descending=True)
        )
        ratings = [Rating.model_validate(r) for r in rows]
        if role:
            ratings = [r for r in ratings if r.role == role]
        needle = search.strip().lower()
        if needle:
            ratings = [
                r for r in ratings
                if needle in r.person_name.lower() or needle in r.comment.lower()
            ]
        return ratings
