"""Base model shared by every stored record."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from learnbridge.utils import normalize_instant


class RecordModel(BaseModel):
    """A document in one of the portal collections.

    Field names are snake_case in Python and camelCase in the store.
    ``id`` and ``revision`` are managed by the store and never written back.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    revision: int = 0

    def to_record(self) -> dict[str, Any]:
        """Serialize for the document store."""
        return self.model_dump(
            mode="json", by_alias=True, exclude={"id", "revision"}, exclude_none=True
        )

    def dump_fields(self, names: set[str]) -> dict[str, Any]:
        """Serialize a subset of fields, keeping explicit ``None`` values."""
        return self.model_dump(mode="json", by_alias=True, include=names)


def utc_field(value: Any) -> Optional[datetime]:
    """Shared validator body: normalize date-times to aware UTC."""
    if value is None or value == "":
        return None
    return normalize_instant(value)


class TimestampedModel(RecordModel):
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _normalize_created_at(cls, value: Any) -> Optional[datetime]:
        return utc_field(value)
