"""Base model for persisted trip records.

Every record model inherits from :class:`TripBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase record keys map to
  snake_case fields, in both directions.
* ``frozen=True``: a model is a snapshot. Changes go through
  ``model_copy(update=...)`` and produce a new object.
* :meth:`TripBaseModel.to_record` for the JSON-compatible record form.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_tz_aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


Timestamp = Annotated[datetime, AfterValidator(ensure_tz_aware)]
"""Annotated type for record timestamps; naive values are read as UTC."""


class TripBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted record shape (camelCase, no ``None`` fields)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
