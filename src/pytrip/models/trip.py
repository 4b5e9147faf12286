"""Trip graph models: Trip → Day → ContentItem, Trip → ChecklistItem."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from pytrip.models._base import Timestamp, TripBaseModel


class ContentType(StrEnum):
    PHOTO = "photo"
    FILE = "file"


class ContentItem(TripBaseModel):
    """A photo or file attached to a day.

    Parameters
    ----------
    id : str
        Item identifier.
    day_id : str
        Back-reference to the owning day.
    title : str
        Display title.
    memo : str or None
        Free-text note, e.g. a voucher reference.
    type : ContentType
        ``photo`` or ``file``.
    uri : str
        Locator in the local file store. The item owns the file; deleting
        the item releases it.
    cloud_url : str or None
        Remote mirror URL, once one exists.
    created_at : datetime
        Upload time.
    """

    id: str
    day_id: str
    title: str
    memo: str | None = None
    type: ContentType
    uri: str
    cloud_url: str | None = None
    created_at: Timestamp


class ContentItemInput(TripBaseModel):
    """Caller-supplied fields of a new content item.

    The asset must already be in the file store; ``uri`` is its locator.
    """

    title: str
    type: ContentType
    uri: str
    memo: str | None = None
    cloud_url: str | None = None


class Day(TripBaseModel):
    id: str
    trip_id: str
    day_number: int = Field(gt=0)
    title: str | None = None
    date: dt.date
    items: tuple[ContentItem, ...] = ()

    @property
    def label(self) -> str:
        """User title, or the default ``N일차`` label."""
        if self.title:
            return self.title
        return f"{self.day_number}일차"


class ChecklistItem(TripBaseModel):
    id: str
    trip_id: str
    text: str
    is_checked: bool = False
    created_at: Timestamp


class Trip(TripBaseModel):
    """A planned trip with its days and packing checklist.

    ``days`` is ordered by ``day_number`` ascending with no duplicates.
    Numbers may have gaps: deleting a day never renumbers the rest.
    """

    id: str
    title: str
    start_date: dt.date
    end_date: dt.date
    created_at: Timestamp
    updated_at: Timestamp
    days: tuple[Day, ...] = ()
    checklist: tuple[ChecklistItem, ...] = ()

    @field_validator("checklist", mode="before")
    @classmethod
    def _default_checklist(cls, value: Any) -> Any:
        # Records written before checklists existed carry null here.
        return () if value is None else value

    @field_validator("days")
    @classmethod
    def _check_day_order(cls, days: tuple[Day, ...]) -> tuple[Day, ...]:
        numbers = [day.day_number for day in days]
        if any(later <= earlier for earlier, later in zip(numbers, numbers[1:])):
            raise ValueError(f"days must be ordered by dayNumber without duplicates, got {numbers}")
        return days

    def find_day(self, day_id: str) -> Day | None:
        return next((day for day in self.days if day.id == day_id), None)

    def find_checklist_item(self, item_id: str) -> ChecklistItem | None:
        return next((item for item in self.checklist if item.id == item_id), None)
