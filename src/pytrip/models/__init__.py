"""Data models for the trip graph."""

from pytrip.models._base import Timestamp, TripBaseModel, ensure_tz_aware
from pytrip.models.result import FailureReason, MutationResult
from pytrip.models.trip import ChecklistItem, ContentItem, ContentItemInput, ContentType, Day, Trip

__all__ = [
    "ChecklistItem",
    "ContentItem",
    "ContentItemInput",
    "ContentType",
    "Day",
    "FailureReason",
    "MutationResult",
    "Timestamp",
    "Trip",
    "TripBaseModel",
    "ensure_tz_aware",
]
