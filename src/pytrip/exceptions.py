"""Custom exception hierarchy for pytrip."""

from __future__ import annotations


class TripStoreError(Exception):
    """Base exception for all pytrip errors."""


class TripConfigError(TripStoreError):
    """Invalid or missing configuration."""


class StorageError(TripStoreError):
    """Persistent store failure (I/O, serialization, unknown or duplicate record)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class FileStoreError(TripStoreError):
    """Asset copy, download or removal failed."""

    def __init__(self, message: str, *, locator: str = "") -> None:
        self.locator = locator
        super().__init__(message)


class NotFoundError(TripStoreError):
    """A referenced entity does not exist in the cache."""

    entity: str = "entity"

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class TripNotFoundError(NotFoundError):
    entity = "Trip"


class DayNotFoundError(NotFoundError):
    entity = "Day"


class ChecklistItemNotFoundError(NotFoundError):
    entity = "Checklist item"


class PreconditionError(TripStoreError):
    """The trip is in a state the operation cannot act on.

    Raised for ``add_day`` on a trip without days and for deleting the
    last remaining day of a trip.
    """
