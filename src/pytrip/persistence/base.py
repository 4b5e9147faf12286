"""Persistent store contract and shared record parsing."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from pytrip.exceptions import StorageError
from pytrip.models.trip import Trip


@runtime_checkable
class TripStorage(Protocol):
    """Record-level trip persistence.

    Every method may raise :class:`~pytrip.exceptions.StorageError`. A
    write either fully succeeds or raises; callers must not advance their
    own state before it returns.
    """

    async def get_trips(self) -> list[Trip]: ...

    async def add_trip(self, trip: Trip) -> None: ...

    async def update_trip(self, trip: Trip) -> None: ...


def parse_trip_records(records: Iterable[Any], *, key: str = "") -> list[Trip]:
    """Validate raw records into :class:`Trip` models."""
    trips: list[Trip] = []
    for index, record in enumerate(records):
        try:
            trips.append(Trip.model_validate(record))
        except ValidationError as exc:
            raise StorageError(f"Invalid trip record at index {index}: {exc}", key=key) from exc
    return trips
