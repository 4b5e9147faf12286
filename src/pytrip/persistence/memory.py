"""In-memory backend for the persistent store."""

from __future__ import annotations

import copy
from typing import Any

from pytrip.exceptions import StorageError
from pytrip.models.trip import Trip
from pytrip.persistence.base import parse_trip_records


class InMemoryTripStorage:
    """Keep serialized trip records in a dict.

    Records go through the same serialization as the file backend, so a
    trip read back is an independent copy of what was written.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        for record in records or []:
            self._records[str(record["id"])] = copy.deepcopy(record)

    @property
    def records(self) -> list[dict[str, Any]]:
        return copy.deepcopy(list(self._records.values()))

    async def get_trips(self) -> list[Trip]:
        return parse_trip_records(self._records.values(), key="memory")

    async def add_trip(self, trip: Trip) -> None:
        if trip.id in self._records:
            raise StorageError(f"Trip already exists: {trip.id}", key="memory")
        self._records[trip.id] = trip.to_record()

    async def update_trip(self, trip: Trip) -> None:
        if trip.id not in self._records:
            raise StorageError(f"Trip not stored: {trip.id}", key="memory")
        self._records[trip.id] = trip.to_record()
