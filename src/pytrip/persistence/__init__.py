"""Persistent store layer.

Durable, key-addressed storage of the full trip collection. Records are
whole trips: a change anywhere in a trip's graph rewrites its record.
"""

from pytrip.persistence.base import TripStorage, parse_trip_records
from pytrip.persistence.json_file import JsonFileTripStorage
from pytrip.persistence.memory import InMemoryTripStorage

__all__ = [
    "InMemoryTripStorage",
    "JsonFileTripStorage",
    "TripStorage",
    "parse_trip_records",
]
