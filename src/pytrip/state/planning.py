"""Day sequence rules.

Pure functions over trip snapshots; no I/O and no store state. The store
calls these inside its read-modify-write and persists what they return.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from pytrip.exceptions import DayNotFoundError, PreconditionError
from pytrip.models.trip import Day, Trip


def parse_date(value: date | str) -> date:
    """Accept a ``date`` or an ISO 8601 date string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


def day_count(start: date, end: date) -> int:
    """Inclusive number of days between two dates.

    The distance is absolute, so reversed dates still give a valid count.
    """
    return abs((end - start).days) + 1


def day_id(trip_id: str, day_number: int) -> str:
    return f"{trip_id}_day_{day_number}"


def build_days(trip_id: str, start: date, count: int) -> tuple[Day, ...]:
    """Days ``1..count`` dated consecutively from *start*."""
    return tuple(
        Day(
            id=day_id(trip_id, offset + 1),
            trip_id=trip_id,
            day_number=offset + 1,
            date=start + timedelta(days=offset),
        )
        for offset in range(count)
    )


def next_day(trip: Trip) -> Day:
    """The day that follows the trip's last day."""
    if not trip.days:
        raise PreconditionError(f"Trip {trip.id} has no days to extend")
    last = trip.days[-1]
    number = last.day_number + 1
    return Day(
        id=day_id(trip.id, number),
        trip_id=trip.id,
        day_number=number,
        date=last.date + timedelta(days=1),
    )


def without_day(trip: Trip, target_id: str) -> tuple[Day, ...]:
    """Days of *trip* minus *target_id*, numbering untouched.

    Labels such as ``2일차`` must not change under the user, so gaps are
    left in place. Removing the only remaining day is refused.
    """
    if trip.find_day(target_id) is None:
        raise DayNotFoundError(target_id)
    if len(trip.days) == 1:
        raise PreconditionError(f"Cannot delete the last day of trip {trip.id}")
    return tuple(day for day in trip.days if day.id != target_id)
