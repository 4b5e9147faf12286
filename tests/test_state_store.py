from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any

import pytest

from pytrip.exceptions import FileStoreError, StorageError
from pytrip.models.result import FailureReason
from pytrip.models.trip import ContentItemInput, ContentType, Trip
from pytrip.persistence.json_file import JsonFileTripStorage
from pytrip.persistence.memory import InMemoryTripStorage
from pytrip.state.store import TripStore, TripStoreState

FIXED_NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class RecordingFileStore:
    """File store double that records calls; locators in *failing* raise on delete."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.saved: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.failing = failing or set()

    async def save(self, source: str, file_name: str) -> str:
        self.saved.append((source, file_name))
        return f"/assets/{file_name}"

    async def delete(self, locator: str) -> None:
        self.deleted.append(locator)
        if locator in self.failing:
            raise FileStoreError(f"disk says no: {locator}", locator=locator)


class FlakyStorage(InMemoryTripStorage):
    """In-memory storage whose writes can fail and whose I/O can yield."""

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        super().__init__(records)
        self.fail_writes = False
        self.write_delay_steps = 0
        self.read_delay_steps = 0
        self.update_calls = 0

    async def get_trips(self) -> list[Trip]:
        # Snapshot first, return late: a slow read of stale data.
        trips = await super().get_trips()
        for _ in range(self.read_delay_steps):
            await asyncio.sleep(0)
        return trips

    async def add_trip(self, trip: Trip) -> None:
        if self.fail_writes:
            raise StorageError("quota exceeded", key="memory")
        await super().add_trip(trip)

    async def update_trip(self, trip: Trip) -> None:
        self.update_calls += 1
        for _ in range(self.write_delay_steps):
            await asyncio.sleep(0)
        if self.fail_writes:
            raise StorageError("quota exceeded", key="memory")
        await super().update_trip(trip)


def _counter_ids() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"id{next(counter)}"


@pytest.fixture
def storage() -> FlakyStorage:
    return FlakyStorage()


@pytest.fixture
def files() -> RecordingFileStore:
    return RecordingFileStore()


@pytest.fixture
def store(storage: FlakyStorage, files: RecordingFileStore) -> TripStore:
    return TripStore(storage, files, clock=lambda: FIXED_NOW, id_factory=_counter_ids())


async def _tokyo(store: TripStore) -> Trip:
    result = await store.add_trip("Tokyo", "2024-04-01", "2024-04-03")
    assert result.ok, result.message
    assert result.trip is not None
    return result.trip


def _photo(uri: str = "/assets/shibuya.jpg") -> ContentItemInput:
    return ContentItemInput(title="Shibuya", type=ContentType.PHOTO, uri=uri)


# ------------------------------------------------------------------
# Trip creation
# ------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("start", "end", "expected"),
    [
        ("2024-04-01", "2024-04-01", 1),
        ("2024-04-01", "2024-04-03", 3),
        ("2024-02-27", "2024-03-02", 5),
        ("2024-04-03", "2024-04-01", 3),
    ],
)
async def test_add_trip_creates_one_day_per_date(store: TripStore, start: str, end: str, expected: int) -> None:
    result = await store.add_trip("Trip", start, end)

    assert result.ok
    trip = result.trip
    assert trip is not None
    assert [day.day_number for day in trip.days] == list(range(1, expected + 1))
    first = date.fromisoformat(start)
    for day in trip.days:
        assert (day.date - first).days == day.day_number - 1
        assert day.id == f"{trip.id}_day_{day.day_number}"
        assert day.trip_id == trip.id
        assert day.items == ()


@pytest.mark.asyncio
async def test_add_trip_reloads_cache_from_storage(store: TripStore, storage: FlakyStorage) -> None:
    trip = await _tokyo(store)

    assert [t.id for t in store.trips] == [trip.id]
    assert storage.records[0]["id"] == trip.id
    assert trip.created_at == FIXED_NOW
    assert trip.end_date == date(2024, 4, 3)
    assert store.error is None
    assert not store.is_loading


@pytest.mark.asyncio
async def test_add_trip_with_bad_date_sets_error(store: TripStore) -> None:
    result = await store.add_trip("Nowhere", "2024-13-01", "2024-04-03")

    assert result.reason == FailureReason.INVALID_INPUT
    assert store.trips == ()
    assert store.error is not None
    assert store.error.startswith("Failed to create trip")


@pytest.mark.asyncio
async def test_add_trip_storage_failure_leaves_cache(store: TripStore, storage: FlakyStorage) -> None:
    storage.fail_writes = True

    result = await store.add_trip("Tokyo", "2024-04-01", "2024-04-03")

    assert result.reason == FailureReason.STORAGE
    assert store.trips == ()
    assert store.error == "Failed to create trip: quota exceeded"


# ------------------------------------------------------------------
# Scenarios
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_tokyo_scenario(store: TripStore, files: RecordingFileStore) -> None:
    trip = await _tokyo(store)
    assert [day.date.isoformat() for day in trip.days] == ["2024-04-01", "2024-04-02", "2024-04-03"]

    day2 = trip.days[1]
    added = await store.add_content_item(trip.id, day2.id, _photo())
    assert added.ok
    trip = store.trips[0]
    assert [len(day.items) for day in trip.days] == [0, 1, 0]
    item = trip.days[1].items[0]
    assert item.day_id == day2.id
    assert item.created_at == FIXED_NOW

    deleted = await store.delete_day(trip.id, day2.id)
    assert deleted.ok
    trip = store.trips[0]
    assert [day.day_number for day in trip.days] == [1, 3]
    assert trip.end_date == date(2024, 4, 3)
    assert files.deleted == ["/assets/shibuya.jpg"]


@pytest.mark.asyncio
async def test_add_day_extends_end_date(store: TripStore) -> None:
    trip = await _tokyo(store)

    result = await store.add_day(trip.id)

    assert result.ok
    trip = store.trips[0]
    new_day = trip.days[-1]
    assert new_day.day_number == 4
    assert new_day.date == date(2024, 4, 4)
    assert new_day.id == f"{trip.id}_day_4"
    assert trip.end_date == date(2024, 4, 4)


@pytest.mark.asyncio
async def test_add_day_after_gap_follows_last_day(store: TripStore) -> None:
    trip = await _tokyo(store)
    await store.delete_day(trip.id, trip.days[2].id)

    await store.add_day(trip.id)

    trip = store.trips[0]
    assert [day.day_number for day in trip.days] == [1, 2, 3]
    assert trip.days[-1].date == date(2024, 4, 3)


# ------------------------------------------------------------------
# Days
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_day_keeps_numbers_and_moves_end_date(store: TripStore) -> None:
    trip = await _tokyo(store)

    await store.delete_day(trip.id, trip.days[2].id)

    trip = store.trips[0]
    assert [day.day_number for day in trip.days] == [1, 2]
    assert trip.end_date == date(2024, 4, 2)


@pytest.mark.asyncio
async def test_delete_day_releases_every_file_even_when_one_fails(storage: FlakyStorage) -> None:
    files = RecordingFileStore(failing={"/assets/b.jpg"})
    store = TripStore(storage, files, clock=lambda: FIXED_NOW)
    trip = await _tokyo(store)
    day = trip.days[0]
    for uri in ("/assets/a.jpg", "/assets/b.jpg", "/assets/c.jpg"):
        await store.add_content_item(trip.id, day.id, _photo(uri))

    result = await store.delete_day(trip.id, day.id)

    assert result.ok
    assert files.deleted == ["/assets/a.jpg", "/assets/b.jpg", "/assets/c.jpg"]
    assert [d.day_number for d in store.trips[0].days] == [2, 3]


@pytest.mark.asyncio
async def test_delete_last_remaining_day_is_refused(store: TripStore, files: RecordingFileStore) -> None:
    result = await store.add_trip("Day trip", "2024-04-01", "2024-04-01")
    trip = result.trip
    assert trip is not None
    await store.add_content_item(trip.id, trip.days[0].id, _photo())

    deleted = await store.delete_day(trip.id, trip.days[0].id)

    assert deleted.reason == FailureReason.PRECONDITION
    assert len(store.trips[0].days) == 1
    assert files.deleted == []
    assert store.error is None


@pytest.mark.asyncio
async def test_delete_unknown_day_is_silent(store: TripStore) -> None:
    trip = await _tokyo(store)
    before = store.trips

    result = await store.delete_day(trip.id, "missing")

    assert result.reason == FailureReason.NOT_FOUND
    assert store.trips is before
    assert store.error is None


@pytest.mark.asyncio
async def test_delete_day_storage_failure_is_logged_not_surfaced(
    store: TripStore, storage: FlakyStorage, files: RecordingFileStore
) -> None:
    trip = await _tokyo(store)
    before = store.trips
    storage.fail_writes = True

    result = await store.delete_day(trip.id, trip.days[1].id)

    assert result.reason == FailureReason.STORAGE
    assert store.trips is before
    assert store.error is None
    assert [d.day_number for d in (await storage.get_trips())[0].days] == [1, 2, 3]


@pytest.mark.asyncio
async def test_add_day_on_trip_without_days_is_refused() -> None:
    bare = Trip(
        id="bare",
        title="Legacy",
        start_date=date(2024, 4, 1),
        end_date=date(2024, 4, 1),
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )
    storage = FlakyStorage([bare.to_record()])
    store = TripStore(storage, RecordingFileStore(), clock=lambda: FIXED_NOW)
    assert (await store.load_trips()).ok
    before = store.trips

    result = await store.add_day("bare")

    assert result.reason == FailureReason.PRECONDITION
    assert store.trips is before
    assert store.trips[0].days == ()
    assert store.error is None
    assert storage.update_calls == 0


@pytest.mark.asyncio
async def test_update_day_title_sets_label(store: TripStore) -> None:
    trip = await _tokyo(store)
    day = trip.days[0]
    assert day.label == "1일차"

    result = await store.update_day_title(trip.id, day.id, "Arrival")

    assert result.ok
    assert store.trips[0].days[0].title == "Arrival"
    assert store.trips[0].days[0].label == "Arrival"


@pytest.mark.asyncio
async def test_update_day_title_missing_trip_is_silent(store: TripStore) -> None:
    result = await store.update_day_title("missing", "missing_day_1", "x")

    assert result.reason == FailureReason.NOT_FOUND
    assert store.error is None


# ------------------------------------------------------------------
# Content items
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_content_item_to_missing_day_leaves_trips_unchanged(store: TripStore) -> None:
    trip = await _tokyo(store)
    before = store.trips

    result = await store.add_content_item(trip.id, "no-such-day", _photo())

    assert result.reason == FailureReason.NOT_FOUND
    assert store.trips is before
    assert store.trips == before
    assert store.error is not None


@pytest.mark.asyncio
async def test_add_content_item_to_missing_trip_sets_error(store: TripStore) -> None:
    result = await store.add_content_item("no-such-trip", "day", _photo())

    assert result.reason == FailureReason.NOT_FOUND
    assert store.error == "Failed to add content item: Trip not found: no-such-trip"


@pytest.mark.asyncio
async def test_add_content_item_accepts_mapping(store: TripStore) -> None:
    trip = await _tokyo(store)

    result = await store.add_content_item(
        trip.id,
        trip.days[0].id,
        {"title": "Louvre voucher", "type": "file", "uri": "/assets/v.pdf", "memo": "gate B"},
    )

    assert result.ok
    item = store.trips[0].days[0].items[0]
    assert item.type == ContentType.FILE
    assert item.memo == "gate B"


@pytest.mark.asyncio
async def test_add_content_item_storage_failure(store: TripStore, storage: FlakyStorage) -> None:
    trip = await _tokyo(store)
    before = store.trips
    storage.fail_writes = True

    result = await store.add_content_item(trip.id, trip.days[0].id, _photo())

    assert result.reason == FailureReason.STORAGE
    assert store.trips is before
    assert store.error == "Failed to add content item: quota exceeded"


@pytest.mark.asyncio
async def test_add_asset_saves_file_and_uses_default_title(store: TripStore, files: RecordingFileStore) -> None:
    trip = await _tokyo(store)

    result = await store.add_asset(trip.id, trip.days[1].id, "/camera/IMG_1.jpg", ContentType.PHOTO, memo="  ")

    assert result.ok
    assert files.saved[0][0] == "/camera/IMG_1.jpg"
    assert files.saved[0][1].endswith(".jpg")
    item = store.trips[0].days[1].items[0]
    assert item.title == "2일차 사진 1"
    assert item.memo is None
    assert item.uri == f"/assets/{files.saved[0][1]}"


@pytest.mark.asyncio
async def test_add_asset_releases_file_when_item_cannot_be_recorded(
    store: TripStore, storage: FlakyStorage, files: RecordingFileStore
) -> None:
    trip = await _tokyo(store)
    storage.fail_writes = True

    result = await store.add_asset(trip.id, trip.days[0].id, "/docs/ticket.pdf", ContentType.FILE, title="Ticket")

    assert not result.ok
    assert files.deleted == [f"/assets/{files.saved[0][1]}"]


@pytest.mark.asyncio
async def test_add_asset_unknown_day_does_not_copy(store: TripStore, files: RecordingFileStore) -> None:
    trip = await _tokyo(store)

    result = await store.add_asset(trip.id, "missing", "/camera/IMG_1.jpg", ContentType.PHOTO)

    assert result.reason == FailureReason.NOT_FOUND
    assert files.saved == []
    assert store.error is not None


# ------------------------------------------------------------------
# Checklist
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_toggle_checklist_item_twice_restores_value(store: TripStore) -> None:
    trip = await _tokyo(store)
    added = await store.add_checklist_item(trip.id, "Passport")
    assert added.trip is not None
    item = added.trip.checklist[0]
    assert item.is_checked is False

    await store.toggle_checklist_item(trip.id, item.id)
    assert store.trips[0].checklist[0].is_checked is True
    await store.toggle_checklist_item(trip.id, item.id)
    assert store.trips[0].checklist[0].is_checked is False


@pytest.mark.asyncio
async def test_remove_checklist_item(store: TripStore) -> None:
    trip = await _tokyo(store)
    await store.add_checklist_item(trip.id, "Passport")
    await store.add_checklist_item(trip.id, "Adapter")
    passport = store.trips[0].checklist[0]

    result = await store.remove_checklist_item(trip.id, passport.id)

    assert result.ok
    assert [i.text for i in store.trips[0].checklist] == ["Adapter"]


@pytest.mark.asyncio
async def test_checklist_operations_are_silent_on_missing_targets(store: TripStore) -> None:
    trip = await _tokyo(store)
    before = store.trips

    results = [
        await store.add_checklist_item("missing", "Passport"),
        await store.toggle_checklist_item(trip.id, "missing"),
        await store.remove_checklist_item(trip.id, "missing"),
    ]

    assert all(r.reason == FailureReason.NOT_FOUND for r in results)
    assert store.trips is before
    assert store.error is None
    assert "missing" not in store._locks  # noqa: SLF001


@pytest.mark.asyncio
async def test_toggle_storage_failure_is_logged_not_surfaced(store: TripStore, storage: FlakyStorage) -> None:
    trip = await _tokyo(store)
    await store.add_checklist_item(trip.id, "Passport")
    item = store.trips[0].checklist[0]
    before = store.trips
    storage.fail_writes = True

    result = await store.toggle_checklist_item(trip.id, item.id)

    assert result.reason == FailureReason.STORAGE
    assert store.trips is before
    assert store.error is None


@pytest.mark.asyncio
async def test_add_checklist_storage_failure_sets_error(store: TripStore, storage: FlakyStorage) -> None:
    trip = await _tokyo(store)
    storage.fail_writes = True

    result = await store.add_checklist_item(trip.id, "Passport")

    assert result.reason == FailureReason.STORAGE
    assert store.error == "Failed to add checklist item: quota exceeded"


# ------------------------------------------------------------------
# Cache, current trip, subscribers
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_current_trip_follows_mutations(store: TripStore) -> None:
    trip = await _tokyo(store)
    assert store.set_current_trip(trip.id) == trip

    await store.add_checklist_item(trip.id, "Passport")

    assert store.current_trip is store.trips[0]
    assert len(store.current_trip.checklist) == 1
    assert store.set_current_trip("missing") is None
    assert store.current_trip is None


@pytest.mark.asyncio
async def test_mutation_replaces_trips_tuple(store: TripStore) -> None:
    trip = await _tokyo(store)
    before = store.trips

    await store.add_checklist_item(trip.id, "Passport")

    assert store.trips is not before
    assert before[0].checklist == ()
    assert before[0].updated_at == FIXED_NOW


@pytest.mark.asyncio
async def test_subscribers_receive_snapshots(store: TripStore) -> None:
    seen: list[TripStoreState] = []
    unsubscribe = store.subscribe(seen.append)

    trip = await _tokyo(store)

    assert seen[0].is_loading is True
    assert seen[-1].is_loading is False
    assert seen[-1].trips[0].id == trip.id

    unsubscribe()
    count = len(seen)
    await store.add_checklist_item(trip.id, "Passport")
    assert len(seen) == count


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_store(store: TripStore) -> None:
    def _boom(state: TripStoreState) -> None:
        raise RuntimeError("render failed")

    store.subscribe(_boom)

    trip = await _tokyo(store)

    assert store.trips[0].id == trip.id


@pytest.mark.asyncio
async def test_concurrent_mutations_on_one_trip_are_not_lost(store: TripStore, storage: FlakyStorage) -> None:
    trip = await _tokyo(store)
    storage.write_delay_steps = 3

    results = await asyncio.gather(
        store.add_checklist_item(trip.id, "Passport"),
        store.add_checklist_item(trip.id, "Adapter"),
        store.update_day_title(trip.id, trip.days[0].id, "Arrival"),
    )

    assert all(r.ok for r in results)
    stored = (await storage.get_trips())[0]
    assert sorted(i.text for i in stored.checklist) == ["Adapter", "Passport"]
    assert stored.days[0].title == "Arrival"
    assert store.trips[0] == stored


@pytest.mark.asyncio
async def test_reload_during_mutation_keeps_the_mutation(store: TripStore, storage: FlakyStorage) -> None:
    trip = await _tokyo(store)
    storage.write_delay_steps = 1
    storage.read_delay_steps = 5

    loaded, added = await asyncio.gather(
        store.load_trips(),
        store.add_checklist_item(trip.id, "Passport"),
    )
    assert loaded.ok
    assert added.ok
    assert [i.text for i in store.trips[0].checklist] == ["Passport"]

    storage.read_delay_steps = 0
    await store.add_checklist_item(trip.id, "Adapter")

    stored = (await storage.get_trips())[0]
    assert sorted(i.text for i in stored.checklist) == ["Adapter", "Passport"]
    assert store.trips[0] == stored


@pytest.mark.asyncio
async def test_reload_drops_locks_of_vanished_trips(store: TripStore, storage: FlakyStorage) -> None:
    trip = await _tokyo(store)
    await store.add_checklist_item(trip.id, "Passport")
    assert trip.id in store._locks  # noqa: SLF001

    storage._records.clear()  # noqa: SLF001
    await store.load_trips()

    assert store.trips == ()
    assert store._locks == {}  # noqa: SLF001


@pytest.mark.asyncio
async def test_trips_survive_restart(tmp_path) -> None:
    files = RecordingFileStore()
    first = TripStore(JsonFileTripStorage(tmp_path), files)
    trip = await _tokyo(first)
    await first.add_content_item(trip.id, trip.days[1].id, _photo())
    await first.add_checklist_item(trip.id, "Passport")

    second = TripStore(JsonFileTripStorage(tmp_path), files)
    assert second.trips == ()
    result = await second.load_trips()

    assert result.ok
    assert second.trips == first.trips


@pytest.mark.asyncio
async def test_load_trips_failure_keeps_cache(store: TripStore, storage: FlakyStorage, monkeypatch) -> None:
    await _tokyo(store)
    before = store.trips

    async def _broken() -> list[Trip]:
        raise StorageError("device I/O error")

    monkeypatch.setattr(storage, "get_trips", _broken)
    result = await store.load_trips()

    assert result.reason == FailureReason.STORAGE
    assert store.trips is before
    assert store.error == "Failed to load trips: device I/O error"
