"""In-memory trip store.

This is the only component allowed to mutate trips. Every mutation
reads a frozen snapshot from the cache, derives a new snapshot, writes
the whole trip to the persistent store and only then publishes it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

import aiohttp
from pydantic import BaseModel, ConfigDict, ValidationError

from pytrip.assets import FileStore, LocalFileStore, default_content_title, generate_file_name
from pytrip.config import TripStoreConfig
from pytrip.exceptions import (
    ChecklistItemNotFoundError,
    DayNotFoundError,
    FileStoreError,
    NotFoundError,
    PreconditionError,
    StorageError,
    TripNotFoundError,
)
from pytrip.models.result import FailureReason, MutationResult
from pytrip.models.trip import ChecklistItem, ContentItem, ContentItemInput, ContentType, Day, Trip
from pytrip.persistence.base import TripStorage
from pytrip.persistence.json_file import JsonFileTripStorage
from pytrip.state.planning import build_days, day_count, next_day, parse_date, without_day

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return secrets.token_hex(8)


class TripStoreState(BaseModel):
    """Immutable view of the store handed to subscribers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    trips: tuple[Trip, ...] = ()
    current_trip: Trip | None = None
    is_loading: bool = False
    error: str | None = None


Listener = Callable[[TripStoreState], None]


def _replace_day(trip: Trip, day: Day) -> Trip:
    return trip.model_copy(update={"days": tuple(day if d.id == day.id else d for d in trip.days)})


def _require_day(trip: Trip, day_id: str) -> Day:
    day = trip.find_day(day_id)
    if day is None:
        raise DayNotFoundError(day_id)
    return day


def _require_checklist_item(trip: Trip, item_id: str) -> ChecklistItem:
    item = trip.find_checklist_item(item_id)
    if item is None:
        raise ChecklistItemNotFoundError(item_id)
    return item


class TripStore:
    """Authoritative cache of trips plus every graph mutation.

    Parameters
    ----------
    storage : TripStorage
        Persistent store. Written before any change is published.
    files : FileStore
        Asset store. Released when a day and its items are deleted.
    clock : callable
        Returns the current aware datetime; used for ``created_at`` and
        ``updated_at``.
    id_factory : callable
        Returns fresh trip, item and checklist ids.

    Mutations return a :class:`MutationResult`. Loading, trip creation and
    content additions also record a user-visible ``error``; the checklist
    and day operations only log when their target is missing.

    Mutations on the same trip are serialized with a per-trip lock, so two
    interleaved calls never both start from the same snapshot.
    """

    def __init__(
        self,
        storage: TripStorage,
        files: FileStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._storage = storage
        self._files = files
        self._clock = clock
        self._id_factory = id_factory
        self._trips: tuple[Trip, ...] = ()
        self._current_trip: Trip | None = None
        self._pending = 0
        self._error: str | None = None
        self._locks: dict[str, asyncio.Lock] = {}
        # Bumped on every publish; _published maps trip id -> generation.
        self._generation = 0
        self._published: dict[str, int] = {}
        self._listeners: list[Listener] = []

    @classmethod
    def from_config(
        cls,
        config: TripStoreConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> TripStore:
        """Build a store backed by the JSON document and local asset directory."""
        if config.create_dirs:
            config.data_dir.mkdir(parents=True, exist_ok=True)
            config.resolved_assets_dir.mkdir(parents=True, exist_ok=True)
        storage = JsonFileTripStorage(config.data_dir, key=config.storage_key)
        files = LocalFileStore(
            config.resolved_assets_dir,
            session=session,
            timeout=config.download_timeout,
        )
        return cls(storage, files)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def trips(self) -> tuple[Trip, ...]:
        return self._trips

    @property
    def current_trip(self) -> Trip | None:
        return self._current_trip

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def files(self) -> FileStore:
        return self._files

    def snapshot(self) -> TripStoreState:
        return TripStoreState(
            trips=self._trips,
            current_trip=self._current_trip,
            is_loading=self.is_loading,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with a fresh snapshot after every state change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def get_trip(self, trip_id: str) -> Trip | None:
        return next((trip for trip in self._trips if trip.id == trip_id), None)

    def set_current_trip(self, trip_id: str) -> Trip | None:
        """Select the trip with *trip_id* (``None`` if absent). No I/O."""
        self._current_trip = self.get_trip(trip_id)
        self._notify()
        return self._current_trip

    # ------------------------------------------------------------------
    # Loading and trip creation
    # ------------------------------------------------------------------

    async def load_trips(self) -> MutationResult:
        """Replace the cache with the persisted trips.

        Trips published by a mutation while the read was in flight keep
        their cached copy, since the read may predate that write.
        """
        async with self._loading():
            since = self._generation
            try:
                trips = await self._storage.get_trips()
            except StorageError as exc:
                return self._fail_loud(FailureReason.STORAGE, "Failed to load trips", exc)
            self._replace_cache(trips, since=since)
            _logger.debug("Loaded %d trip(s)", len(trips))
            return MutationResult.success()

    async def add_trip(self, title: str, start_date: date | str, end_date: date | str) -> MutationResult:
        """Create a trip with one day per calendar date in the range.

        The cache is reloaded from storage afterwards rather than appended
        to, so it reflects the durable state.
        """
        async with self._loading():
            try:
                start = parse_date(start_date)
                end = parse_date(end_date)
                trip_id = self._id_factory()
                now = self._clock()
                trip = Trip(
                    id=trip_id,
                    title=title,
                    start_date=start,
                    end_date=end,
                    created_at=now,
                    updated_at=now,
                    days=build_days(trip_id, start, day_count(start, end)),
                )
            except (TypeError, ValueError) as exc:
                return self._fail_loud(FailureReason.INVALID_INPUT, "Failed to create trip", exc)

            since = self._generation
            try:
                await self._storage.add_trip(trip)
                trips = await self._storage.get_trips()
            except StorageError as exc:
                return self._fail_loud(FailureReason.STORAGE, "Failed to create trip", exc)

            self._replace_cache(trips, since=since)
            return MutationResult.success(self.get_trip(trip_id) or trip)

    # ------------------------------------------------------------------
    # Content items
    # ------------------------------------------------------------------

    async def add_content_item(
        self,
        trip_id: str,
        day_id: str,
        item: ContentItemInput | Mapping[str, Any],
    ) -> MutationResult:
        """Append a content item to a day.

        The asset must already be in the file store; ``item.uri`` is its
        locator. Only metadata is recorded here.
        """
        async with self._loading():
            try:
                data = item if isinstance(item, ContentItemInput) else ContentItemInput.model_validate(item)
            except ValidationError as exc:
                return self._fail_loud(FailureReason.INVALID_INPUT, "Failed to add content item", exc)

            def _append(trip: Trip) -> Trip:
                day = _require_day(trip, day_id)
                new_item = ContentItem(
                    id=self._id_factory(),
                    day_id=day_id,
                    title=data.title,
                    memo=data.memo,
                    type=data.type,
                    uri=data.uri,
                    cloud_url=data.cloud_url,
                    created_at=self._clock(),
                )
                return _replace_day(trip, day.model_copy(update={"items": day.items + (new_item,)}))

            try:
                updated = await self._mutate(trip_id, _append)
            except NotFoundError as exc:
                return self._fail_loud(FailureReason.NOT_FOUND, "Failed to add content item", exc)
            except StorageError as exc:
                return self._fail_loud(FailureReason.STORAGE, "Failed to add content item", exc)
            return MutationResult.success(updated)

    async def add_asset(
        self,
        trip_id: str,
        day_id: str,
        source: str,
        content_type: ContentType,
        *,
        title: str | None = None,
        memo: str | None = None,
    ) -> MutationResult:
        """Copy *source* into the file store and record it on a day.

        The title defaults to ``"<day label> 사진 <n>"`` (or ``파일``). A
        blank memo is dropped. If the item cannot be recorded the copied
        file is released again.
        """
        try:
            day = _require_day(self._require_trip(trip_id), day_id)
        except NotFoundError as exc:
            result = self._fail_loud(FailureReason.NOT_FOUND, "Failed to add content item", exc)
            self._notify()
            return result

        try:
            locator = await self._files.save(source, generate_file_name(source))
        except FileStoreError as exc:
            result = self._fail_loud(FailureReason.STORAGE, "Failed to save asset", exc)
            self._notify()
            return result

        memo = memo.strip() if memo else None
        result = await self.add_content_item(
            trip_id,
            day_id,
            ContentItemInput(
                title=title if title is not None else default_content_title(day, content_type),
                type=content_type,
                uri=locator,
                memo=memo or None,
            ),
        )
        if not result.ok:
            await self._release(locator, owner=day_id)
        return result

    # ------------------------------------------------------------------
    # Checklist
    # ------------------------------------------------------------------

    async def add_checklist_item(self, trip_id: str, text: str) -> MutationResult:
        def _add(trip: Trip) -> Trip:
            item = ChecklistItem(
                id=self._id_factory(),
                trip_id=trip_id,
                text=text,
                is_checked=False,
                created_at=self._clock(),
            )
            return trip.model_copy(update={"checklist": trip.checklist + (item,)})

        try:
            updated = await self._mutate(trip_id, _add)
        except NotFoundError as exc:
            return self._fail_silent(FailureReason.NOT_FOUND, exc)
        except StorageError as exc:
            result = self._fail_loud(FailureReason.STORAGE, "Failed to add checklist item", exc)
            self._notify()
            return result
        return MutationResult.success(updated)

    async def toggle_checklist_item(self, trip_id: str, item_id: str) -> MutationResult:
        def _toggle(trip: Trip) -> Trip:
            item = _require_checklist_item(trip, item_id)
            flipped = item.model_copy(update={"is_checked": not item.is_checked})
            return trip.model_copy(
                update={"checklist": tuple(flipped if i.id == item_id else i for i in trip.checklist)}
            )

        return await self._mutate_quietly(trip_id, _toggle, action="toggle checklist item")

    async def remove_checklist_item(self, trip_id: str, item_id: str) -> MutationResult:
        def _remove(trip: Trip) -> Trip:
            _require_checklist_item(trip, item_id)
            return trip.model_copy(update={"checklist": tuple(i for i in trip.checklist if i.id != item_id)})

        return await self._mutate_quietly(trip_id, _remove, action="remove checklist item")

    # ------------------------------------------------------------------
    # Days
    # ------------------------------------------------------------------

    async def update_day_title(self, trip_id: str, day_id: str, title: str) -> MutationResult:
        """Set a day's own title. Empty strings are stored as given."""

        def _retitle(trip: Trip) -> Trip:
            day = _require_day(trip, day_id)
            return _replace_day(trip, day.model_copy(update={"title": title}))

        return await self._mutate_quietly(trip_id, _retitle, action="update day title")

    async def add_day(self, trip_id: str) -> MutationResult:
        """Append the day after the last one and extend ``end_date`` to it."""

        def _extend(trip: Trip) -> Trip:
            day = next_day(trip)
            return trip.model_copy(update={"days": trip.days + (day,), "end_date": day.date})

        return await self._mutate_quietly(trip_id, _extend, action="add day")

    async def delete_day(self, trip_id: str, day_id: str) -> MutationResult:
        """Delete a day, releasing the file of every item on it first.

        Remaining days keep their numbers. ``end_date`` moves to the date
        of the last remaining day. The last day of a trip cannot be
        deleted.
        """
        try:
            async with self._trip_lock(trip_id):
                trip = self._require_trip(trip_id)
                days = without_day(trip, day_id)
                doomed = _require_day(trip, day_id)
                for item in doomed.items:
                    await self._release(item.uri, owner=item.id)
                updated = trip.model_copy(
                    update={"days": days, "end_date": days[-1].date, "updated_at": self._clock()}
                )
                await self._storage.update_trip(updated)
                self._publish(updated)
        except (NotFoundError, PreconditionError) as exc:
            return self._fail_silent(_reason_for(exc), exc)
        except StorageError as exc:
            _logger.warning("Failed to delete day %s of trip %s", day_id, trip_id, exc_info=True)
            return MutationResult.failure(FailureReason.STORAGE, str(exc))
        return MutationResult.success(updated)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _trip_lock(self, trip_id: str) -> asyncio.Lock:
        """Lock for a cached trip. Raises before creating one for unknown ids."""
        self._require_trip(trip_id)
        lock = self._locks.get(trip_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[trip_id] = lock
        return lock

    def _require_trip(self, trip_id: str) -> Trip:
        trip = self.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(trip_id)
        return trip

    async def _mutate(self, trip_id: str, change: Callable[[Trip], Trip]) -> Trip:
        """Read-modify-write one trip under its lock and publish the result."""
        async with self._trip_lock(trip_id):
            trip = self._require_trip(trip_id)
            updated = change(trip).model_copy(update={"updated_at": self._clock()})
            await self._storage.update_trip(updated)
            self._publish(updated)
            return updated

    async def _mutate_quietly(self, trip_id: str, change: Callable[[Trip], Trip], *, action: str) -> MutationResult:
        try:
            updated = await self._mutate(trip_id, change)
        except (NotFoundError, PreconditionError) as exc:
            return self._fail_silent(_reason_for(exc), exc)
        except StorageError as exc:
            _logger.warning("Failed to %s on trip %s", action, trip_id, exc_info=True)
            return MutationResult.failure(FailureReason.STORAGE, str(exc))
        return MutationResult.success(updated)

    async def _release(self, locator: str, *, owner: str) -> None:
        try:
            await self._files.delete(locator)
        except Exception:
            _logger.warning("Failed to delete asset %s of %s", locator, owner, exc_info=True)

    def _publish(self, updated: Trip) -> None:
        # Look the slot up again: a reload may have replaced the tuple meanwhile.
        trips = list(self._trips)
        for index, trip in enumerate(trips):
            if trip.id == updated.id:
                trips[index] = updated
                break
        else:
            trips.append(updated)
        self._trips = tuple(trips)
        self._generation += 1
        self._published[updated.id] = self._generation
        if self._current_trip is not None and self._current_trip.id == updated.id:
            self._current_trip = updated
        self._notify()

    def _replace_cache(self, trips: Iterable[Trip], *, since: int) -> None:
        """Install trips read from storage after generation *since*."""
        newer = {trip.id: trip for trip in self._trips if self._published.get(trip.id, 0) > since}
        merged = [newer.pop(trip.id, trip) for trip in trips]
        merged.extend(newer.values())
        self._trips = tuple(merged)

        live = {trip.id for trip in merged}
        self._locks = {key: lock for key, lock in self._locks.items() if key in live or lock.locked()}
        self._published = {key: gen for key, gen in self._published.items() if key in live}
        if self._current_trip is not None:
            self._current_trip = self.get_trip(self._current_trip.id)

    def _fail_loud(self, reason: FailureReason, summary: str, exc: Exception) -> MutationResult:
        _logger.debug("%s: %s", summary, exc, exc_info=True)
        self._error = f"{summary}: {exc}"
        return MutationResult.failure(reason, str(exc))

    def _fail_silent(self, reason: FailureReason, exc: Exception) -> MutationResult:
        _logger.debug("Ignoring mutation: %s", exc)
        return MutationResult.failure(reason, str(exc))

    @contextlib.asynccontextmanager
    async def _loading(self) -> AsyncIterator[None]:
        self._pending += 1
        self._error = None
        self._notify()
        try:
            yield
        finally:
            self._pending -= 1
            self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                _logger.debug("Trip store listener failed", exc_info=True)


def _reason_for(exc: Exception) -> FailureReason:
    if isinstance(exc, PreconditionError):
        return FailureReason.PRECONDITION
    return FailureReason.NOT_FOUND
