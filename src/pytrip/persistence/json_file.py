"""JSON document backend for the persistent store."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import json
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from pytrip.exceptions import StorageError
from pytrip.models.trip import Trip
from pytrip.persistence.base import parse_trip_records

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class JsonFileTripStorage:
    """Store every trip record in a single JSON document.

    The document lives at ``<data_dir>/<key>.json`` and holds a list of
    camelCase trip records. A missing document reads as an empty
    collection. Writes go to a temporary file in the same directory which
    then replaces the document, so readers see either the old or the new
    collection, never a partial one.

    Blocking file I/O runs in the loop's default executor.
    """

    def __init__(self, data_dir: Path | str, *, key: str = "trips") -> None:
        self._key = key
        self._path = Path(data_dir) / f"{key}.json"
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def get_trips(self) -> list[Trip]:
        records = await self._run(self._read_records)
        trips = parse_trip_records(records, key=self._key)
        _logger.debug("Loaded %d trip record(s) from %s", len(trips), self._path)
        return trips

    async def add_trip(self, trip: Trip) -> None:
        async with self._write_lock:
            records = await self._run(self._read_records)
            if any(record.get("id") == trip.id for record in records):
                raise StorageError(f"Trip already exists: {trip.id}", key=self._key)
            records.append(trip.to_record())
            await self._run(self._write_records, records)

    async def update_trip(self, trip: Trip) -> None:
        async with self._write_lock:
            records = await self._run(self._read_records)
            for index, record in enumerate(records):
                if record.get("id") == trip.id:
                    records[index] = trip.to_record()
                    break
            else:
                raise StorageError(f"Trip not stored: {trip.id}", key=self._key)
            await self._run(self._write_records, records)

    # ------------------------------------------------------------------
    # Blocking helpers (executor only)
    # ------------------------------------------------------------------

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    def _read_records(self) -> list[dict[str, Any]]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageError(f"Cannot read {self._path}: {exc}", key=self._key) from exc

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupt trip document {self._path}: {exc}", key=self._key) from exc

        if not isinstance(data, list) or not all(isinstance(record, dict) for record in data):
            raise StorageError(f"Trip document {self._path} is not a list of records", key=self._key)
        return data

    def _write_records(self, records: list[dict[str, Any]]) -> None:
        try:
            payload = json.dumps(records, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Cannot serialize trips: {exc}", key=self._key) from exc

        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._key}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            raise StorageError(f"Cannot write {self._path}: {exc}", key=self._key) from exc
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
