"""Local file store for photo and file assets.

Content items only record a locator; the bytes live in an app-managed
directory. Assets are copied in before an item is created and removed
when the owning day is deleted.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
import shutil
import time
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlparse
from urllib.request import url2pathname

import aiohttp

from pytrip.exceptions import FileStoreError
from pytrip.models.trip import ContentType, Day

_logger = logging.getLogger(__name__)

_HTTP_SCHEMES = frozenset({"http", "https"})


@runtime_checkable
class FileStore(Protocol):
    async def save(self, source: str, file_name: str) -> str: ...

    async def delete(self, locator: str) -> None: ...


def get_file_extension(source: str) -> str:
    """Return the text after the last ``.`` in *source* (``""`` if none)."""
    _, dot, ext = source.rpartition(".")
    return ext if dot else ""


def generate_file_name(source: str) -> str:
    """Collision-resistant asset name ``asset_<unixMillis>_<0-999>.<ext>``.

    The extension is dropped when the source has none or when the text
    after the last dot is not a plain extension (e.g. a query string).
    Unlike :func:`get_file_extension`, which returns the literal suffix,
    this keeps the name a single safe path segment such as
    ``asset_1_2`` rather than ``asset_1_2.com/a?b``.
    """
    ext = get_file_extension(source)
    if not ext.isalnum():
        ext = ""
    timestamp = int(time.time() * 1000)
    suffix = random.randint(0, 999)  # noqa: S311
    name = f"asset_{timestamp}_{suffix}"
    return f"{name}.{ext}" if ext else name


def default_content_title(day: Day, content_type: ContentType) -> str:
    """Title suggested for the next item added to *day*."""
    kind = "사진" if content_type == ContentType.PHOTO else "파일"
    return f"{day.label} {kind} {len(day.items) + 1}"


def _local_path(source: str) -> Path:
    parsed = urlparse(source)
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    return Path(source)


class LocalFileStore:
    """Copy assets into a managed directory and remove them again.

    Parameters
    ----------
    assets_dir : Path or str
        Managed directory. Created on the first save.
    session : aiohttp.ClientSession or None
        Session used for ``http(s)`` sources. When omitted a short-lived
        session is opened per download.
    timeout : float
        Total download timeout in seconds.
    """

    def __init__(
        self,
        assets_dir: Path | str,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._assets_dir = Path(assets_dir)
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def assets_dir(self) -> Path:
        return self._assets_dir

    async def ensure_dir_exists(self) -> None:
        if self._assets_dir.is_dir():
            return
        _logger.debug("Asset directory %s does not exist, creating", self._assets_dir)
        try:
            await self._run(self._assets_dir.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise FileStoreError(f"Cannot create {self._assets_dir}: {exc}") from exc

    async def save(self, source: str, file_name: str) -> str:
        """Copy *source* into the managed directory as *file_name*.

        Returns the locator of the stored copy.
        """
        if not file_name or Path(file_name).name != file_name:
            raise FileStoreError(f"Invalid asset file name: {file_name!r}", locator=source)

        await self.ensure_dir_exists()
        dest = self._assets_dir / file_name

        if urlparse(source).scheme in _HTTP_SCHEMES:
            await self._download(source, dest)
        else:
            try:
                await self._run(shutil.copyfile, _local_path(source), dest)
            except OSError as exc:
                raise FileStoreError(f"Cannot copy {source}: {exc}", locator=source) from exc

        _logger.debug("Saved asset %s -> %s", source, dest)
        return str(dest)

    async def delete(self, locator: str) -> None:
        """Remove a managed asset.

        A missing file is not an error. Locators outside the managed
        directory (assets that were never copied in) are left alone.
        """
        path = _local_path(locator)
        try:
            inside = path.resolve().is_relative_to(self._assets_dir.resolve())
        except OSError as exc:
            raise FileStoreError(f"Cannot resolve {locator}: {exc}", locator=locator) from exc
        if not inside:
            _logger.debug("Not deleting unmanaged asset %s", locator)
            return

        try:
            await self._run(path.unlink, missing_ok=True)
        except OSError as exc:
            raise FileStoreError(f"Cannot delete {locator}: {exc}", locator=locator) from exc
        _logger.debug("Deleted asset %s", locator)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _download(self, url: str, dest: Path) -> None:
        try:
            if self._session is not None:
                body = await self._fetch(self._session, url)
            else:
                async with aiohttp.ClientSession() as session:
                    body = await self._fetch(session, url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FileStoreError(f"Cannot download {url}: {exc}", locator=url) from exc

        try:
            await self._run(dest.write_bytes, body)
        except OSError as exc:
            raise FileStoreError(f"Cannot write {dest}: {exc}", locator=url) from exc

    async def _fetch(self, session: aiohttp.ClientSession, url: str) -> bytes:
        async with session.get(url, timeout=self._timeout) as response:
            response.raise_for_status()
            return await response.read()

    async def _run(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
