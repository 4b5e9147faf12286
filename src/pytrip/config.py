"""Store configuration for pytrip."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from pytrip.exceptions import TripConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TripStoreConfig:
    """Store configuration.

    Parameters
    ----------
    data_dir : Path
        Directory holding the persisted trip document.
    assets_dir : Path or None
        Managed directory for copied photos and files. Defaults to
        ``<data_dir>/trip_assets``.
    storage_key : str
        Key of the trip document; the file is ``<data_dir>/<key>.json``.
    download_timeout : float
        Total timeout in seconds for fetching ``http(s)`` asset sources.
    create_dirs : bool
        Create the data and asset directories when the store is built
        instead of lazily on first write.
    """

    data_dir: Path = Path("trip_data")
    assets_dir: Path | None = None
    storage_key: str = "trips"
    download_timeout: float = 30.0
    create_dirs: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "data_dir", Path(self.data_dir))
        if self.assets_dir is not None:
            object.__setattr__(self, "assets_dir", Path(self.assets_dir))
        if not self.storage_key or "/" in self.storage_key or "\\" in self.storage_key:
            raise TripConfigError(f"Invalid storage key: {self.storage_key!r}")
        if self.download_timeout <= 0:
            raise TripConfigError("download_timeout must be positive")

    @property
    def resolved_assets_dir(self) -> Path:
        """Asset directory with the default applied."""
        if self.assets_dir is not None:
            return self.assets_dir
        return self.data_dir / "trip_assets"

    @classmethod
    def from_env(cls, **overrides: Any) -> TripStoreConfig:
        """Create configuration from environment variables.

        Reads ``PYTRIP_DATA_DIR``, ``PYTRIP_ASSETS_DIR``,
        ``PYTRIP_STORAGE_KEY``, ``PYTRIP_DOWNLOAD_TIMEOUT`` and
        ``PYTRIP_CREATE_DIRS``. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "PYTRIP_DATA_DIR": "data_dir",
            "PYTRIP_ASSETS_DIR": "assets_dir",
            "PYTRIP_STORAGE_KEY": "storage_key",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        timeout_env = env.get("PYTRIP_DOWNLOAD_TIMEOUT")
        if timeout_env is not None and "download_timeout" not in overrides:
            try:
                config_kwargs["download_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise TripConfigError(f"PYTRIP_DOWNLOAD_TIMEOUT is not a number: {timeout_env!r}") from exc

        if "create_dirs" not in overrides:
            config_kwargs["create_dirs"] = _env_bool(env.get("PYTRIP_CREATE_DIRS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
