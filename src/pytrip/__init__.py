"""pytrip - Async trip data store with local asset management."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytrip")
except PackageNotFoundError:
    __version__ = "0+local"
from pytrip.assets import FileStore, LocalFileStore, default_content_title, generate_file_name, get_file_extension
from pytrip.config import TripStoreConfig
from pytrip.exceptions import (
    ChecklistItemNotFoundError,
    DayNotFoundError,
    FileStoreError,
    NotFoundError,
    PreconditionError,
    StorageError,
    TripConfigError,
    TripNotFoundError,
    TripStoreError,
)
from pytrip.models import (
    ChecklistItem,
    ContentItem,
    ContentItemInput,
    ContentType,
    Day,
    FailureReason,
    MutationResult,
    Trip,
)
from pytrip.persistence import InMemoryTripStorage, JsonFileTripStorage, TripStorage
from pytrip.state import TripStore, TripStoreState

__all__ = [
    "__version__",
    "ChecklistItem",
    "ChecklistItemNotFoundError",
    "ContentItem",
    "ContentItemInput",
    "ContentType",
    "Day",
    "DayNotFoundError",
    "FailureReason",
    "FileStore",
    "FileStoreError",
    "InMemoryTripStorage",
    "JsonFileTripStorage",
    "LocalFileStore",
    "MutationResult",
    "NotFoundError",
    "PreconditionError",
    "StorageError",
    "Trip",
    "TripConfigError",
    "TripNotFoundError",
    "TripStorage",
    "TripStore",
    "TripStoreConfig",
    "TripStoreError",
    "TripStoreState",
    "default_content_title",
    "generate_file_name",
    "get_file_extension",
]
