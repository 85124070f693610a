"""Platform layer for on-device vocabulary learning data."""

__version__ = "1.0.0"

from .errors import (
    CorruptDataError,
    DanglingReferenceError,
    DataLayerError,
    NotFoundError,
    StorageUnavailableError,
)
from .events import ALL_EVENTS, CONCEPTS_UPDATED, DATA_CLEARED, ONBOARDING_UPDATED, EventBus
from .facade import DataAccess, open_data_access
from .persistence import FlatBackend, StorageBackend, build_backend
from .runtime.config import StoreConfig, load_config

__all__ = [
    "__version__",
    "DataLayerError",
    "NotFoundError",
    "DanglingReferenceError",
    "StorageUnavailableError",
    "CorruptDataError",
    "EventBus",
    "ALL_EVENTS",
    "ONBOARDING_UPDATED",
    "DATA_CLEARED",
    "CONCEPTS_UPDATED",
    "DataAccess",
    "open_data_access",
    "StorageBackend",
    "FlatBackend",
    "build_backend",
    "StoreConfig",
    "load_config",
]
