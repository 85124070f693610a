"""
Configuration constants for the vocab-store data layer.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

# File names inside the data directory
DB_FILE = "vocab.db"
KV_FILE = "vocab-kv.json"

# Flat-store keys live under "@vocab/v<version>:<entity>"
STORAGE_NAMESPACE = "@vocab"
STORAGE_FORMAT_VERSION = 1

BACKEND_AUTO = "auto"
BACKEND_SQLITE = "sqlite"
BACKEND_FLAT = "flat"
SUPPORTED_BACKENDS = (BACKEND_AUTO, BACKEND_SQLITE, BACKEND_FLAT)

# Sentinel data directory meaning "keep everything in memory"
MEMORY_DATA_DIR = ":memory:"

DATA_DIR_ENV = "VOCAB_STORE_DATA_DIR"
BACKEND_ENV = "VOCAB_STORE_BACKEND"
LOG_LEVEL_ENV = "VOCAB_STORE_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "WARNING"


@dataclass
class StoreConfig:
    """Resolved storage configuration.

    ``data_dir`` of ``None`` keeps both backends in memory.
    """

    data_dir: Path | None = None
    backend: str = BACKEND_AUTO
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        if self.backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unknown storage backend: {self.backend!r}. "
                f"Supported: {', '.join(SUPPORTED_BACKENDS)}"
            )

    @property
    def in_memory(self) -> bool:
        return self.data_dir is None

    @property
    def db_path(self) -> Path | None:
        return None if self.data_dir is None else self.data_dir / DB_FILE

    @property
    def kv_path(self) -> Path | None:
        return None if self.data_dir is None else self.data_dir / KV_FILE


def default_data_dir() -> Path:
    """Return the platform-appropriate data directory."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))
        return base / "vocab-store"

    base = Path(os.environ.get("XDG_DATA_HOME", str(Path.home() / ".local" / "share")))
    return base / "vocab-store"


def _resolve_data_dir(raw: str) -> Path | None:
    if raw == MEMORY_DATA_DIR:
        return None
    if raw:
        return Path(raw).expanduser()
    return default_data_dir()


def _resolve_log_level(raw: str) -> str:
    level = raw.upper()
    if isinstance(logging.getLevelName(level), int):
        return level
    return DEFAULT_LOG_LEVEL


def load_config() -> StoreConfig:
    """Build a ``StoreConfig`` from the environment."""
    data_dir = _resolve_data_dir(os.environ.get(DATA_DIR_ENV, "").strip())
    backend = os.environ.get(BACKEND_ENV, "").strip().lower() or BACKEND_AUTO
    log_level = _resolve_log_level(os.environ.get(LOG_LEVEL_ENV, "").strip() or DEFAULT_LOG_LEVEL)
    return StoreConfig(data_dir=data_dir, backend=backend, log_level=log_level)


def storage_key(entity: str, version: int = STORAGE_FORMAT_VERSION) -> str:
    """Return the namespaced flat-store key for *entity*."""
    return f"{STORAGE_NAMESPACE}/v{version}:{entity}"
