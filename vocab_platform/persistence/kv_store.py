"""
String key-value primitives underneath the flat backend.

The flat backend only ever needs five string-valued operations, so any
platform store that can offer them (a dict, a JSON document on disk)
can host the whole data layer.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

from vocab_platform.errors import CorruptDataError, StorageUnavailableError

logger = logging.getLogger(__name__)

STORAGE_TYPE = "key_value"


class KeyValueStore(ABC):
    """Minimal string-to-string store."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the value under *key*, or None."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove *key*. No-op if absent."""

    @abstractmethod
    def multi_remove(self, keys: Iterable[str]) -> None:
        """Remove every key in *keys* as one all-or-nothing step."""

    @abstractmethod
    def all_keys(self) -> list[str]:
        """Return every stored key."""

    def close(self) -> None:
        """Release resources. Most stores hold none."""


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def multi_remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def all_keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store persisted as a single JSON object in *path*.

    The whole mapping is rewritten on each mutation through a temporary
    file and ``os.replace``, so a reader never observes a half-written
    document and ``multi_remove`` lands all at once.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: dict[str, str] | None = None

    @property
    def _tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data

        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._data = {}
            return self._data
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot read key-value file {self.path}: {e}",
                storage_type=STORAGE_TYPE,
                operation="load",
            ) from e

        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise CorruptDataError(
                f"Key-value file {self.path} is not valid JSON: {e}",
                key=str(self.path),
                operation="load",
            ) from e

        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            raise CorruptDataError(
                f"Key-value file {self.path} must hold an object of string values",
                key=str(self.path),
                operation="load",
            )

        self._data = data
        return self._data

    def _flush(self, data: dict[str, str], operation: str) -> None:
        tmp = self._tmp_path
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot write key-value file {self.path}: {e}",
                storage_type=STORAGE_TYPE,
                operation=operation,
            ) from e
        self._data = data

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = dict(self._load())
        data[key] = value
        self._flush(data, "set_item")

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        data = {k: v for k, v in data.items() if k != key}
        self._flush(data, "remove_item")

    def multi_remove(self, keys: Iterable[str]) -> None:
        doomed = set(keys)
        data = self._load()
        if not doomed.intersection(data):
            return
        self._flush({k: v for k, v in data.items() if k not in doomed}, "multi_remove")

    def all_keys(self) -> list[str]:
        return list(self._load())

    def close(self) -> None:
        self._data = None


__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonFileKeyValueStore",
]
