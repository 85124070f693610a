"""Typed failures raised by the data layer."""

from __future__ import annotations

from typing import Any


class DataLayerError(Exception):
    """Base exception for data layer failures."""

    def __init__(self, message: str, *, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": str(self),
            "operation": self.operation,
        }


class NotFoundError(DataLayerError):
    """Raised when an update expects a row that does not exist."""

    def __init__(self, entity: str, id: str, *, operation: str = "unknown"):
        super().__init__(f"{entity} with id '{id}' not found", operation=operation)
        self.entity = entity
        self.id = id

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(entity=self.entity, id=self.id)
        return payload


class DanglingReferenceError(DataLayerError):
    """Raised when a foreign reference does not resolve at write time."""

    def __init__(self, entity: str, field: str, value: str, *, operation: str = "unknown"):
        super().__init__(
            f"{entity}.{field} references missing row '{value}'",
            operation=operation,
        )
        self.entity = entity
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(entity=self.entity, field=self.field, value=self.value)
        return payload


class StorageUnavailableError(DataLayerError):
    """Raised when the underlying storage primitive fails at the I/O level."""

    def __init__(self, message: str, *, storage_type: str, operation: str = "unknown"):
        super().__init__(message, operation=operation)
        self.storage_type = storage_type

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["storage_type"] = self.storage_type
        if self.__cause__ is not None:
            payload["cause"] = str(self.__cause__)
        return payload


class CorruptDataError(DataLayerError):
    """Raised when a stored value cannot be deserialised into its expected shape."""

    def __init__(self, message: str, *, key: str, operation: str = "unknown"):
        super().__init__(message, operation=operation)
        self.key = key

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["key"] = self.key
        return payload


__all__ = [
    "DataLayerError",
    "NotFoundError",
    "DanglingReferenceError",
    "StorageUnavailableError",
    "CorruptDataError",
]
