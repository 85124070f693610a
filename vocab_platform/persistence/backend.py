"""
Abstract storage backend interface.

Defines the StorageBackend ABC with two implementations:
- SQLiteBackend (structured, embedded relational engine)
- FlatBackend (fallback, namespaced key-value emulation)

Both must agree on every observable outcome: row shapes, ordering,
counts and mutation effects.
"""

from __future__ import annotations

import json
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Callable

from contracts.v1.schemas import (
    ALL_CONCEPT_STATUSES,
    JournalEntry,
    OnboardingState,
    OnboardingUpdate,
    PathwayProgress,
    UserConcept,
)
from vocab_platform.runtime.clock import Clock
from vocab_platform.runtime.config import (
    BACKEND_AUTO,
    BACKEND_FLAT,
    BACKEND_SQLITE,
    StoreConfig,
)

logger = logging.getLogger(__name__)

# UPSERT (INSERT ... ON CONFLICT DO UPDATE) arrived in SQLite 3.24.0
MIN_SQLITE_VERSION = (3, 24, 0)

OnboardingChanges = OnboardingUpdate | dict[str, Any]


class StorageBackend(ABC):
    """
    Abstract interface for on-device persistence.

    Every operation is a coroutine, but implementations perform each
    read-modify-write without suspending between the read and the write.
    """

    name: str = "abstract"

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        """True once ``initialize()`` has completed."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create schema/namespaces if absent. Idempotent; never alters existing data."""

    # ── Settings ──────────────────────────────────────────────────────

    @abstractmethod
    async def get_setting(self, key: str) -> str | None:
        """Return the stored value for *key*, or None."""

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None:
        """Store *value* under *key*, overwriting unconditionally."""

    @abstractmethod
    async def delete_setting(self, key: str) -> None:
        """Remove *key*. No-op if absent."""

    async def get_bool_setting(self, key: str, default: bool = False) -> bool:
        """Read a setting stored as ``"true"``/``"1"``; anything else is False."""
        value = await self.get_setting(key)
        if value is None:
            return default
        return value in ("true", "1")

    async def set_bool_setting(self, key: str, value: bool) -> None:
        await self.set_setting(key, "true" if value else "false")

    async def get_number_setting(self, key: str, default: float = 0.0) -> float:
        value = await self.get_setting(key)
        if value is None:
            return default
        try:
            parsed = float(value)
        except ValueError:
            logger.warning("Setting '%s' is not a number; using default", key)
            return default
        return default if math.isnan(parsed) else parsed

    async def set_number_setting(self, key: str, value: float) -> None:
        await self.set_setting(key, str(value))

    async def get_json_setting(self, key: str, default: Any = None) -> Any:
        value = await self.get_setting(key)
        if value is None:
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Setting '%s' is not valid JSON; using default", key)
            return default

    async def set_json_setting(self, key: str, value: Any) -> None:
        await self.set_setting(key, json.dumps(value))

    # ── Onboarding ────────────────────────────────────────────────────

    @abstractmethod
    async def get_onboarding_state(self) -> OnboardingState:
        """Return the singleton onboarding row, or the default unfinished state."""

    @abstractmethod
    async def update_onboarding(self, changes: OnboardingChanges) -> OnboardingState:
        """Merge the provided fields into the singleton row, leaving others unchanged."""

    # ── Concepts ──────────────────────────────────────────────────────

    @abstractmethod
    async def get_user_concept(self, concept_id: str) -> UserConcept | None:
        """Return a single concept row by id."""

    @abstractmethod
    async def get_all_user_concepts(self) -> list[UserConcept]:
        """Return every concept row in first-insertion order."""

    @abstractmethod
    async def get_concepts_by_status(self, status: str) -> list[UserConcept]:
        """Return concept rows with *status*, in first-insertion order."""

    @abstractmethod
    async def update_concept_status(self, concept_id: str, status: str) -> UserConcept:
        """
        Create or update a concept's status and bump ``updated_at``.

        ``explored_at`` is only ever written by the first transition into
        the explored status.
        """

    @abstractmethod
    async def mark_concept_explored(self, concept_id: str) -> UserConcept:
        """Set status to explored; ``explored_at`` is set only if currently unset."""

    # ── Journal ───────────────────────────────────────────────────────

    @abstractmethod
    async def create_journal_entry(self, concept_id: str | None, content: str) -> JournalEntry:
        """
        Create a journal entry with a fresh id.

        Raises:
            DanglingReferenceError: *concept_id* given but no such concept row
        """

    @abstractmethod
    async def update_journal_entry(self, entry_id: str, content: str) -> JournalEntry:
        """
        Replace an entry's content and bump ``updated_at``.

        Raises:
            NotFoundError: no entry with *entry_id*
        """

    @abstractmethod
    async def delete_journal_entry(self, entry_id: str) -> None:
        """Remove an entry. No-op if already absent."""

    @abstractmethod
    async def get_journal_entry(self, entry_id: str) -> JournalEntry | None:
        """Return a single entry by id."""

    @abstractmethod
    async def get_journal_entries(self) -> list[JournalEntry]:
        """Return all entries, newest ``created_at`` first."""

    @abstractmethod
    async def get_journal_entries_for_concept(self, concept_id: str) -> list[JournalEntry]:
        """Return entries bound to *concept_id*, newest ``created_at`` first."""

    # ── Stats ─────────────────────────────────────────────────────────

    @abstractmethod
    async def get_explored_count(self) -> int:
        """Live count of concept rows whose status is explored."""

    @abstractmethod
    async def get_resonates_count(self) -> int:
        """Live count of concept rows whose status is resonates."""

    # ── Pathways ──────────────────────────────────────────────────────

    @abstractmethod
    async def get_pathway_progress(self, pathway_id: str) -> PathwayProgress | None:
        """Return progress for a single pathway."""

    @abstractmethod
    async def get_all_pathway_progress(self) -> list[PathwayProgress]:
        """Return all pathway progress rows, most recently started first."""

    @abstractmethod
    async def start_pathway(self, pathway_id: str) -> PathwayProgress:
        """Start tracking a pathway. Idempotent."""

    @abstractmethod
    async def update_pathway_progress(
        self,
        pathway_id: str,
        concept_id: str,
        total_concepts: int,
    ) -> PathwayProgress:
        """
        Record *concept_id* as completed within a pathway.

        Starts the pathway if needed. ``completed_at`` is set the first time
        the completed count reaches *total_concepts* and is never cleared.
        """

    # ── Reset / lifecycle ─────────────────────────────────────────────

    @abstractmethod
    async def clear_all_data(self) -> None:
        """Atomically empty every entity class."""

    @abstractmethod
    def close(self) -> None:
        """Release storage resources."""


def onboarding_changes(changes: OnboardingChanges) -> dict[str, Any]:
    """Validate a partial onboarding update and return only the provided fields."""
    if not isinstance(changes, OnboardingUpdate):
        changes = OnboardingUpdate.model_validate(changes)
    return changes.changes()


def check_status(status: str) -> str:
    if status not in ALL_CONCEPT_STATUSES:
        raise ValueError(
            f"Unknown concept status: {status!r}. Supported: {', '.join(ALL_CONCEPT_STATUSES)}"
        )
    return status


def check_total_concepts(total_concepts: int) -> int:
    if isinstance(total_concepts, bool) or not isinstance(total_concepts, int) or total_concepts < 1:
        raise ValueError(f"total_concepts must be a positive integer, got {total_concepts!r}")
    return total_concepts


def sqlite_available() -> bool:
    """Probe whether a usable embedded SQLite engine is present."""
    try:
        import sqlite3
    except ImportError as e:
        logger.info("SQLite engine not importable: %s", e)
        return False

    if sqlite3.sqlite_version_info < MIN_SQLITE_VERSION:
        logger.info(
            "SQLite %s is older than %s; structured backend unavailable",
            sqlite3.sqlite_version,
            ".".join(str(p) for p in MIN_SQLITE_VERSION),
        )
        return False

    try:
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE TABLE probe (k TEXT PRIMARY KEY, v TEXT)")
            conn.execute(
                "INSERT INTO probe (k, v) VALUES ('a', '1') "
                "ON CONFLICT(k) DO UPDATE SET v = excluded.v"
            )
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.info("SQLite probe failed: %s", e)
        return False
    return True


def resolve_backend_name(requested: str = BACKEND_AUTO) -> str:
    """Resolve ``auto`` to a concrete backend name through capability probing."""
    if requested == BACKEND_AUTO:
        return BACKEND_SQLITE if sqlite_available() else BACKEND_FLAT
    if requested in (BACKEND_SQLITE, BACKEND_FLAT):
        return requested
    raise ValueError(
        f"Unknown storage backend: {requested!r}. Supported: 'auto', 'sqlite', 'flat'"
    )


def build_backend(
    config: StoreConfig,
    *,
    clock: Clock | None = None,
    id_factory: Callable[[], str] | None = None,
) -> StorageBackend:
    """
    Factory: create an uninitialised StorageBackend for *config*.

    Args:
        config: Resolved storage configuration. ``config.backend`` may be
            "auto", "sqlite" or "flat".
        clock: Shared timestamp source (a fresh ``Clock`` by default).
        id_factory: Journal id generator (``uuid4().hex`` by default).

    Raises:
        ValueError: Unknown backend
    """
    name = resolve_backend_name(config.backend)
    if config.data_dir is not None:
        config.data_dir.mkdir(parents=True, exist_ok=True)

    if name == BACKEND_SQLITE:
        from vocab_platform.persistence.sqlite_backend import SQLiteBackend

        return SQLiteBackend(config.db_path, clock=clock, id_factory=id_factory)

    from vocab_platform.persistence.flat_backend import FlatBackend
    from vocab_platform.persistence.kv_store import JsonFileKeyValueStore, MemoryKeyValueStore

    kv = MemoryKeyValueStore() if config.kv_path is None else JsonFileKeyValueStore(config.kv_path)
    return FlatBackend(kv, clock=clock, id_factory=id_factory)


__all__ = [
    "MIN_SQLITE_VERSION",
    "OnboardingChanges",
    "StorageBackend",
    "build_backend",
    "check_status",
    "check_total_concepts",
    "onboarding_changes",
    "resolve_backend_name",
    "sqlite_available",
]
