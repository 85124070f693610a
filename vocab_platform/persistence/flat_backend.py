"""
Flat storage backend emulated over a string key-value store.

Layout: one namespaced key per entity class, each holding a JSON
document. Collections are JSON objects keyed by primary key, so dict
order is first-insertion order and an update keeps an entry's position.

Reads are lenient (a corrupt entry is skipped and logged); writes are
strict (a document that cannot be decoded is never overwritten).
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from pydantic import BaseModel, ValidationError

from contracts.v1.schemas import (
    STATUS_EXPLORED,
    STATUS_RESONATES,
    JournalEntry,
    OnboardingState,
    PathwayProgress,
    UserConcept,
)
from vocab_platform.errors import (
    CorruptDataError,
    DanglingReferenceError,
    NotFoundError,
    StorageUnavailableError,
)
from vocab_platform.persistence.backend import (
    OnboardingChanges,
    StorageBackend,
    check_status,
    check_total_concepts,
    onboarding_changes,
)
from vocab_platform.persistence.kv_store import KeyValueStore
from vocab_platform.runtime.clock import Clock, new_id
from vocab_platform.runtime.config import (
    BACKEND_FLAT,
    STORAGE_FORMAT_VERSION,
    STORAGE_NAMESPACE,
    storage_key,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ONBOARDING_KEY = storage_key("onboarding")
USER_CONCEPTS_KEY = storage_key("user_concepts")
JOURNAL_ENTRIES_KEY = storage_key("journal_entries")
SETTINGS_KEY = storage_key("settings")
PATHWAY_PROGRESS_KEY = storage_key("pathway_progress")

ENTITY_KEYS = (
    ONBOARDING_KEY,
    USER_CONCEPTS_KEY,
    JOURNAL_ENTRIES_KEY,
    SETTINGS_KEY,
    PATHWAY_PROGRESS_KEY,
)


def _newest_first(rows: list[ModelT], attr: str) -> list[ModelT]:
    """Sort by *attr* descending; equal values keep most-recent-insertion first."""
    return sorted(reversed(rows), key=lambda r: getattr(r, attr), reverse=True)


class FlatBackend(StorageBackend):
    """StorageBackend over any ``KeyValueStore``."""

    name = BACKEND_FLAT

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.kv = kv
        self._clock = clock or Clock()
        self._new_id = id_factory or new_id
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        with self._storage_errors("initialize"):
            keys = self.kv.all_keys()

        current_prefix = f"{STORAGE_NAMESPACE}/v{STORAGE_FORMAT_VERSION}:"
        for key in keys:
            if key.startswith(f"{STORAGE_NAMESPACE}/") and not key.startswith(current_prefix):
                logger.warning(
                    "Ignoring key '%s' from another storage format (current is v%d)",
                    key, STORAGE_FORMAT_VERSION,
                )

        self._initialized = True
        logger.info("Flat backend ready (%d stored key(s))", len(keys))

    def close(self) -> None:
        self.kv.close()
        self._initialized = False

    # ── Internals ─────────────────────────────────────────────────────

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except OSError as e:
            raise StorageUnavailableError(
                f"Key-value {operation} failed: {e}",
                storage_type=self.name,
                operation=operation,
            ) from e

    def _require(self, operation: str) -> None:
        if not self._initialized:
            raise StorageUnavailableError(
                "Flat backend used before initialize()",
                storage_type=self.name,
                operation=operation,
            )

    def _decode(self, key: str, operation: str) -> Any:
        """Return the decoded document under *key* (None if absent)."""
        with self._storage_errors(operation):
            raw = self.kv.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDataError(
                f"Stored value under '{key}' is not valid JSON: {e}",
                key=key,
                operation=operation,
            ) from e

    def _load_document(self, key: str, operation: str) -> dict[str, Any] | None:
        """Strict read of a JSON object; used before every write."""
        data = self._decode(key, operation)
        if data is not None and not isinstance(data, dict):
            raise CorruptDataError(
                f"Stored value under '{key}' is not an object",
                key=key,
                operation=operation,
            )
        return data

    def _load_collection(self, key: str, operation: str) -> dict[str, Any]:
        return self._load_document(key, operation) or {}

    def _read_collection(self, key: str, operation: str) -> dict[str, Any]:
        """Lenient read: an undecodable collection reads as empty."""
        try:
            return self._load_collection(key, operation)
        except CorruptDataError as e:
            logger.warning("Treating corrupt collection as empty: %s", e)
            return {}

    def _write(self, key: str, value: Any, operation: str) -> None:
        with self._storage_errors(operation):
            self.kv.set_item(key, json.dumps(value, ensure_ascii=False))

    @staticmethod
    def _load_entry(model: type[ModelT], data: Any, key: str, operation: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise CorruptDataError(
                f"Stored {model.__name__} '{key}' is invalid: {e.error_count()} error(s)",
                key=key,
                operation=operation,
            ) from e

    @classmethod
    def _read_entry(cls, model: type[ModelT], data: Any, key: str) -> ModelT | None:
        try:
            return cls._load_entry(model, data, key, "read")
        except CorruptDataError as e:
            logger.warning("Skipping corrupt entry: %s", e)
            return None

    @classmethod
    def _read_entries(cls, model: type[ModelT], collection: dict[str, Any]) -> list[ModelT]:
        rows = (cls._read_entry(model, value, key) for key, value in collection.items())
        return [r for r in rows if r is not None]

    @staticmethod
    def _dump(row: BaseModel) -> dict[str, Any]:
        return row.model_dump(mode="json")

    # ── Settings ──────────────────────────────────────────────────────

    async def get_setting(self, key: str) -> str | None:
        self._require("get_setting")
        value = self._read_collection(SETTINGS_KEY, "get_setting").get(key)
        if value is not None and not isinstance(value, str):
            logger.warning("Skipping non-string setting '%s'", key)
            return None
        return value

    async def set_setting(self, key: str, value: str) -> None:
        self._require("set_setting")
        settings = self._load_collection(SETTINGS_KEY, "set_setting")
        settings[key] = value
        self._write(SETTINGS_KEY, settings, "set_setting")

    async def delete_setting(self, key: str) -> None:
        self._require("delete_setting")
        settings = self._load_collection(SETTINGS_KEY, "delete_setting")
        if key not in settings:
            return
        del settings[key]
        self._write(SETTINGS_KEY, settings, "delete_setting")

    # ── Onboarding ────────────────────────────────────────────────────

    async def get_onboarding_state(self) -> OnboardingState:
        self._require("get_onboarding_state")
        try:
            data = self._load_document(ONBOARDING_KEY, "get_onboarding_state")
        except CorruptDataError as e:
            logger.warning("Using default onboarding state: %s", e)
            return OnboardingState()

        if data is None:
            state = OnboardingState()
            self._write(ONBOARDING_KEY, self._dump(state), "get_onboarding_state")
            return state
        return self._read_entry(OnboardingState, data, ONBOARDING_KEY) or OnboardingState()

    async def update_onboarding(self, changes: OnboardingChanges) -> OnboardingState:
        fields = onboarding_changes(changes)
        self._require("update_onboarding")
        data = self._load_document(ONBOARDING_KEY, "update_onboarding")
        if data is None:
            current = OnboardingState()
        else:
            current = self._load_entry(OnboardingState, data, ONBOARDING_KEY, "update_onboarding")
        merged = OnboardingState.model_validate({**current.model_dump(), **fields})
        self._write(ONBOARDING_KEY, self._dump(merged), "update_onboarding")
        return merged

    # ── Concepts ──────────────────────────────────────────────────────

    async def get_user_concept(self, concept_id: str) -> UserConcept | None:
        self._require("get_user_concept")
        data = self._read_collection(USER_CONCEPTS_KEY, "get_user_concept").get(concept_id)
        if data is None:
            return None
        return self._read_entry(UserConcept, data, concept_id)

    async def get_all_user_concepts(self) -> list[UserConcept]:
        self._require("get_all_user_concepts")
        concepts = self._read_collection(USER_CONCEPTS_KEY, "get_all_user_concepts")
        return self._read_entries(UserConcept, concepts)

    def _select_by_status(self, status: str, operation: str) -> list[UserConcept]:
        check_status(status)
        self._require(operation)
        concepts = self._read_entries(UserConcept, self._read_collection(USER_CONCEPTS_KEY, operation))
        return [c for c in concepts if c.status == status]

    async def get_concepts_by_status(self, status: str) -> list[UserConcept]:
        return self._select_by_status(status, "get_concepts_by_status")

    def _write_concept_status(self, concept_id: str, status: str, operation: str) -> UserConcept:
        check_status(status)
        self._require(operation)
        concepts = self._load_collection(USER_CONCEPTS_KEY, operation)

        existing = None
        if concept_id in concepts:
            existing = self._load_entry(UserConcept, concepts[concept_id], concept_id, operation)

        now = self._clock.now(not_before=existing.updated_at if existing else None)
        explored_at = existing.explored_at if existing else None
        if explored_at is None and status == STATUS_EXPLORED:
            explored_at = now

        concept = UserConcept(
            concept_id=concept_id,
            status=status,
            explored_at=explored_at,
            updated_at=now,
        )
        concepts[concept_id] = self._dump(concept)
        self._write(USER_CONCEPTS_KEY, concepts, operation)
        return concept

    async def update_concept_status(self, concept_id: str, status: str) -> UserConcept:
        return self._write_concept_status(concept_id, status, "update_concept_status")

    async def mark_concept_explored(self, concept_id: str) -> UserConcept:
        return self._write_concept_status(concept_id, STATUS_EXPLORED, "mark_concept_explored")

    # ── Journal ───────────────────────────────────────────────────────

    async def create_journal_entry(self, concept_id: str | None, content: str) -> JournalEntry:
        self._require("create_journal_entry")
        if concept_id is not None:
            concepts = self._read_collection(USER_CONCEPTS_KEY, "create_journal_entry")
            if concept_id not in concepts:
                raise DanglingReferenceError(
                    "JournalEntry", "concept_id", concept_id,
                    operation="create_journal_entry",
                )

        entries = self._load_collection(JOURNAL_ENTRIES_KEY, "create_journal_entry")
        now = self._clock.now()
        entry = JournalEntry(
            id=self._new_id(),
            concept_id=concept_id,
            content=content,
            created_at=now,
            updated_at=now,
        )
        if entry.id in entries:
            raise StorageUnavailableError(
                f"JournalEntry id '{entry.id}' is already in use",
                storage_type=self.name,
                operation="create_journal_entry",
            )
        entries[entry.id] = self._dump(entry)
        self._write(JOURNAL_ENTRIES_KEY, entries, "create_journal_entry")
        return entry

    async def update_journal_entry(self, entry_id: str, content: str) -> JournalEntry:
        self._require("update_journal_entry")
        entries = self._load_collection(JOURNAL_ENTRIES_KEY, "update_journal_entry")
        if entry_id not in entries:
            raise NotFoundError("JournalEntry", entry_id, operation="update_journal_entry")

        current = self._load_entry(JournalEntry, entries[entry_id], entry_id, "update_journal_entry")
        entry = current.model_copy(
            update={
                "content": content,
                "updated_at": self._clock.now(not_before=current.updated_at),
            }
        )
        entries[entry_id] = self._dump(entry)
        self._write(JOURNAL_ENTRIES_KEY, entries, "update_journal_entry")
        return entry

    async def delete_journal_entry(self, entry_id: str) -> None:
        self._require("delete_journal_entry")
        entries = self._load_collection(JOURNAL_ENTRIES_KEY, "delete_journal_entry")
        if entry_id not in entries:
            return
        del entries[entry_id]
        self._write(JOURNAL_ENTRIES_KEY, entries, "delete_journal_entry")

    async def get_journal_entry(self, entry_id: str) -> JournalEntry | None:
        self._require("get_journal_entry")
        data = self._read_collection(JOURNAL_ENTRIES_KEY, "get_journal_entry").get(entry_id)
        if data is None:
            return None
        return self._read_entry(JournalEntry, data, entry_id)

    async def get_journal_entries(self) -> list[JournalEntry]:
        self._require("get_journal_entries")
        entries = self._read_collection(JOURNAL_ENTRIES_KEY, "get_journal_entries")
        return _newest_first(self._read_entries(JournalEntry, entries), "created_at")

    async def get_journal_entries_for_concept(self, concept_id: str) -> list[JournalEntry]:
        self._require("get_journal_entries_for_concept")
        entries = self._read_collection(JOURNAL_ENTRIES_KEY, "get_journal_entries_for_concept")
        matching = [e for e in self._read_entries(JournalEntry, entries) if e.concept_id == concept_id]
        return _newest_first(matching, "created_at")

    # ── Stats ─────────────────────────────────────────────────────────

    def _count_status(self, status: str, operation: str) -> int:
        return len(self._select_by_status(status, operation))

    async def get_explored_count(self) -> int:
        return self._count_status(STATUS_EXPLORED, "get_explored_count")

    async def get_resonates_count(self) -> int:
        return self._count_status(STATUS_RESONATES, "get_resonates_count")

    # ── Pathways ──────────────────────────────────────────────────────

    async def get_pathway_progress(self, pathway_id: str) -> PathwayProgress | None:
        self._require("get_pathway_progress")
        data = self._read_collection(PATHWAY_PROGRESS_KEY, "get_pathway_progress").get(pathway_id)
        if data is None:
            return None
        return self._read_entry(PathwayProgress, data, pathway_id)

    async def get_all_pathway_progress(self) -> list[PathwayProgress]:
        self._require("get_all_pathway_progress")
        pathways = self._read_collection(PATHWAY_PROGRESS_KEY, "get_all_pathway_progress")
        return _newest_first(self._read_entries(PathwayProgress, pathways), "started_at")

    def _load_pathway(self, pathways: dict[str, Any], pathway_id: str, operation: str) -> PathwayProgress:
        if pathway_id in pathways:
            return self._load_entry(PathwayProgress, pathways[pathway_id], pathway_id, operation)
        return PathwayProgress(pathway_id=pathway_id, started_at=self._clock.now())

    async def start_pathway(self, pathway_id: str) -> PathwayProgress:
        self._require("start_pathway")
        pathways = self._load_collection(PATHWAY_PROGRESS_KEY, "start_pathway")
        if pathway_id in pathways:
            return self._load_entry(PathwayProgress, pathways[pathway_id], pathway_id, "start_pathway")

        progress = PathwayProgress(pathway_id=pathway_id, started_at=self._clock.now())
        pathways[pathway_id] = self._dump(progress)
        self._write(PATHWAY_PROGRESS_KEY, pathways, "start_pathway")
        return progress

    async def update_pathway_progress(
        self,
        pathway_id: str,
        concept_id: str,
        total_concepts: int,
    ) -> PathwayProgress:
        check_total_concepts(total_concepts)
        self._require("update_pathway_progress")
        pathways = self._load_collection(PATHWAY_PROGRESS_KEY, "update_pathway_progress")
        progress = self._load_pathway(pathways, pathway_id, "update_pathway_progress")

        completed = list(progress.concepts_completed)
        if concept_id not in completed:
            completed.append(concept_id)
        completed_at = progress.completed_at
        if completed_at is None and len(completed) >= total_concepts:
            completed_at = self._clock.now()

        progress = progress.model_copy(
            update={"concepts_completed": completed, "completed_at": completed_at}
        )
        pathways[pathway_id] = self._dump(progress)
        self._write(PATHWAY_PROGRESS_KEY, pathways, "update_pathway_progress")
        return progress

    # ── Reset ─────────────────────────────────────────────────────────

    async def clear_all_data(self) -> None:
        self._require("clear_all_data")
        with self._storage_errors("clear_all_data"):
            self.kv.multi_remove(ENTITY_KEYS)
        logger.info("Cleared all data from flat backend")


__all__ = [
    "FlatBackend",
    "ENTITY_KEYS",
    "ONBOARDING_KEY",
    "USER_CONCEPTS_KEY",
    "JOURNAL_ENTRIES_KEY",
    "SETTINGS_KEY",
    "PATHWAY_PROGRESS_KEY",
]
