"""
Structured storage backend on the embedded SQLite engine.

One table per entity class (see ``persistence.database``). Every write
runs inside a single ``with conn:`` transaction and reads the row it
is about to modify in that same synchronous block.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
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
from vocab_platform.persistence.database import ENTITY_TABLES, get_connection
from vocab_platform.runtime.clock import Clock, new_id
from vocab_platform.runtime.config import BACKEND_SQLITE

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {key: row[key] for key in row.keys()}


class SQLiteBackend(StorageBackend):
    """StorageBackend over a single ``sqlite3`` connection."""

    name = BACKEND_SQLITE

    def __init__(
        self,
        db_path: Path | None = None,
        *,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.db_path = db_path
        self._clock = clock or Clock()
        self._new_id = id_factory or new_id
        self._conn: sqlite3.Connection | None = None

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    async def initialize(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise StorageUnavailableError(
                f"Cannot open SQLite database {self.db_path or ':memory:'}: {e}",
                storage_type=self.name,
                operation="initialize",
            ) from e
        logger.info("SQLite backend ready at %s", self.db_path or ":memory:")

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Internals ─────────────────────────────────────────────────────

    def _db(self, operation: str) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailableError(
                "SQLite backend used before initialize()",
                storage_type=self.name,
                operation=operation,
            )
        return self._conn

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            raise StorageUnavailableError(
                f"SQLite {operation} failed: {e}",
                storage_type=self.name,
                operation=operation,
            ) from e

    @staticmethod
    def _load_row(model: type[ModelT], data: dict[str, Any], key: str, operation: str) -> ModelT:
        """Validate *data* into *model*, raising CorruptDataError on failure."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise CorruptDataError(
                f"Stored {model.__name__} '{key}' is invalid: {e.error_count()} error(s)",
                key=key,
                operation=operation,
            ) from e

    @classmethod
    def _read_row(cls, model: type[ModelT], data: dict[str, Any], key: str) -> ModelT | None:
        """Validate *data* into *model*, logging and returning None on failure."""
        try:
            return cls._load_row(model, data, key, "read")
        except CorruptDataError as e:
            logger.warning("Skipping corrupt row: %s", e)
            return None

    @staticmethod
    def _onboarding_data(row: sqlite3.Row) -> dict[str, Any]:
        data = _row_to_dict(row)
        data.pop("id", None)
        return data

    def _pathway_data(self, conn: sqlite3.Connection, row: sqlite3.Row) -> dict[str, Any]:
        data = _row_to_dict(row)
        completions = conn.execute(
            "SELECT concept_id FROM pathway_concept_completions "
            "WHERE pathway_id = ? ORDER BY rowid",
            (row["pathway_id"],),
        ).fetchall()
        data["concepts_completed"] = [r["concept_id"] for r in completions]
        return data

    # ── Settings ──────────────────────────────────────────────────────

    async def get_setting(self, key: str) -> str | None:
        conn = self._db("get_setting")
        with self._storage_errors("get_setting"):
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        conn = self._db("set_setting")
        with self._storage_errors("set_setting"), conn:
            conn.execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    async def delete_setting(self, key: str) -> None:
        conn = self._db("delete_setting")
        with self._storage_errors("delete_setting"), conn:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))

    # ── Onboarding ────────────────────────────────────────────────────

    async def get_onboarding_state(self) -> OnboardingState:
        conn = self._db("get_onboarding_state")
        with self._storage_errors("get_onboarding_state"):
            row = conn.execute("SELECT * FROM onboarding WHERE id = 1").fetchone()
        if row is None:
            return OnboardingState()
        state = self._read_row(OnboardingState, self._onboarding_data(row), "onboarding")
        return state or OnboardingState()

    async def update_onboarding(self, changes: OnboardingChanges) -> OnboardingState:
        fields = onboarding_changes(changes)
        conn = self._db("update_onboarding")
        with self._storage_errors("update_onboarding"), conn:
            row = conn.execute("SELECT * FROM onboarding WHERE id = 1").fetchone()
            if row is None:
                current = OnboardingState()
            else:
                current = self._load_row(
                    OnboardingState, self._onboarding_data(row), "onboarding", "update_onboarding"
                )
            merged = OnboardingState.model_validate({**current.model_dump(), **fields})
            conn.execute(
                """INSERT INTO onboarding (id, completed, goal, comfort_level, first_concept_viewed)
                   VALUES (1, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       completed = excluded.completed,
                       goal = excluded.goal,
                       comfort_level = excluded.comfort_level,
                       first_concept_viewed = excluded.first_concept_viewed""",
                (
                    int(merged.completed),
                    merged.goal,
                    merged.comfort_level,
                    int(merged.first_concept_viewed),
                ),
            )
        return merged

    # ── Concepts ──────────────────────────────────────────────────────

    async def get_user_concept(self, concept_id: str) -> UserConcept | None:
        conn = self._db("get_user_concept")
        with self._storage_errors("get_user_concept"):
            row = conn.execute(
                "SELECT * FROM user_concepts WHERE concept_id = ?", (concept_id,)
            ).fetchone()
        if row is None:
            return None
        return self._read_row(UserConcept, _row_to_dict(row), concept_id)

    def _concept_rows(self, rows: list[sqlite3.Row]) -> list[UserConcept]:
        concepts = (self._read_row(UserConcept, _row_to_dict(r), r["concept_id"]) for r in rows)
        return [c for c in concepts if c is not None]

    async def get_all_user_concepts(self) -> list[UserConcept]:
        conn = self._db("get_all_user_concepts")
        with self._storage_errors("get_all_user_concepts"):
            rows = conn.execute("SELECT * FROM user_concepts ORDER BY rowid").fetchall()
        return self._concept_rows(rows)

    def _select_by_status(self, status: str, operation: str) -> list[UserConcept]:
        check_status(status)
        conn = self._db(operation)
        with self._storage_errors(operation):
            rows = conn.execute(
                "SELECT * FROM user_concepts WHERE status = ? ORDER BY rowid", (status,)
            ).fetchall()
        return self._concept_rows(rows)

    async def get_concepts_by_status(self, status: str) -> list[UserConcept]:
        return self._select_by_status(status, "get_concepts_by_status")

    def _write_concept_status(self, concept_id: str, status: str, operation: str) -> UserConcept:
        check_status(status)
        conn = self._db(operation)
        with self._storage_errors(operation), conn:
            row = conn.execute(
                "SELECT updated_at FROM user_concepts WHERE concept_id = ?", (concept_id,)
            ).fetchone()
            now = self._clock.now(not_before=row["updated_at"] if row else None)
            explored_at = now if status == STATUS_EXPLORED else None
            # COALESCE keeps the first explored_at forever
            conn.execute(
                """INSERT INTO user_concepts (concept_id, status, explored_at, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(concept_id) DO UPDATE SET
                       status = excluded.status,
                       explored_at = COALESCE(user_concepts.explored_at, excluded.explored_at),
                       updated_at = excluded.updated_at""",
                (concept_id, status, explored_at, now),
            )
            row = conn.execute(
                "SELECT * FROM user_concepts WHERE concept_id = ?", (concept_id,)
            ).fetchone()
        return self._load_row(UserConcept, _row_to_dict(row), concept_id, operation)

    async def update_concept_status(self, concept_id: str, status: str) -> UserConcept:
        return self._write_concept_status(concept_id, status, "update_concept_status")

    async def mark_concept_explored(self, concept_id: str) -> UserConcept:
        return self._write_concept_status(concept_id, STATUS_EXPLORED, "mark_concept_explored")

    # ── Journal ───────────────────────────────────────────────────────

    async def create_journal_entry(self, concept_id: str | None, content: str) -> JournalEntry:
        conn = self._db("create_journal_entry")
        with self._storage_errors("create_journal_entry"), conn:
            if concept_id is not None:
                exists = conn.execute(
                    "SELECT 1 FROM user_concepts WHERE concept_id = ?", (concept_id,)
                ).fetchone()
                if exists is None:
                    raise DanglingReferenceError(
                        "JournalEntry", "concept_id", concept_id,
                        operation="create_journal_entry",
                    )
            now = self._clock.now()
            entry = JournalEntry(
                id=self._new_id(),
                concept_id=concept_id,
                content=content,
                created_at=now,
                updated_at=now,
            )
            conn.execute(
                "INSERT INTO journal_entries (id, concept_id, content, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (entry.id, entry.concept_id, entry.content, entry.created_at, entry.updated_at),
            )
        return entry

    async def update_journal_entry(self, entry_id: str, content: str) -> JournalEntry:
        conn = self._db("update_journal_entry")
        with self._storage_errors("update_journal_entry"), conn:
            row = conn.execute("SELECT * FROM journal_entries WHERE id = ?", (entry_id,)).fetchone()
            if row is None:
                raise NotFoundError("JournalEntry", entry_id, operation="update_journal_entry")
            now = self._clock.now(not_before=row["updated_at"])
            entry = self._load_row(
                JournalEntry,
                {**_row_to_dict(row), "content": content, "updated_at": now},
                entry_id,
                "update_journal_entry",
            )
            conn.execute(
                "UPDATE journal_entries SET content = ?, updated_at = ? WHERE id = ?",
                (content, now, entry_id),
            )
        return entry

    async def delete_journal_entry(self, entry_id: str) -> None:
        conn = self._db("delete_journal_entry")
        with self._storage_errors("delete_journal_entry"), conn:
            conn.execute("DELETE FROM journal_entries WHERE id = ?", (entry_id,))

    async def get_journal_entry(self, entry_id: str) -> JournalEntry | None:
        conn = self._db("get_journal_entry")
        with self._storage_errors("get_journal_entry"):
            row = conn.execute("SELECT * FROM journal_entries WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            return None
        return self._read_row(JournalEntry, _row_to_dict(row), entry_id)

    def _journal_rows(self, rows: list[sqlite3.Row]) -> list[JournalEntry]:
        entries = (self._read_row(JournalEntry, _row_to_dict(r), r["id"]) for r in rows)
        return [e for e in entries if e is not None]

    async def get_journal_entries(self) -> list[JournalEntry]:
        conn = self._db("get_journal_entries")
        with self._storage_errors("get_journal_entries"):
            rows = conn.execute(
                "SELECT * FROM journal_entries ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return self._journal_rows(rows)

    async def get_journal_entries_for_concept(self, concept_id: str) -> list[JournalEntry]:
        conn = self._db("get_journal_entries_for_concept")
        with self._storage_errors("get_journal_entries_for_concept"):
            rows = conn.execute(
                "SELECT * FROM journal_entries WHERE concept_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (concept_id,),
            ).fetchall()
        return self._journal_rows(rows)

    # ── Stats ─────────────────────────────────────────────────────────

    def _count_status(self, status: str, operation: str) -> int:
        # Only rows that validate are counted
        return len(self._select_by_status(status, operation))

    async def get_explored_count(self) -> int:
        return self._count_status(STATUS_EXPLORED, "get_explored_count")

    async def get_resonates_count(self) -> int:
        return self._count_status(STATUS_RESONATES, "get_resonates_count")

    # ── Pathways ──────────────────────────────────────────────────────

    async def get_pathway_progress(self, pathway_id: str) -> PathwayProgress | None:
        conn = self._db("get_pathway_progress")
        with self._storage_errors("get_pathway_progress"):
            row = conn.execute(
                "SELECT * FROM pathway_progress WHERE pathway_id = ?", (pathway_id,)
            ).fetchone()
            if row is None:
                return None
            data = self._pathway_data(conn, row)
        return self._read_row(PathwayProgress, data, pathway_id)

    async def get_all_pathway_progress(self) -> list[PathwayProgress]:
        conn = self._db("get_all_pathway_progress")
        with self._storage_errors("get_all_pathway_progress"):
            rows = conn.execute(
                "SELECT * FROM pathway_progress ORDER BY started_at DESC, rowid DESC"
            ).fetchall()
            data = [self._pathway_data(conn, r) for r in rows]
        progress = (self._read_row(PathwayProgress, d, d["pathway_id"]) for d in data)
        return [p for p in progress if p is not None]

    def _ensure_pathway(self, conn: sqlite3.Connection, pathway_id: str) -> None:
        exists = conn.execute(
            "SELECT 1 FROM pathway_progress WHERE pathway_id = ?", (pathway_id,)
        ).fetchone()
        if exists is None:
            conn.execute(
                "INSERT INTO pathway_progress (pathway_id, started_at) VALUES (?, ?)",
                (pathway_id, self._clock.now()),
            )

    def _load_pathway(self, conn: sqlite3.Connection, pathway_id: str, operation: str) -> PathwayProgress:
        row = conn.execute(
            "SELECT * FROM pathway_progress WHERE pathway_id = ?", (pathway_id,)
        ).fetchone()
        return self._load_row(PathwayProgress, self._pathway_data(conn, row), pathway_id, operation)

    async def start_pathway(self, pathway_id: str) -> PathwayProgress:
        conn = self._db("start_pathway")
        with self._storage_errors("start_pathway"), conn:
            self._ensure_pathway(conn, pathway_id)
            return self._load_pathway(conn, pathway_id, "start_pathway")

    async def update_pathway_progress(
        self,
        pathway_id: str,
        concept_id: str,
        total_concepts: int,
    ) -> PathwayProgress:
        check_total_concepts(total_concepts)
        conn = self._db("update_pathway_progress")
        with self._storage_errors("update_pathway_progress"), conn:
            self._ensure_pathway(conn, pathway_id)
            conn.execute(
                "INSERT INTO pathway_concept_completions (pathway_id, concept_id, completed_at) "
                "VALUES (?, ?, ?) ON CONFLICT(pathway_id, concept_id) DO NOTHING",
                (pathway_id, concept_id, self._clock.now()),
            )
            done = conn.execute(
                "SELECT COUNT(*) FROM pathway_concept_completions WHERE pathway_id = ?",
                (pathway_id,),
            ).fetchone()[0]
            if done >= total_concepts:
                conn.execute(
                    "UPDATE pathway_progress SET completed_at = ? "
                    "WHERE pathway_id = ? AND completed_at IS NULL",
                    (self._clock.now(), pathway_id),
                )
            return self._load_pathway(conn, pathway_id, "update_pathway_progress")

    # ── Reset ─────────────────────────────────────────────────────────

    async def clear_all_data(self) -> None:
        conn = self._db("clear_all_data")
        with self._storage_errors("clear_all_data"), conn:
            for table in ENTITY_TABLES:
                conn.execute(f"DELETE FROM {table}")
        logger.info("Cleared all data from SQLite backend")


__all__ = ["SQLiteBackend"]
