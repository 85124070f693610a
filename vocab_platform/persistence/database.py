"""Platform-owned SQLite database primitives."""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

MEMORY_DB = ":memory:"

# Entity tables emptied by a full reset, children before parents.
ENTITY_TABLES = (
    "journal_entries",
    "pathway_concept_completions",
    "pathway_progress",
    "user_concepts",
    "onboarding",
    "settings",
)


def get_connection(db_path: Path | None) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema exists.

    ``db_path`` of ``None`` opens a private in-memory database.
    Returns a ``sqlite3.Connection`` with foreign keys enabled (and WAL mode
    for file databases). The caller is responsible for closing the connection.
    """
    target = MEMORY_DB if db_path is None else str(db_path)
    conn = sqlite3.connect(target)
    conn.row_factory = sqlite3.Row
    if db_path is not None:
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    init_db(conn)
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables if they don't exist and record the schema version."""
    conn.executescript(_SCHEMA_SQL)

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    if current > SCHEMA_VERSION:
        logger.warning(
            "Database schema version %d is newer than supported version %d",
            current, SCHEMA_VERSION,
        )
    elif current < SCHEMA_VERSION:
        logger.info("Initialised database schema at version %d", SCHEMA_VERSION)
        conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()


def table_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {r[0] for r in rows}


def index_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'").fetchall()
    return {r[0] for r in rows}


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS onboarding (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    completed INTEGER NOT NULL DEFAULT 0,
    goal TEXT,
    comfort_level TEXT NOT NULL DEFAULT 'direct',
    first_concept_viewed INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS user_concepts (
    concept_id TEXT PRIMARY KEY,
    status TEXT NOT NULL DEFAULT 'unexplored',
    explored_at TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS journal_entries (
    id TEXT PRIMARY KEY,
    concept_id TEXT REFERENCES user_concepts(concept_id),
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_journal_entries_concept ON journal_entries(concept_id);

CREATE TABLE IF NOT EXISTS pathway_progress (
    pathway_id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS pathway_concept_completions (
    pathway_id TEXT NOT NULL REFERENCES pathway_progress(pathway_id) ON DELETE CASCADE,
    concept_id TEXT NOT NULL,
    completed_at TEXT NOT NULL,
    PRIMARY KEY (pathway_id, concept_id)
);
"""


__all__ = [
    "SCHEMA_VERSION",
    "ENTITY_TABLES",
    "get_connection",
    "init_db",
    "table_names",
    "index_names",
]
