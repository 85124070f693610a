"""
Consumer-facing data API as a flat set of async functions.

UI and business logic import from here and nowhere else::

    from vocab_platform import database as db

    await db.update_concept_status("concept-42", "curious")
    db.events.subscribe(db.CONCEPTS_UPDATED, refresh)

The backend is resolved once, on the first call (or an explicit
``init_database()``), and stays fixed for the life of the process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from contracts.v1.schemas import JournalEntry, OnboardingState, PathwayProgress, UserConcept

from .events import CONCEPTS_UPDATED, DATA_CLEARED, ONBOARDING_UPDATED, EventBus
from .facade import DataAccess, open_data_access
from .persistence.backend import OnboardingChanges
from .runtime.config import StoreConfig

logger = logging.getLogger(__name__)

# Process-wide notification channel
events = EventBus()

_access: DataAccess | None = None
_init_lock = asyncio.Lock()


async def init_database(
    config: StoreConfig | None = None,
    *,
    bus: EventBus | None = None,
) -> DataAccess:
    """Resolve and initialise the backend once; later calls return the same instance.

    Args:
        config: Storage configuration (read from the environment when omitted).
            Ignored once a backend has been resolved.
        bus: Event bus to publish on (the module-level ``events`` by default).
    """
    global _access
    if _access is not None:
        return _access
    async with _init_lock:
        if _access is None:
            _access = await open_data_access(config, bus=bus or events)
    return _access


async def get_data_access() -> DataAccess:
    return await init_database()


def reset_database() -> None:
    """Close and forget the active backend so the next call resolves a new one."""
    global _access, _init_lock
    if _access is not None:
        _access.close()
        logger.info("Data access reset")
    _access = None
    _init_lock = asyncio.Lock()


# ── Settings ──────────────────────────────────────────────────────────

async def get_setting(key: str) -> str | None:
    return await (await get_data_access()).get_setting(key)


async def set_setting(key: str, value: str) -> None:
    await (await get_data_access()).set_setting(key, value)


async def delete_setting(key: str) -> None:
    await (await get_data_access()).delete_setting(key)


async def get_bool_setting(key: str, default: bool = False) -> bool:
    return await (await get_data_access()).get_bool_setting(key, default)


async def set_bool_setting(key: str, value: bool) -> None:
    await (await get_data_access()).set_bool_setting(key, value)


async def get_number_setting(key: str, default: float = 0.0) -> float:
    return await (await get_data_access()).get_number_setting(key, default)


async def set_number_setting(key: str, value: float) -> None:
    await (await get_data_access()).set_number_setting(key, value)


async def get_json_setting(key: str, default: Any = None) -> Any:
    return await (await get_data_access()).get_json_setting(key, default)


async def set_json_setting(key: str, value: Any) -> None:
    await (await get_data_access()).set_json_setting(key, value)


# ── Onboarding ────────────────────────────────────────────────────────

async def get_onboarding_state() -> OnboardingState:
    return await (await get_data_access()).get_onboarding_state()


async def update_onboarding(changes: OnboardingChanges) -> OnboardingState:
    return await (await get_data_access()).update_onboarding(changes)


# ── Concepts ──────────────────────────────────────────────────────────

async def get_user_concept(concept_id: str) -> UserConcept | None:
    return await (await get_data_access()).get_user_concept(concept_id)


async def get_all_user_concepts() -> list[UserConcept]:
    return await (await get_data_access()).get_all_user_concepts()


async def get_concepts_by_status(status: str) -> list[UserConcept]:
    return await (await get_data_access()).get_concepts_by_status(status)


async def update_concept_status(concept_id: str, status: str) -> UserConcept:
    return await (await get_data_access()).update_concept_status(concept_id, status)


async def mark_concept_explored(concept_id: str) -> UserConcept:
    return await (await get_data_access()).mark_concept_explored(concept_id)


# ── Journal ───────────────────────────────────────────────────────────

async def create_journal_entry(concept_id: str | None, content: str) -> JournalEntry:
    return await (await get_data_access()).create_journal_entry(concept_id, content)


async def update_journal_entry(entry_id: str, content: str) -> JournalEntry:
    return await (await get_data_access()).update_journal_entry(entry_id, content)


async def delete_journal_entry(entry_id: str) -> None:
    await (await get_data_access()).delete_journal_entry(entry_id)


async def get_journal_entry(entry_id: str) -> JournalEntry | None:
    return await (await get_data_access()).get_journal_entry(entry_id)


async def get_journal_entries() -> list[JournalEntry]:
    return await (await get_data_access()).get_journal_entries()


async def get_journal_entries_for_concept(concept_id: str) -> list[JournalEntry]:
    return await (await get_data_access()).get_journal_entries_for_concept(concept_id)


# ── Stats ─────────────────────────────────────────────────────────────

async def get_explored_count() -> int:
    return await (await get_data_access()).get_explored_count()


async def get_resonates_count() -> int:
    return await (await get_data_access()).get_resonates_count()


# ── Pathways ──────────────────────────────────────────────────────────

async def get_pathway_progress(pathway_id: str) -> PathwayProgress | None:
    return await (await get_data_access()).get_pathway_progress(pathway_id)


async def get_all_pathway_progress() -> list[PathwayProgress]:
    return await (await get_data_access()).get_all_pathway_progress()


async def start_pathway(pathway_id: str) -> PathwayProgress:
    return await (await get_data_access()).start_pathway(pathway_id)


async def update_pathway_progress(
    pathway_id: str,
    concept_id: str,
    total_concepts: int,
) -> PathwayProgress:
    return await (await get_data_access()).update_pathway_progress(
        pathway_id, concept_id, total_concepts
    )


# ── Reset ─────────────────────────────────────────────────────────────

async def clear_all_data() -> None:
    await (await get_data_access()).clear_all_data()


__all__ = [
    "events",
    "ONBOARDING_UPDATED",
    "DATA_CLEARED",
    "CONCEPTS_UPDATED",
    "init_database",
    "get_data_access",
    "reset_database",
    "get_setting",
    "set_setting",
    "delete_setting",
    "get_bool_setting",
    "set_bool_setting",
    "get_number_setting",
    "set_number_setting",
    "get_json_setting",
    "set_json_setting",
    "get_onboarding_state",
    "update_onboarding",
    "get_user_concept",
    "get_all_user_concepts",
    "get_concepts_by_status",
    "update_concept_status",
    "mark_concept_explored",
    "create_journal_entry",
    "update_journal_entry",
    "delete_journal_entry",
    "get_journal_entry",
    "get_journal_entries",
    "get_journal_entries_for_concept",
    "get_explored_count",
    "get_resonates_count",
    "get_pathway_progress",
    "get_all_pathway_progress",
    "start_pathway",
    "update_pathway_progress",
    "clear_all_data",
]
