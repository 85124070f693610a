"""Data access facade: one backend, one event bus, change notifications."""

from __future__ import annotations

import logging
from typing import Any

from contracts.v1.schemas import JournalEntry, OnboardingState, PathwayProgress, UserConcept

from .events import CONCEPTS_UPDATED, DATA_CLEARED, ONBOARDING_UPDATED, EventBus
from .persistence.backend import OnboardingChanges, StorageBackend, build_backend
from .runtime.config import StoreConfig, load_config

logger = logging.getLogger(__name__)


class DataAccess:
    """
    Consumer-facing entry point over a single storage backend.

    Forwards every operation unchanged. After a successful onboarding,
    concept or reset mutation it publishes the matching event exactly
    once; nothing is published when the backend raises.
    """

    def __init__(self, backend: StorageBackend, *, bus: EventBus | None = None):
        self.backend = backend
        self.bus = bus or EventBus()

    @property
    def backend_name(self) -> str:
        return self.backend.name

    async def initialize(self) -> None:
        await self.backend.initialize()

    def close(self) -> None:
        self.backend.close()

    # Settings

    async def get_setting(self, key: str) -> str | None:
        return await self.backend.get_setting(key)

    async def set_setting(self, key: str, value: str) -> None:
        await self.backend.set_setting(key, value)

    async def delete_setting(self, key: str) -> None:
        await self.backend.delete_setting(key)

    async def get_bool_setting(self, key: str, default: bool = False) -> bool:
        return await self.backend.get_bool_setting(key, default)

    async def set_bool_setting(self, key: str, value: bool) -> None:
        await self.backend.set_bool_setting(key, value)

    async def get_number_setting(self, key: str, default: float = 0.0) -> float:
        return await self.backend.get_number_setting(key, default)

    async def set_number_setting(self, key: str, value: float) -> None:
        await self.backend.set_number_setting(key, value)

    async def get_json_setting(self, key: str, default: Any = None) -> Any:
        return await self.backend.get_json_setting(key, default)

    async def set_json_setting(self, key: str, value: Any) -> None:
        await self.backend.set_json_setting(key, value)

    # Onboarding

    async def get_onboarding_state(self) -> OnboardingState:
        return await self.backend.get_onboarding_state()

    async def update_onboarding(self, changes: OnboardingChanges) -> OnboardingState:
        state = await self.backend.update_onboarding(changes)
        self.bus.publish(ONBOARDING_UPDATED)
        return state

    # Concepts

    async def get_user_concept(self, concept_id: str) -> UserConcept | None:
        return await self.backend.get_user_concept(concept_id)

    async def get_all_user_concepts(self) -> list[UserConcept]:
        return await self.backend.get_all_user_concepts()

    async def get_concepts_by_status(self, status: str) -> list[UserConcept]:
        return await self.backend.get_concepts_by_status(status)

    async def update_concept_status(self, concept_id: str, status: str) -> UserConcept:
        concept = await self.backend.update_concept_status(concept_id, status)
        self.bus.publish(CONCEPTS_UPDATED)
        return concept

    async def mark_concept_explored(self, concept_id: str) -> UserConcept:
        concept = await self.backend.mark_concept_explored(concept_id)
        self.bus.publish(CONCEPTS_UPDATED)
        return concept

    # Journal

    async def create_journal_entry(self, concept_id: str | None, content: str) -> JournalEntry:
        return await self.backend.create_journal_entry(concept_id, content)

    async def update_journal_entry(self, entry_id: str, content: str) -> JournalEntry:
        return await self.backend.update_journal_entry(entry_id, content)

    async def delete_journal_entry(self, entry_id: str) -> None:
        await self.backend.delete_journal_entry(entry_id)

    async def get_journal_entry(self, entry_id: str) -> JournalEntry | None:
        return await self.backend.get_journal_entry(entry_id)

    async def get_journal_entries(self) -> list[JournalEntry]:
        return await self.backend.get_journal_entries()

    async def get_journal_entries_for_concept(self, concept_id: str) -> list[JournalEntry]:
        return await self.backend.get_journal_entries_for_concept(concept_id)

    # Stats

    async def get_explored_count(self) -> int:
        return await self.backend.get_explored_count()

    async def get_resonates_count(self) -> int:
        return await self.backend.get_resonates_count()

    # Pathways

    async def get_pathway_progress(self, pathway_id: str) -> PathwayProgress | None:
        return await self.backend.get_pathway_progress(pathway_id)

    async def get_all_pathway_progress(self) -> list[PathwayProgress]:
        return await self.backend.get_all_pathway_progress()

    async def start_pathway(self, pathway_id: str) -> PathwayProgress:
        return await self.backend.start_pathway(pathway_id)

    async def update_pathway_progress(
        self,
        pathway_id: str,
        concept_id: str,
        total_concepts: int,
    ) -> PathwayProgress:
        return await self.backend.update_pathway_progress(pathway_id, concept_id, total_concepts)

    # Reset

    async def clear_all_data(self) -> None:
        await self.backend.clear_all_data()
        self.bus.publish(DATA_CLEARED)


async def open_data_access(
    config: StoreConfig | None = None,
    *,
    bus: EventBus | None = None,
) -> DataAccess:
    """Build the backend for *config* (environment by default) and initialise it."""
    config = config or load_config()
    backend = build_backend(config)
    access = DataAccess(backend, bus=bus)
    await access.initialize()
    logger.info("Data access opened with %s backend", access.backend_name)
    return access


__all__ = ["DataAccess", "open_data_access"]
