"""
Behaviour shared by both storage backends.

Every test here runs once against SQLiteBackend and once against
FlatBackend (see the ``backend`` fixture), so the two are held to the
same observable outcomes.
"""

import asyncio

import pytest

from contracts.v1.schemas import OnboardingState, OnboardingUpdate
from vocab_platform.errors import DanglingReferenceError, NotFoundError, StorageUnavailableError


async def _snapshot(backend, setting_keys=("theme",)):
    return {
        "onboarding": await backend.get_onboarding_state(),
        "concepts": await backend.get_all_user_concepts(),
        "journal": await backend.get_journal_entries(),
        "settings": {k: await backend.get_setting(k) for k in setting_keys},
        "explored": await backend.get_explored_count(),
        "resonates": await backend.get_resonates_count(),
        "pathways": await backend.get_all_pathway_progress(),
    }


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent_and_keeps_data(self, backend):
        await backend.set_setting("theme", "dark")
        await backend.update_concept_status("c1", "curious")

        await backend.initialize()
        await backend.initialize()

        assert backend.is_initialized
        assert await backend.get_setting("theme") == "dark"
        assert [c.concept_id for c in await backend.get_all_user_concepts()] == ["c1"]

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, backend, make_backend):
        await backend.update_onboarding({"completed": True})
        await backend.mark_concept_explored("c1")
        entry = await backend.create_journal_entry("c1", "note")
        backend.close()

        reopened = make_backend()
        await reopened.initialize()
        try:
            assert (await reopened.get_onboarding_state()).completed is True
            assert (await reopened.get_user_concept("c1")).status == "explored"
            assert [e.id for e in await reopened.get_journal_entries()] == [entry.id]
        finally:
            reopened.close()

    @pytest.mark.asyncio
    async def test_operation_before_initialize_fails(self, make_backend):
        fresh = make_backend()
        assert not fresh.is_initialized
        with pytest.raises(StorageUnavailableError):
            await fresh.get_setting("theme")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    @pytest.mark.asyncio
    async def test_missing_setting_is_none(self, backend):
        assert await backend.get_setting("theme") is None

    @pytest.mark.asyncio
    async def test_set_overwrites(self, backend):
        await backend.set_setting("theme", "dark")
        await backend.set_setting("theme", "light")
        assert await backend.get_setting("theme") == "light"

    @pytest.mark.asyncio
    async def test_empty_string_value_is_kept(self, backend):
        await backend.set_setting("nickname", "")
        assert await backend.get_setting("nickname") == ""

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, backend):
        await backend.set_setting("theme", "dark")
        await backend.delete_setting("theme")
        await backend.delete_setting("theme")
        assert await backend.get_setting("theme") is None

    @pytest.mark.asyncio
    async def test_bool_settings(self, backend):
        assert await backend.get_bool_setting("sound") is False
        assert await backend.get_bool_setting("sound", default=True) is True

        await backend.set_bool_setting("sound", True)
        assert await backend.get_setting("sound") == "true"
        assert await backend.get_bool_setting("sound") is True

        await backend.set_setting("sound", "1")
        assert await backend.get_bool_setting("sound") is True
        await backend.set_setting("sound", "yes")
        assert await backend.get_bool_setting("sound", default=True) is False

    @pytest.mark.asyncio
    async def test_number_settings(self, backend):
        assert await backend.get_number_setting("volume", default=5) == 5

        await backend.set_number_setting("volume", 0.75)
        assert await backend.get_setting("volume") == "0.75"
        assert await backend.get_number_setting("volume") == 0.75

        await backend.set_setting("volume", "loud")
        assert await backend.get_number_setting("volume", default=1.0) == 1.0
        await backend.set_setting("volume", "nan")
        assert await backend.get_number_setting("volume", default=1.0) == 1.0

    @pytest.mark.asyncio
    async def test_json_settings(self, backend):
        assert await backend.get_json_setting("filters", default=[]) == []

        await backend.set_json_setting("filters", {"tags": ["a", "b"], "limit": 3})
        assert await backend.get_json_setting("filters") == {"tags": ["a", "b"], "limit": 3}

        await backend.set_setting("filters", "{broken")
        assert await backend.get_json_setting("filters", default={}) == {}


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------


class TestOnboarding:
    @pytest.mark.asyncio
    async def test_default_state(self, backend):
        state = await backend.get_onboarding_state()
        assert state == OnboardingState(
            completed=False, goal=None, comfort_level="direct", first_concept_viewed=False
        )

    @pytest.mark.asyncio
    async def test_partial_updates_do_not_clobber(self, backend):
        await backend.update_onboarding({"goal": "expanding_knowledge"})
        await backend.update_onboarding({"completed": True})

        state = await backend.get_onboarding_state()
        assert state.completed is True
        assert state.goal == "expanding_knowledge"
        assert state.comfort_level == "direct"
        assert state.first_concept_viewed is False

    @pytest.mark.asyncio
    async def test_update_returns_merged_state(self, backend):
        await backend.update_onboarding({"comfort_level": "clinical"})
        state = await backend.update_onboarding(OnboardingUpdate(first_concept_viewed=True))
        assert state.comfort_level == "clinical"
        assert state.first_concept_viewed is True

    @pytest.mark.asyncio
    async def test_camel_case_keys_accepted(self, backend):
        await backend.update_onboarding({"firstConceptViewed": True, "comfortLevel": "balanced"})
        state = await backend.get_onboarding_state()
        assert state.first_concept_viewed is True
        assert state.comfort_level == "balanced"

    @pytest.mark.asyncio
    async def test_goal_can_be_cleared(self, backend):
        await backend.update_onboarding({"goal": "self_discovery"})
        await backend.update_onboarding({"goal": None})
        assert (await backend.get_onboarding_state()).goal is None

    @pytest.mark.asyncio
    async def test_invalid_value_rejected_before_write(self, backend):
        await backend.update_onboarding({"completed": True})
        with pytest.raises(ValueError):
            await backend.update_onboarding({"goal": "fluency", "completed": False})
        with pytest.raises(ValueError):
            await backend.update_onboarding({"unknownField": 1})

        state = await backend.get_onboarding_state()
        assert state.completed is True
        assert state.goal is None

    @pytest.mark.asyncio
    async def test_rapid_updates_each_merge_fully(self, backend):
        await asyncio.gather(
            backend.update_onboarding({"completed": True}),
            backend.update_onboarding({"goal": "partner_communication"}),
            backend.update_onboarding({"comfort_level": "clinical"}),
            backend.update_onboarding({"first_concept_viewed": True}),
        )
        state = await backend.get_onboarding_state()
        assert state == OnboardingState(
            completed=True,
            goal="partner_communication",
            comfort_level="clinical",
            first_concept_viewed=True,
        )


# ---------------------------------------------------------------------------
# Concepts
# ---------------------------------------------------------------------------


class TestConcepts:
    @pytest.mark.asyncio
    async def test_unknown_concept_is_none(self, backend):
        assert await backend.get_user_concept("nope") is None

    @pytest.mark.asyncio
    async def test_update_status_creates_row(self, backend):
        concept = await backend.update_concept_status("c1", "curious")
        assert concept.concept_id == "c1"
        assert concept.status == "curious"
        assert concept.explored_at is None
        assert await backend.get_user_concept("c1") == concept

    @pytest.mark.asyncio
    async def test_update_status_does_not_touch_explored_at(self, backend):
        explored = await backend.mark_concept_explored("c1")
        changed = await backend.update_concept_status("c1", "not_for_me")
        assert changed.status == "not_for_me"
        assert changed.explored_at == explored.explored_at

    @pytest.mark.asyncio
    async def test_first_explore_sets_explored_at_once(self, backend):
        first = await backend.update_concept_status("c1", "explored")
        assert first.explored_at is not None

        for status in ("resonates", "unexplored", "explored", "curious", "explored"):
            concept = await backend.update_concept_status("c1", status)
            assert concept.explored_at == first.explored_at
        again = await backend.mark_concept_explored("c1")
        assert again.explored_at == first.explored_at

    @pytest.mark.asyncio
    async def test_mark_explored_creates_row(self, backend):
        concept = await backend.mark_concept_explored("c1")
        assert concept.status == "explored"
        assert concept.explored_at == concept.updated_at

    @pytest.mark.asyncio
    async def test_mark_explored_from_other_status_sets_status(self, backend):
        await backend.update_concept_status("c1", "resonates")
        concept = await backend.mark_concept_explored("c1")
        assert concept.status == "explored"
        assert concept.explored_at is not None

    @pytest.mark.asyncio
    async def test_mark_explored_again_bumps_updated_at_only(self, backend):
        first = await backend.mark_concept_explored("c1")
        second = await backend.mark_concept_explored("c1")
        assert second.explored_at == first.explored_at
        assert second.updated_at > first.updated_at

    @pytest.mark.asyncio
    async def test_updated_at_strictly_increases(self, backend):
        stamps = []
        for status in ("curious", "explored", "resonates", "resonates"):
            stamps.append((await backend.update_concept_status("c1", status)).updated_at)
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)

    @pytest.mark.asyncio
    async def test_invalid_status_rejected_before_write(self, backend):
        with pytest.raises(ValueError):
            await backend.update_concept_status("c1", "bogus")
        assert await backend.get_user_concept("c1") is None

    @pytest.mark.asyncio
    async def test_concepts_by_status(self, backend):
        for cid, status in [("b", "explored"), ("a", "curious"), ("c", "explored"), ("a", "explored")]:
            await backend.update_concept_status(cid, status)
        await backend.update_concept_status("b", "resonates")

        assert [c.concept_id for c in await backend.get_concepts_by_status("explored")] == ["a", "c"]
        assert [c.concept_id for c in await backend.get_concepts_by_status("resonates")] == ["b"]
        assert await backend.get_concepts_by_status("not_for_me") == []
        with pytest.raises(ValueError):
            await backend.get_concepts_by_status("bogus")

    @pytest.mark.asyncio
    async def test_all_concepts_in_first_insertion_order(self, backend):
        for cid in ("b", "a", "c"):
            await backend.update_concept_status(cid, "curious")
        await backend.update_concept_status("a", "resonates")
        await backend.mark_concept_explored("b")

        concepts = await backend.get_all_user_concepts()
        assert [c.concept_id for c in concepts] == ["b", "a", "c"]
        assert [c.status for c in concepts] == ["explored", "resonates", "curious"]

    @pytest.mark.asyncio
    async def test_concurrent_creates_all_land(self, backend):
        ids = [f"c{i}" for i in range(10)]
        await asyncio.gather(*(backend.update_concept_status(cid, "curious") for cid in ids))
        stored = {c.concept_id for c in await backend.get_all_user_concepts()}
        assert stored == set(ids)


# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------


class TestCounts:
    @pytest.mark.asyncio
    async def test_empty_counts(self, backend):
        assert await backend.get_explored_count() == 0
        assert await backend.get_resonates_count() == 0

    @pytest.mark.asyncio
    async def test_counts_track_live_statuses(self, backend):
        steps = [
            ("a", "explored"),
            ("b", "explored"),
            ("c", "resonates"),
            ("a", "resonates"),
            ("d", "curious"),
            ("b", "not_for_me"),
            ("d", "explored"),
        ]
        for cid, status in steps:
            await backend.update_concept_status(cid, status)
            concepts = await backend.get_all_user_concepts()
            assert await backend.get_explored_count() == sum(c.status == "explored" for c in concepts)
            assert await backend.get_resonates_count() == sum(c.status == "resonates" for c in concepts)

        assert await backend.get_explored_count() == 1
        assert await backend.get_resonates_count() == 2


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


class TestJournal:
    @pytest.mark.asyncio
    async def test_create_then_list_puts_new_entry_first(self, backend):
        await backend.create_journal_entry(None, "older")
        entry = await backend.create_journal_entry(None, "newer")

        entries = await backend.get_journal_entries()
        assert entries[0] == entry
        assert entry.created_at == entry.updated_at
        assert [e.content for e in entries] == ["newer", "older"]

    @pytest.mark.asyncio
    async def test_ids_come_from_factory(self, backend):
        first = await backend.create_journal_entry(None, "one")
        second = await backend.create_journal_entry(None, "two")
        assert (first.id, second.id) == ("entry-1", "entry-2")

    @pytest.mark.asyncio
    async def test_dangling_concept_reference_rejected(self, backend):
        with pytest.raises(DanglingReferenceError) as exc_info:
            await backend.create_journal_entry("concept-42", "note")
        assert exc_info.value.value == "concept-42"
        assert await backend.get_journal_entries() == []

        await backend.update_concept_status("concept-42", "curious")
        entry = await backend.create_journal_entry("concept-42", "note")
        assert entry.concept_id == "concept-42"

    @pytest.mark.asyncio
    async def test_reference_resolves_after_exploring_status(self, backend):
        with pytest.raises(DanglingReferenceError):
            await backend.create_journal_entry("concept-42", "note")

        await backend.update_concept_status("concept-42", "exploring")
        entry = await backend.create_journal_entry("concept-42", "note")

        assert entry.concept_id == "concept-42"
        assert (await backend.get_user_concept("concept-42")).explored_at is None

    @pytest.mark.asyncio
    async def test_get_single_entry(self, backend):
        entry = await backend.create_journal_entry(None, "note")
        assert await backend.get_journal_entry(entry.id) == entry
        assert await backend.get_journal_entry("missing") is None

        await backend.delete_journal_entry(entry.id)
        assert await backend.get_journal_entry(entry.id) is None

    @pytest.mark.asyncio
    async def test_reused_id_rejected_without_overwrite(self, make_backend):
        b = make_backend(id_factory=lambda: "same-id")
        await b.initialize()
        try:
            first = await b.create_journal_entry(None, "first")
            with pytest.raises(StorageUnavailableError):
                await b.create_journal_entry(None, "second")
            assert await b.get_journal_entries() == [first]
        finally:
            b.close()

    @pytest.mark.asyncio
    async def test_update_missing_entry_raises_not_found(self, backend):
        with pytest.raises(NotFoundError) as exc_info:
            await backend.update_journal_entry("missing", "text")
        assert exc_info.value.id == "missing"

    @pytest.mark.asyncio
    async def test_update_replaces_content_and_keeps_created_at(self, backend):
        entry = await backend.create_journal_entry(None, "draft")
        updated = await backend.update_journal_entry(entry.id, "final")

        assert updated.content == "final"
        assert updated.created_at == entry.created_at
        assert updated.updated_at > entry.updated_at
        assert (await backend.get_journal_entries())[0] == updated

    @pytest.mark.asyncio
    async def test_update_does_not_reorder(self, backend):
        old = await backend.create_journal_entry(None, "old")
        await backend.create_journal_entry(None, "new")
        await backend.update_journal_entry(old.id, "old, edited")
        assert [e.content for e in await backend.get_journal_entries()] == ["new", "old, edited"]

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, backend):
        entry = await backend.create_journal_entry(None, "bye")
        await backend.delete_journal_entry(entry.id)
        await backend.delete_journal_entry(entry.id)
        await backend.delete_journal_entry("never-existed")
        assert await backend.get_journal_entries() == []

    @pytest.mark.asyncio
    async def test_deleting_entry_keeps_concept(self, backend):
        await backend.update_concept_status("c1", "curious")
        entry = await backend.create_journal_entry("c1", "note")
        await backend.delete_journal_entry(entry.id)
        assert await backend.get_user_concept("c1") is not None

    @pytest.mark.asyncio
    async def test_entries_for_concept_filtered_newest_first(self, backend):
        await backend.update_concept_status("c1", "curious")
        await backend.update_concept_status("c2", "curious")
        a = await backend.create_journal_entry("c1", "a")
        await backend.create_journal_entry("c2", "b")
        await backend.create_journal_entry(None, "general")
        c = await backend.create_journal_entry("c1", "c")

        assert await backend.get_journal_entries_for_concept("c1") == [c, a]
        assert await backend.get_journal_entries_for_concept("unknown") == []

    @pytest.mark.asyncio
    async def test_ordering_with_frozen_wall_clock(self, make_backend, frozen_clock):
        b = make_backend(clock=frozen_clock)
        await b.initialize()
        try:
            for text in ("one", "two", "three"):
                await b.create_journal_entry(None, text)
            assert [e.content for e in await b.get_journal_entries()] == ["three", "two", "one"]
        finally:
            b.close()


# ---------------------------------------------------------------------------
# Pathways
# ---------------------------------------------------------------------------


class TestPathways:
    @pytest.mark.asyncio
    async def test_unknown_pathway_is_none(self, backend):
        assert await backend.get_pathway_progress("p1") is None

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, backend):
        first = await backend.start_pathway("p1")
        second = await backend.start_pathway("p1")
        assert first == second
        assert first.concepts_completed == []
        assert first.completed_at is None

    @pytest.mark.asyncio
    async def test_progress_auto_starts_and_dedupes(self, backend):
        await backend.update_pathway_progress("p1", "c1", 3)
        await backend.update_pathway_progress("p1", "c2", 3)
        progress = await backend.update_pathway_progress("p1", "c1", 3)

        assert progress.concepts_completed == ["c1", "c2"]
        assert progress.completed_at is None
        assert await backend.get_pathway_progress("p1") == progress

    @pytest.mark.asyncio
    async def test_completion_is_set_once(self, backend):
        await backend.update_pathway_progress("p1", "c1", 2)
        done = await backend.update_pathway_progress("p1", "c2", 2)
        assert done.completed_at is not None

        later = await backend.update_pathway_progress("p1", "c3", 5)
        assert later.completed_at == done.completed_at
        assert later.concepts_completed == ["c1", "c2", "c3"]

    @pytest.mark.asyncio
    async def test_all_progress_most_recent_first(self, backend):
        await backend.start_pathway("p1")
        await backend.start_pathway("p2")
        await backend.update_pathway_progress("p3", "c1", 4)
        await backend.update_pathway_progress("p1", "c1", 4)

        assert [p.pathway_id for p in await backend.get_all_pathway_progress()] == ["p3", "p2", "p1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total", [0, -1, True])
    async def test_invalid_total_rejected(self, backend, total):
        with pytest.raises(ValueError):
            await backend.update_pathway_progress("p1", "c1", total)
        assert await backend.get_pathway_progress("p1") is None


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------


class TestClearAllData:
    @pytest.mark.asyncio
    async def test_clear_restores_fresh_state(self, backend):
        fresh = await _snapshot(backend)

        await backend.set_setting("theme", "dark")
        await backend.update_onboarding({"completed": True, "goal": "self_discovery"})
        await backend.mark_concept_explored("c1")
        await backend.update_concept_status("c2", "resonates")
        await backend.create_journal_entry("c1", "note")
        await backend.create_journal_entry(None, "general")
        await backend.update_pathway_progress("p1", "c1", 1)

        await backend.clear_all_data()

        assert await _snapshot(backend) == fresh

    @pytest.mark.asyncio
    async def test_clear_on_empty_store(self, backend):
        await backend.clear_all_data()
        assert await backend.get_all_user_concepts() == []

    @pytest.mark.asyncio
    async def test_store_usable_after_clear(self, backend):
        await backend.update_concept_status("c1", "curious")
        await backend.clear_all_data()

        with pytest.raises(DanglingReferenceError):
            await backend.create_journal_entry("c1", "note")
        await backend.update_concept_status("c1", "explored")
        assert await backend.get_explored_count() == 1
