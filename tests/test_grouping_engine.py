"""
Tests for the base protocol consolidation workflow.

Covers the full reference -> similar -> steps -> save cycle on the sample
catalog, plus the rejection paths that must leave the session untouched.

Run with: pytest tests/test_grouping_engine.py -v
"""

import asyncio

import pytest

from maintenance.fsm.grouping_workflow import WorkflowStep
from maintenance.schemas import ProtocolRecord, StepDraft
from maintenance.services.protocol_key_resolver import classify
from shared.errors import (
    GenerationInProgressError,
    NotFoundError,
    PersistenceError,
    StaleResponseError,
    SuggestionServiceError,
    WorkflowStateError,
    WorkflowValidationError,
)


async def _settle():
    """Let pending tasks run until they block."""
    for _ in range(5):
        await asyncio.sleep(0)


async def _to_steps(engine, reference_id="eq-ref"):
    await engine.select_reference(reference_id)
    await engine.find_similar()
    await engine.generate_steps()


# =============================================================================
# TEST SUITE 1: Full cycle
# =============================================================================


class TestFullCycle:
    async def test_end_to_end_creates_protocol_for_reference_triple(self, engine, store, suggestions):
        suggestions.similar_ids = ["eq-sim", "unknown-id", "eq-linked", "eq-sim"]

        await engine.select_reference("eq-ref")
        similar = await engine.find_similar()

        assert [eq.id for eq in similar] == ["eq-ref", "eq-sim"]
        assert engine.session.confirmed_ids() == ["eq-ref", "eq-sim"]

        steps = await engine.generate_steps()
        assert [s["step"] for s in steps] == ["Limpiar lente", "Verificar alimentación"]

        engine.edit_step(0, step="Limpiar domo y lente", priority="alta")
        protocol = await engine.save()

        assert protocol.id == "domo-ptz-hikvision-ds-2"
        assert protocol.triple == ("Domo PTZ", "Hikvision", "DS-2")
        assert protocol.steps[0].step == "Limpiar domo y lente"
        assert protocol.steps[0].priority == "alta"
        assert engine.session.step == WorkflowStep.SAVED
        assert engine.session.saved_protocol_id == protocol.id

        partition = classify(await store.list_equipment(), await store.list_protocols())
        assert {"eq-ref", "eq-sim"} <= partition.with_ids()
        assert "eq-bullet" in partition.without_ids()

    async def test_similarity_pool_excludes_reference_and_linked(self, engine, suggestions):
        await engine.select_reference("eq-ref")
        await engine.find_similar()

        kind, pool_ids = suggestions.calls[0]
        assert kind == "similar"
        assert set(pool_ids) == {"eq-sim", "eq-bullet", "eq-unlinked"}

    async def test_steps_seeded_from_first_confirmed(self, engine, suggestions):
        suggestions.similar_ids = ["eq-sim"]
        await engine.select_reference("eq-ref")
        await engine.find_similar()

        engine.toggle_candidate("eq-ref")
        await engine.generate_steps()

        kind, descriptor = suggestions.calls[-1]
        assert kind == "steps"
        assert descriptor["id"] == "eq-sim"

    async def test_save_is_idempotent(self, engine, store):
        await _to_steps(engine)

        first = await engine.save()
        second = await engine.save()

        assert first == second
        assert list(store.protocols) == ["lector-zkteco-k40", "domo-ptz-hikvision-ds-2"]
        assert engine.session.step == WorkflowStep.SAVED

    async def test_save_overwrites_existing_protocol_record(self, engine, store, suggestions):
        suggestions.steps = [StepDraft(step="Nuevo paso", priority="media", percentage=100)]

        await _to_steps(engine, "eq-unlinked")
        protocol = await engine.save()

        assert protocol.id == "lector-zkteco-k40"
        assert [s.step for s in protocol.steps] == ["Nuevo paso"]
        assert len(store.protocols) == 1

    async def test_save_updates_protocol_stored_under_another_id(self, engine, store):
        legacy = store.protocols.pop("lector-zkteco-k40").model_copy(update={"id": "legacy-id"})
        store.protocols[legacy.id] = legacy

        await _to_steps(engine, "eq-unlinked")
        protocol = await engine.save()

        assert protocol.id == "legacy-id"
        same_triple = [p.id for p in store.protocols.values() if p.triple == ("Lector", "ZKTeco", "K40")]
        assert same_triple == ["legacy-id"]
        assert "eq-unlinked" in classify(await store.list_equipment(), await store.list_protocols()).with_ids()

    async def test_save_rejects_slug_owned_by_another_triple(self, engine, store):
        store.protocols["domo-ptz-hikvision-ds-2"] = ProtocolRecord(
            id="domo-ptz-hikvision-ds-2",
            type="Domo PTZ",
            brand="Hikvision",
            model="DS-2",
            steps=[{"step": "Revisar"}],
        )
        store.equipment["eq-lower"] = store.equipment["eq-ref"].model_copy(
            update={"id": "eq-lower", "type": "domo ptz"}
        )

        await _to_steps(engine, "eq-lower")
        with pytest.raises(WorkflowValidationError):
            await engine.save()

        assert store.upserts == []
        assert store.protocols["domo-ptz-hikvision-ds-2"].triple == ("Domo PTZ", "Hikvision", "DS-2")
        assert engine.session.step == WorkflowStep.STEPS_GENERATED
        partition = classify(await store.list_equipment(), await store.list_protocols())
        assert {"eq-ref", "eq-sim"} <= partition.with_ids()

    async def test_save_relinks_explicitly_unlinked_item_with_same_triple(self, engine, store):
        await _to_steps(engine, "eq-unlinked")
        await engine.save()

        assert store.equipment["eq-unlinked"].protocol_override is None
        partition = classify(await store.list_equipment(), await store.list_protocols())
        assert "eq-unlinked" in partition.with_ids()


# =============================================================================
# TEST SUITE 2: Reference selection
# =============================================================================


class TestSelectReference:
    async def test_linked_equipment_rejected(self, engine):
        with pytest.raises(WorkflowValidationError):
            await engine.select_reference("eq-linked")
        assert engine.session.step == WorkflowStep.IDLE

    async def test_unknown_equipment(self, engine):
        with pytest.raises(NotFoundError):
            await engine.select_reference("missing")

    async def test_new_reference_clears_previous_cycle(self, engine):
        await _to_steps(engine)

        await engine.select_reference("eq-bullet")

        assert engine.session.step == WorkflowStep.REFERENCE_SELECTED
        assert engine.session.reference.id == "eq-bullet"
        assert engine.session.similar == []
        assert engine.session.steps == []


# =============================================================================
# TEST SUITE 3: Candidates and manual additions
# =============================================================================


class TestCandidates:
    async def test_toggle_keeps_similar_order(self, engine):
        await engine.select_reference("eq-ref")
        await engine.find_similar()
        similar_before = engine.session.similar_ids()

        assert engine.toggle_candidate("eq-sim") is False
        assert engine.toggle_candidate("eq-sim") is True

        assert engine.session.similar_ids() == similar_before
        assert engine.session.confirmed_ids() == [
            eq_id for eq_id in similar_before if eq_id in engine.session.confirmed_ids()
        ]

    async def test_toggle_unknown_candidate_rejected(self, engine):
        await engine.select_reference("eq-ref")
        await engine.find_similar()

        with pytest.raises(WorkflowValidationError):
            engine.toggle_candidate("eq-linked")

    async def test_toggle_before_similar_rejected(self, engine):
        await engine.select_reference("eq-ref")
        with pytest.raises(WorkflowStateError):
            engine.toggle_candidate("eq-ref")

    async def test_manual_additions(self, engine, suggestions):
        suggestions.similar_ids = []
        await engine.select_reference("eq-ref")
        await engine.find_similar()

        options = [eq.id for eq in await engine.manual_add_options()]
        assert "eq-ref" not in options
        assert "eq-linked" in options

        assert await engine.toggle_manual_selection("eq-bullet") is True
        assert await engine.toggle_manual_selection("eq-sim") is True
        assert await engine.toggle_manual_selection("eq-sim") is False

        added = await engine.confirm_manual_additions()

        assert [eq.id for eq in added] == ["eq-bullet"]
        assert engine.session.similar_ids() == ["eq-ref", "eq-bullet"]
        assert engine.session.confirmed_ids() == ["eq-ref", "eq-bullet"]
        assert engine.session.manual_selection == []

    async def test_manual_selection_of_candidate_rejected(self, engine):
        await engine.select_reference("eq-ref")
        await engine.find_similar()

        with pytest.raises(WorkflowValidationError):
            await engine.toggle_manual_selection("eq-ref")

    async def test_empty_confirmation_is_noop(self, engine):
        await engine.select_reference("eq-ref")
        await engine.find_similar()

        assert await engine.confirm_manual_additions() == []


# =============================================================================
# TEST SUITE 4: Steps and save validation
# =============================================================================


class TestStepsAndSave:
    async def test_generate_requires_confirmed(self, engine, suggestions):
        suggestions.similar_ids = []
        await engine.select_reference("eq-ref")
        await engine.find_similar()
        engine.toggle_candidate("eq-ref")

        with pytest.raises(WorkflowValidationError):
            await engine.generate_steps()
        assert engine.session.step == WorkflowStep.SIMILAR_FOUND

    async def test_save_sanitizes_steps(self, engine, suggestions):
        suggestions.steps = [StepDraft(step="  Revisar cableado ", priority="urgente", percentage=150)]
        await _to_steps(engine)

        protocol = await engine.save()

        step = protocol.steps[0]
        assert step.step == "Revisar cableado"
        assert step.priority == "baja"
        assert step.percentage == 100
        assert step.completion == 0
        assert step.notes == ""
        assert step.image_url == ""

    async def test_save_without_steps_rejected(self, engine, store):
        await _to_steps(engine)
        engine.delete_step(0)
        engine.delete_step(0)

        with pytest.raises(WorkflowValidationError):
            await engine.save()
        assert store.upserts == []

    async def test_save_without_confirmed_rejected(self, engine, store, suggestions):
        suggestions.similar_ids = []
        await _to_steps(engine)
        engine.toggle_candidate("eq-ref")

        with pytest.raises(WorkflowValidationError):
            await engine.save()
        assert store.upserts == []

    async def test_persistence_error_keeps_state(self, engine, store):
        await _to_steps(engine)
        steps_before = [dict(s) for s in engine.session.steps]
        store.fail_writes = True

        with pytest.raises(PersistenceError):
            await engine.save()

        assert engine.session.step == WorkflowStep.STEPS_GENERATED
        assert [dict(s) for s in engine.session.steps] == steps_before

        store.fail_writes = False
        protocol = await engine.save()
        assert protocol.id == "domo-ptz-hikvision-ds-2"

    async def test_edit_rejects_invalid_priority_without_mutation(self, engine):
        await _to_steps(engine)

        with pytest.raises(WorkflowValidationError):
            engine.edit_step(0, step="Otro", priority="urgente")

        assert engine.session.steps[0]["step"] == "Limpiar lente"

    async def test_edit_out_of_range(self, engine):
        await _to_steps(engine)
        with pytest.raises(WorkflowValidationError):
            engine.edit_step(9, step="x")

    async def test_step_image_upload_and_remove(self, engine):
        await _to_steps(engine)

        engine.set_step_image(1, "/images/foto.png")
        assert engine.session.steps[1]["image_url"] == "/images/foto.png"

        engine.remove_step_image(1)
        assert engine.session.steps[1]["image_url"] == ""


# =============================================================================
# TEST SUITE 5: Suggestion failures, busy slot and stale responses
# =============================================================================


class TestAsyncSafety:
    async def test_suggestion_failure_keeps_state(self, engine, suggestions):
        await engine.select_reference("eq-ref")
        suggestions.error = SuggestionServiceError("No se pudieron obtener equipos similares.")

        with pytest.raises(SuggestionServiceError):
            await engine.find_similar()

        assert engine.session.step == WorkflowStep.REFERENCE_SELECTED
        assert not engine.session.is_busy

    async def test_unexpected_failure_wrapped(self, engine, suggestions):
        await engine.select_reference("eq-ref")
        suggestions.error = RuntimeError("boom")

        with pytest.raises(SuggestionServiceError):
            await engine.find_similar()

    async def test_second_request_while_busy_rejected(self, engine, suggestions):
        await engine.select_reference("eq-ref")
        suggestions.gate = asyncio.Event()

        task = asyncio.create_task(engine.find_similar())
        await _settle()

        with pytest.raises(GenerationInProgressError):
            await engine.find_similar()

        suggestions.gate.set()
        await task
        assert engine.session.step == WorkflowStep.SIMILAR_FOUND

    async def test_reset_discards_in_flight_similar(self, engine, suggestions):
        await engine.select_reference("eq-ref")
        suggestions.gate = asyncio.Event()

        task = asyncio.create_task(engine.find_similar())
        await _settle()
        engine.reset()
        suggestions.gate.set()

        with pytest.raises(StaleResponseError):
            await task

        assert engine.session.step == WorkflowStep.IDLE
        assert engine.session.similar == []
        assert not engine.session.is_busy

    async def test_generated_image_attached(self, engine):
        await _to_steps(engine)

        await engine.generate_step_image(0)

        assert engine.session.steps[0]["image_url"] == "/images/generated.png"
        assert engine.session.generating_image_index is None

    async def test_image_generation_blocks_delete_and_save(self, engine, suggestions):
        await _to_steps(engine)
        suggestions.gate = asyncio.Event()

        task = asyncio.create_task(engine.generate_step_image(1))
        await _settle()
        assert engine.session.generating_image_index == 1

        with pytest.raises(GenerationInProgressError):
            engine.delete_step(0)
        with pytest.raises(GenerationInProgressError):
            await engine.save()
        with pytest.raises(GenerationInProgressError):
            await engine.generate_step_image(0)

        suggestions.gate.set()
        await task
        assert engine.session.steps[1]["image_url"] == "/images/generated.png"

    async def test_image_for_edited_step_discarded(self, engine, suggestions):
        await _to_steps(engine)
        suggestions.gate = asyncio.Event()

        task = asyncio.create_task(engine.generate_step_image(0))
        await _settle()
        engine.edit_step(0, step="Texto cambiado")
        suggestions.gate.set()

        with pytest.raises(StaleResponseError):
            await task

        assert engine.session.steps[0].get("image_url", "") == ""
        assert not engine.session.is_busy
