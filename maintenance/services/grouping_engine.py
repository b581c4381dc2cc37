"""
Guardian Shield - Equipment Grouping Engine.

Drives one base-protocol consolidation session:

    select_reference -> find_similar -> (toggle / manual add) ->
    generate_steps -> (edit steps, images) -> save

Every method validates state and input before mutating the session, so a
rejected call leaves the buffer exactly as it was. Suggestion failures
propagate as SuggestionServiceError and store failures as
PersistenceError; in both cases the working state is preserved.
"""

import logging
from typing import Any

from maintenance.fsm.grouping_workflow import GroupingSession, WorkflowStep
from maintenance.schemas import (
    EquipmentRecord,
    ProtocolRecord,
    StepDraft,
    sanitize_step,
    step_to_draft,
)
from maintenance.services import step_edits
from maintenance.services.catalog_store import CatalogStore
from maintenance.services.protocol_key_resolver import (
    base_triple,
    classify,
    is_unlinked,
    protocol_id_for_triple,
)
from maintenance.services.session_guard import BusySlot
from maintenance.services.suggestion_service import SuggestionService
from shared.config import UNLINKED_OVERRIDE
from shared.errors import (
    GenerationInProgressError,
    MaintenanceError,
    NotFoundError,
    PersistenceError,
    StaleResponseError,
    SuggestionServiceError,
    WorkflowStateError,
    WorkflowValidationError,
)

logger = logging.getLogger(__name__)

CANDIDATE_STEPS = (WorkflowStep.SIMILAR_FOUND, WorkflowStep.STEPS_GENERATED)


class EquipmentGroupingEngine:
    """
    Stateful driver of one grouping session.

    The engine owns its GroupingSession; presentation layers read it via
    state() and never mutate it directly.
    """

    def __init__(
        self,
        store: CatalogStore,
        suggestions: SuggestionService,
        session: GroupingSession | None = None,
        session_id: str | None = None,
    ):
        self.store = store
        self.suggestions = suggestions
        self.session = session or GroupingSession()
        self.session_id = session_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def ensure_steps_editable(self) -> None:
        """Raise WorkflowStateError unless the draft steps can be edited."""
        self._require_step(WorkflowStep.STEPS_GENERATED)

    def _log_extra(self, **extra: Any) -> dict[str, Any]:
        return {"session_id": self.session_id, "workflow_step": self.session.step.value, **extra}

    def _require_step(self, *allowed: WorkflowStep) -> None:
        if self.session.step not in allowed:
            raise WorkflowStateError(
                f"Operación no permitida en el estado actual ({self.session.step.value}).",
                context={
                    "current": self.session.step.value,
                    "allowed": [step.value for step in allowed],
                },
            )

    async def _load_catalog(self) -> tuple[list[EquipmentRecord], list]:
        equipment = await self.store.list_equipment()
        protocols = await self.store.list_protocols()
        return equipment, protocols

    def state(self) -> dict[str, Any]:
        return self.session.snapshot()

    # ------------------------------------------------------------------
    # Reference and candidates
    # ------------------------------------------------------------------

    async def select_reference(self, equipment_id: str) -> EquipmentRecord:
        """
        Start a new cycle around an equipment item that has no protocol.

        Clears all previous session data, including in-flight requests.
        """
        if not equipment_id:
            raise WorkflowValidationError("Debe seleccionar un equipo de referencia.")

        equipment, protocols = await self._load_catalog()
        partition = classify(equipment, protocols)

        reference = next((eq for eq in partition.without_protocol if eq.id == equipment_id), None)
        if reference is None:
            if any(eq.id == equipment_id for eq in partition.with_protocol):
                raise WorkflowValidationError(
                    "El equipo ya tiene un protocolo asignado.",
                    context={"equipment_id": equipment_id},
                )
            raise NotFoundError("Equipo no encontrado.", context={"equipment_id": equipment_id})

        self.session.reset()
        self.session.reference = reference
        self.session.transition_to(WorkflowStep.REFERENCE_SELECTED)

        logger.info(
            f"Reference selected: {reference.name}",
            extra=self._log_extra(equipment_id=reference.id),
        )
        return reference

    async def find_similar(self) -> list[EquipmentRecord]:
        """
        Ask the suggestion service for equipment that can share the protocol.

        The pool is every other equipment item without protocol. The reference
        is always first in the result and every candidate starts confirmed.
        """
        self._require_step(WorkflowStep.REFERENCE_SELECTED, WorkflowStep.SIMILAR_FOUND)
        reference = self.session.reference

        guard = BusySlot(self.session, "similar")
        async with guard:
            equipment, protocols = await self._load_catalog()
            pool = [
                eq
                for eq in classify(equipment, protocols).without_protocol
                if eq.id != reference.id
            ]
            try:
                returned_ids = await self.suggestions.find_similar_equipment(reference, pool)
            except MaintenanceError:
                raise
            except Exception as e:
                raise SuggestionServiceError(
                    "No se pudieron obtener equipos similares. Intente nuevamente.",
                    context={"error": str(e)},
                ) from e
        guard.ensure_current()

        pool_by_id = {eq.id: eq for eq in pool}
        similar = [reference]
        seen = {reference.id}
        for equipment_id in returned_ids or []:
            candidate = pool_by_id.get(equipment_id)
            if candidate is not None and equipment_id not in seen:
                similar.append(candidate)
                seen.add(equipment_id)

        self.session.similar = similar
        self.session.confirmed = list(similar)
        self.session.manual_selection = []
        self.session.transition_to(WorkflowStep.SIMILAR_FOUND)

        logger.info(
            f"Similar equipment found: {len(similar) - 1} candidates "
            f"(service returned {len(returned_ids or [])})",
            extra=self._log_extra(equipment_id=reference.id),
        )
        return list(similar)

    def toggle_candidate(self, equipment_id: str, checked: bool | None = None) -> bool:
        """
        Include or exclude a similar-list item from the confirmed group.

        Returns the new membership. The similar list itself never changes.
        """
        self._require_step(*CANDIDATE_STEPS)

        similar_ids = self.session.similar_ids()
        if equipment_id not in similar_ids:
            raise WorkflowValidationError(
                "El equipo no está en la lista de similares.",
                context={"equipment_id": equipment_id},
            )

        confirmed_ids = set(self.session.confirmed_ids())
        include = (equipment_id not in confirmed_ids) if checked is None else checked
        if include:
            confirmed_ids.add(equipment_id)
        else:
            confirmed_ids.discard(equipment_id)

        self.session.confirmed = [eq for eq in self.session.similar if eq.id in confirmed_ids]
        return include

    async def manual_add_options(self) -> list[EquipmentRecord]:
        """Equipment from the full catalog that is not already in the similar list."""
        self._require_step(*CANDIDATE_STEPS)
        similar_ids = set(self.session.similar_ids())
        equipment = await self.store.list_equipment()
        return [eq for eq in equipment if eq.id not in similar_ids]

    async def toggle_manual_selection(self, equipment_id: str) -> bool:
        """Add or remove an equipment id from the pending manual selection."""
        self._require_step(*CANDIDATE_STEPS)

        if equipment_id in self.session.manual_selection:
            self.session.manual_selection.remove(equipment_id)
            return False

        options = {eq.id for eq in await self.manual_add_options()}
        if equipment_id not in options:
            raise WorkflowValidationError(
                "El equipo no está disponible para agregar manualmente.",
                context={"equipment_id": equipment_id},
            )
        self.session.manual_selection.append(equipment_id)
        return True

    async def confirm_manual_additions(self) -> list[EquipmentRecord]:
        """
        Append the manual selection to both the similar and confirmed lists.

        The selection is cleared afterwards. An empty selection is a no-op.
        """
        self._require_step(*CANDIDATE_STEPS)
        if not self.session.manual_selection:
            return []

        equipment_by_id = {eq.id: eq for eq in await self.store.list_equipment()}
        similar_ids = set(self.session.similar_ids())

        added: list[EquipmentRecord] = []
        for equipment_id in self.session.manual_selection:
            item = equipment_by_id.get(equipment_id)
            if item is None or equipment_id in similar_ids:
                continue
            added.append(item)
            similar_ids.add(equipment_id)

        self.session.similar.extend(added)
        self.session.confirmed.extend(added)
        self.session.manual_selection = []

        logger.info(
            f"Manual additions confirmed: {len(added)}",
            extra=self._log_extra(),
        )
        return added

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def generate_steps(self) -> list[StepDraft]:
        """Generate draft steps seeded from the first confirmed equipment."""
        self._require_step(*CANDIDATE_STEPS)
        if not self.session.confirmed:
            raise WorkflowValidationError("Debe confirmar al menos un equipo para generar el protocolo.")

        seed = self.session.confirmed[0]

        guard = BusySlot(self.session, "steps")
        async with guard:
            try:
                drafts = await self.suggestions.generate_protocol_steps(seed.descriptor())
            except MaintenanceError:
                raise
            except Exception as e:
                raise SuggestionServiceError(
                    "Ocurrió un error al generar el protocolo.",
                    context={"error": str(e)},
                ) from e
        guard.ensure_current()

        self.session.steps = [StepDraft(**draft) for draft in drafts]
        self.session.transition_to(WorkflowStep.STEPS_GENERATED)

        logger.info(
            f"Steps generated: {len(self.session.steps)}",
            extra=self._log_extra(equipment_id=seed.id),
        )
        return self.session.steps

    def edit_step(self, index: int, step: str | None = None, priority: str | None = None) -> StepDraft:
        self._require_step(WorkflowStep.STEPS_GENERATED)
        return step_edits.edit_step(self.session.steps, index, step=step, priority=priority)

    def delete_step(self, index: int) -> StepDraft:
        self._require_step(WorkflowStep.STEPS_GENERATED)
        if self.session.generating_image_index is not None:
            raise GenerationInProgressError("No se puede eliminar un paso mientras se genera una imagen.")
        return step_edits.delete_step(self.session.steps, index)

    def set_step_image(self, index: int, image_ref: str) -> StepDraft:
        self._require_step(WorkflowStep.STEPS_GENERATED)
        return step_edits.set_step_image(self.session.steps, index, image_ref)

    def remove_step_image(self, index: int) -> StepDraft:
        self._require_step(WorkflowStep.STEPS_GENERATED)
        return step_edits.remove_step_image(self.session.steps, index)

    async def generate_step_image(self, index: int) -> StepDraft:
        """Illustrate one step. Only one generation may run per session."""
        self._require_step(WorkflowStep.STEPS_GENERATED)
        draft = step_edits.check_index(self.session.steps, index)
        step_text = draft.get("step", "")

        seed = self.session.confirmed[0] if self.session.confirmed else self.session.reference

        guard = BusySlot(self.session, "step_image", image_index=index)
        async with guard:
            try:
                image_ref = await self.suggestions.generate_step_image(seed.descriptor(), step_text)
            except MaintenanceError:
                raise
            except Exception as e:
                raise SuggestionServiceError(
                    "No se pudo generar la imagen para el paso.",
                    context={"error": str(e)},
                ) from e
        guard.ensure_current()

        if not image_ref:
            raise SuggestionServiceError("La generación de imagen no devolvió una imagen válida.")

        # The step list may have been edited while waiting
        if index >= len(self.session.steps) or self.session.steps[index].get("step") != step_text:
            raise StaleResponseError(
                "El paso cambió mientras se generaba la imagen; la imagen fue descartada.",
                context={"index": index},
            )

        return step_edits.set_step_image(self.session.steps, index, image_ref)

    # ------------------------------------------------------------------
    # Save / reset
    # ------------------------------------------------------------------

    async def save(self) -> ProtocolRecord:
        """
        Persist the draft steps as the protocol of confirmed[0]'s triple.

        Updates the protocol already stored for that triple (whatever its id)
        or creates one under the slug id. Nothing is written when there are no
        steps, no confirmed equipment, or the slug belongs to another triple.
        """
        self._require_step(WorkflowStep.STEPS_GENERATED, WorkflowStep.SAVED)

        if not self.session.steps:
            raise WorkflowValidationError("El protocolo debe tener al menos un paso.")
        if not self.session.confirmed:
            raise WorkflowValidationError("Debe confirmar al menos un equipo para guardar el protocolo.")
        if self.session.is_busy:
            raise GenerationInProgressError("Espere a que termine la generación en curso antes de guardar.")

        sanitized = [sanitize_step(draft) for draft in self.session.steps]
        head = self.session.confirmed[0]
        type_, brand, model = base_triple(head)
        protocol_id = protocol_id_for_triple((type_, brand, model), await self.store.list_protocols())

        protocol = await self.store.upsert_protocol(
            protocol_id,
            {
                "type": type_,
                "brand": brand,
                "model": model,
                "steps": [step.model_dump() for step in sanitized],
            },
        )

        await self._relink_confirmed((type_, brand, model), protocol_id)

        self.session.steps = [step_to_draft(step) for step in sanitized]
        self.session.saved_protocol_id = protocol.id
        self.session.transition_to(WorkflowStep.SAVED)

        logger.info(
            f"Protocol saved: {protocol.id} ({len(protocol.steps)} steps, "
            f"{len(self.session.confirmed)} confirmed equipment)",
            extra=self._log_extra(protocol_id=protocol.id),
        )
        return protocol

    async def _relink_confirmed(self, triple: tuple[str, str, str], protocol_id: str) -> None:
        """
        Clear explicit unlinks on confirmed equipment matching the saved triple.

        Confirmed equipment with a different triple is left alone; linkage
        stays derived from the classification fields.
        """
        for item in self.session.confirmed:
            if not is_unlinked(item) or base_triple(item) != triple:
                continue

            fields: dict[str, Any] = {}
            if item.protocol_override == UNLINKED_OVERRIDE:
                fields["protocol_override"] = None
            if item.type != triple[0]:
                fields["type"] = triple[0]

            try:
                await self.store.update_equipment(item.id, fields)
            except (PersistenceError, NotFoundError) as e:
                logger.warning(
                    f"Could not relink equipment after save: {e}",
                    extra=self._log_extra(equipment_id=item.id, protocol_id=protocol_id),
                )

    def reset(self) -> None:
        self.session.reset()
        logger.info("Grouping session reset", extra=self._log_extra())
