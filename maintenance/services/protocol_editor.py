"""
Guardian Shield - Protocol Editor.

Edits the steps of one protocol in a working buffer. The buffer is a deep
copy: nothing reaches the store until save(), and cancel() simply drops
it. Saving overwrites the protocol's steps, so the change applies to every
equipment item whose classification triple resolves to that protocol.

An editor can be opened from an equipment item (its resolved protocol) or
from a (type, brand, model) triple, in which case the protocol may not
exist yet and save() creates it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

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
    derive_protocol_id,
    find_protocol_for,
    protocol_id_for_triple,
)
from maintenance.services.session_guard import BusySlot
from maintenance.services.suggestion_service import SuggestionService
from shared.config import DEFAULT_STEP_PRIORITY
from shared.errors import (
    GenerationInProgressError,
    MaintenanceError,
    NotFoundError,
    StaleResponseError,
    SuggestionServiceError,
    WorkflowStateError,
    WorkflowValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class EditorSession:
    """Working buffer of one protocol editor."""

    is_open: bool = False
    protocol_id: str | None = None
    protocol_exists: bool = False
    type: str = ""
    brand: str = ""
    model: str = ""
    equipment: EquipmentRecord | None = None
    steps: list[StepDraft] = field(default_factory=list)
    suggested_steps: list[StepDraft] = field(default_factory=list)
    generating_image_index: int | None = None
    pending_request: str | None = None
    epoch: int = 0

    def reset(self) -> None:
        self.is_open = False
        self.protocol_id = None
        self.protocol_exists = False
        self.type = ""
        self.brand = ""
        self.model = ""
        self.equipment = None
        self.steps = []
        self.suggested_steps = []
        self.generating_image_index = None
        self.pending_request = None
        self.epoch += 1

    @property
    def is_busy(self) -> bool:
        return self.pending_request is not None or self.generating_image_index is not None

    def descriptor(self) -> dict[str, str]:
        if self.equipment is not None:
            return self.equipment.descriptor()
        return {
            "name": f"{self.type} {self.brand}".strip(),
            "description": f"Un equipo de tipo '{self.type}', marca '{self.brand}' y modelo '{self.model}'.",
            "brand": self.brand,
            "model": self.model,
            "type": self.type,
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "is_open": self.is_open,
            "protocol_id": self.protocol_id,
            "protocol_exists": self.protocol_exists,
            "type": self.type,
            "brand": self.brand,
            "model": self.model,
            "equipment_id": self.equipment.id if self.equipment else None,
            "steps": [dict(s) for s in self.steps],
            "suggested_steps": [dict(s) for s in self.suggested_steps],
            "generating_image_index": self.generating_image_index,
            "pending_request": self.pending_request,
            "epoch": self.epoch,
        }


class ProtocolEditor:
    """Stateful editor of one protocol's steps."""

    def __init__(
        self,
        store: CatalogStore,
        suggestions: SuggestionService,
        session: EditorSession | None = None,
        session_id: str | None = None,
    ):
        self.store = store
        self.suggestions = suggestions
        self.session = session or EditorSession()
        self.session_id = session_id

    def _require_open(self) -> None:
        if not self.session.is_open:
            raise WorkflowStateError("No hay ningún protocolo abierto en el editor.")

    def _load(self, protocol: ProtocolRecord | None, triple: tuple[str, str, str]) -> None:
        self.session.reset()
        self.session.is_open = True
        self.session.type, self.session.brand, self.session.model = triple
        if protocol is not None:
            self.session.protocol_id = protocol.id
            self.session.protocol_exists = True
            self.session.steps = [step_to_draft(step) for step in protocol.steps]
        else:
            self.session.protocol_id = derive_protocol_id(*triple)

    def state(self) -> dict[str, Any]:
        return self.session.snapshot()

    # ------------------------------------------------------------------
    # Open / close
    # ------------------------------------------------------------------

    async def open_for_equipment(self, equipment_id: str) -> list[StepDraft]:
        """Load a copy of the steps of the protocol covering an equipment item."""
        equipment = await self.store.get_equipment(equipment_id)
        if equipment is None:
            raise NotFoundError("Equipo no encontrado.", context={"equipment_id": equipment_id})

        protocol = find_protocol_for(equipment, await self.store.list_protocols())
        if protocol is None:
            raise WorkflowValidationError(
                "El equipo no tiene un protocolo asignado.",
                context={"equipment_id": equipment_id},
            )

        self._load(protocol, protocol.triple)
        self.session.equipment = equipment

        logger.info(
            f"Editor opened for equipment {equipment.name}: {protocol.id}",
            extra={"session_id": self.session_id, "equipment_id": equipment_id, "protocol_id": protocol.id},
        )
        return self.session.steps

    async def open_for_triple(self, type_: str, brand: str, model: str) -> list[StepDraft]:
        """Load the protocol of a classification triple, or an empty buffer if it has none."""
        if not (type_ and brand and model):
            raise WorkflowValidationError("Debe especificar Tipo, Marca y Modelo.")

        protocol = next(
            (p for p in await self.store.list_protocols() if p.triple == (type_, brand, model)),
            None,
        )
        self._load(protocol, (type_, brand, model))

        logger.info(
            f"Editor opened for {type_}/{brand}/{model} (exists={protocol is not None})",
            extra={"session_id": self.session_id, "protocol_id": self.session.protocol_id},
        )
        return self.session.steps

    def cancel(self) -> None:
        """Discard the buffer without touching the store."""
        self.session.reset()

    # ------------------------------------------------------------------
    # Step edits
    # ------------------------------------------------------------------

    def edit_step(
        self,
        index: int,
        *,
        step: str | None = None,
        priority: str | None = None,
        percentage: int | None = None,
        completion: int | None = None,
        notes: str | None = None,
    ) -> StepDraft:
        self._require_open()
        return step_edits.edit_step(
            self.session.steps,
            index,
            step=step,
            priority=priority,
            percentage=percentage,
            completion=completion,
            notes=notes,
        )

    def add_step(self, step: str, priority: str = DEFAULT_STEP_PRIORITY, percentage: int = 0) -> StepDraft:
        self._require_open()
        candidate = [StepDraft(step="", completion=0, notes="", image_url="")]
        draft = step_edits.edit_step(candidate, 0, step=step, priority=priority, percentage=percentage)
        self.session.steps.append(draft)
        return draft

    def delete_step(self, index: int) -> StepDraft:
        self._require_open()
        if self.session.generating_image_index is not None:
            raise GenerationInProgressError("No se puede eliminar un paso mientras se genera una imagen.")
        return step_edits.delete_step(self.session.steps, index)

    def set_step_image(self, index: int, image_ref: str) -> StepDraft:
        self._require_open()
        return step_edits.set_step_image(self.session.steps, index, image_ref)

    def remove_step_image(self, index: int) -> StepDraft:
        self._require_open()
        return step_edits.remove_step_image(self.session.steps, index)

    async def generate_step_image(self, index: int) -> StepDraft:
        self._require_open()
        draft = step_edits.check_index(self.session.steps, index)
        step_text = draft.get("step", "")

        guard = BusySlot(self.session, "step_image", image_index=index)
        async with guard:
            try:
                image_ref = await self.suggestions.generate_step_image(self.session.descriptor(), step_text)
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
        if index >= len(self.session.steps) or self.session.steps[index].get("step") != step_text:
            raise StaleResponseError(
                "El paso cambió mientras se generaba la imagen; la imagen fue descartada.",
                context={"index": index},
            )

        return step_edits.set_step_image(self.session.steps, index, image_ref)

    # ------------------------------------------------------------------
    # AI suggestions
    # ------------------------------------------------------------------

    async def suggest_additional_steps(self) -> list[StepDraft]:
        """Ask for suggested steps; they are kept aside until add_suggested_steps()."""
        self._require_open()

        guard = BusySlot(self.session, "steps")
        async with guard:
            try:
                drafts = await self.suggestions.generate_protocol_steps(self.session.descriptor())
            except MaintenanceError:
                raise
            except Exception as e:
                raise SuggestionServiceError(
                    "Ocurrió un error al generar el protocolo.",
                    context={"error": str(e)},
                ) from e
        guard.ensure_current()

        self.session.suggested_steps = [StepDraft(**draft) for draft in drafts]
        return self.session.suggested_steps

    def add_suggested_steps(self, indices: list[int]) -> list[StepDraft]:
        """
        Append the selected suggestions to the buffer.

        Steps whose text already exists in the buffer are skipped. The
        pending suggestions are cleared afterwards.
        """
        self._require_open()
        if not indices:
            raise WorkflowValidationError("Seleccione al menos un paso sugerido para añadir.")

        suggestions = self.session.suggested_steps
        for index in indices:
            step_edits.check_index(suggestions, index)

        existing = {draft.get("step") for draft in self.session.steps}
        added: list[StepDraft] = []
        for index in sorted(set(indices)):
            suggestion = suggestions[index]
            if suggestion.get("step") in existing:
                continue
            new_step = StepDraft(
                step=suggestion.get("step", ""),
                priority=suggestion.get("priority") or DEFAULT_STEP_PRIORITY,
                percentage=suggestion.get("percentage") or 0,
                completion=0,
                notes="",
                image_url=suggestion.get("image_url") or "",
            )
            self.session.steps.append(new_step)
            existing.add(new_step["step"])
            added.append(new_step)

        self.session.suggested_steps = []
        return added

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save(self) -> ProtocolRecord:
        """Overwrite the protocol's steps (creating the protocol if needed)."""
        self._require_open()
        if self.session.is_busy:
            raise GenerationInProgressError("Espere a que termine la generación en curso antes de guardar.")

        sanitized = [sanitize_step(draft) for draft in self.session.steps]
        data: dict[str, Any] = {"steps": [step.model_dump() for step in sanitized]}
        if not self.session.protocol_exists:
            triple = (self.session.type, self.session.brand, self.session.model)
            self.session.protocol_id = protocol_id_for_triple(triple, await self.store.list_protocols())
            data.update(type=self.session.type, brand=self.session.brand, model=self.session.model)

        protocol = await self.store.upsert_protocol(self.session.protocol_id, data)

        self.session.protocol_exists = True
        self.session.steps = [step_to_draft(step) for step in sanitized]

        logger.info(
            f"Protocol steps overwritten: {protocol.id} ({len(protocol.steps)} steps)",
            extra={"session_id": self.session_id, "protocol_id": protocol.id},
        )
        return protocol

    async def delete_protocol(self, confirmed: bool) -> None:
        """Delete the open protocol. Its equipment falls back to without-protocol."""
        self._require_open()
        if not confirmed:
            raise WorkflowValidationError("Debe confirmar la eliminación del protocolo.")
        if not self.session.protocol_exists:
            raise NotFoundError("El protocolo no existe.", context={"protocol_id": self.session.protocol_id})

        protocol_id = self.session.protocol_id
        if not await self.store.delete_protocol(protocol_id):
            raise NotFoundError("El protocolo no existe.", context={"protocol_id": protocol_id})

        self.session.reset()
        logger.info(
            f"Protocol deleted from editor: {protocol_id}",
            extra={"session_id": self.session_id, "protocol_id": protocol_id},
        )
