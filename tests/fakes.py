"""
In-memory collaborators for the consolidation workflow tests.

InMemoryCatalogStore follows SqlCatalogStore's contract (record-level
upsert, restricted equipment writes, NotFoundError/PersistenceError) and
StubSuggestionService answers deterministically, optionally waiting on an
asyncio.Event so tests can interleave calls with an in-flight request.
"""

import asyncio
import copy
from typing import Any

from maintenance.schemas import (
    ClientRecord,
    EquipmentRecord,
    ProtocolRecord,
    StepDraft,
    SystemRecord,
)
from maintenance.services.catalog_store import EQUIPMENT_WRITABLE_FIELDS, PROTOCOL_FIELDS
from shared.errors import NotFoundError, PersistenceError, WorkflowValidationError


class InMemoryCatalogStore:
    def __init__(
        self,
        equipment: list[EquipmentRecord] | None = None,
        protocols: list[ProtocolRecord] | None = None,
        clients: list[ClientRecord] | None = None,
        systems: list[SystemRecord] | None = None,
    ):
        self.equipment = {eq.id: eq for eq in equipment or []}
        self.protocols = {p.id: p for p in protocols or []}
        self.clients = list(clients or [])
        self.systems = list(systems or [])
        self.fail_writes = False
        self.upserts: list[tuple[str, dict[str, Any]]] = []
        self.equipment_updates: list[tuple[str, dict[str, Any]]] = []

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise PersistenceError("No se pudo guardar el protocolo.")

    async def list_equipment(self) -> list[EquipmentRecord]:
        return sorted(self.equipment.values(), key=lambda eq: eq.name)

    async def get_equipment(self, equipment_id: str) -> EquipmentRecord | None:
        return self.equipment.get(equipment_id)

    async def list_protocols(self) -> list[ProtocolRecord]:
        return sorted(self.protocols.values(), key=lambda p: p.id)

    async def get_protocol(self, protocol_id: str) -> ProtocolRecord | None:
        return self.protocols.get(protocol_id)

    async def upsert_protocol(self, protocol_id: str, data: dict[str, Any]) -> ProtocolRecord:
        self._check_writable()
        payload = {key: copy.deepcopy(data[key]) for key in PROTOCOL_FIELDS if key in data}
        self.upserts.append((protocol_id, payload))

        existing = self.protocols.get(protocol_id)
        if existing is None:
            missing = [key for key in ("type", "brand", "model") if key not in payload]
            if missing:
                raise WorkflowValidationError(
                    "Debe especificar Tipo, Marca y Modelo para crear el protocolo.",
                    context={"missing": missing},
                )
            record = ProtocolRecord(id=protocol_id, **{"steps": [], **payload})
        else:
            record = ProtocolRecord(**{**existing.model_dump(), **payload})

        self.protocols[protocol_id] = record
        return record

    async def update_equipment(self, equipment_id: str, fields: dict[str, Any]) -> EquipmentRecord:
        unknown = set(fields) - EQUIPMENT_WRITABLE_FIELDS
        if unknown:
            raise WorkflowValidationError("Campos de equipo no modificables.", context={"fields": sorted(unknown)})
        self._check_writable()

        existing = self.equipment.get(equipment_id)
        if existing is None:
            raise NotFoundError("Equipo no encontrado.", context={"equipment_id": equipment_id})

        self.equipment_updates.append((equipment_id, dict(fields)))
        updated = existing.model_copy(update=fields)
        self.equipment[equipment_id] = updated
        return updated

    async def delete_protocol(self, protocol_id: str) -> bool:
        self._check_writable()
        return self.protocols.pop(protocol_id, None) is not None

    async def list_clients(self) -> list[ClientRecord]:
        return list(self.clients)

    async def list_systems(self) -> list[SystemRecord]:
        return list(self.systems)


class StubSuggestionService:
    """
    Deterministic SuggestionService.

    similar_ids / steps / image_ref are returned as-is; set error to make
    every call raise it. When gate is set, calls wait for it first.
    """

    def __init__(
        self,
        similar_ids: list[str] | None = None,
        steps: list[StepDraft] | None = None,
        image_ref: str = "/images/generated.png",
    ):
        self.similar_ids = similar_ids
        self.steps = steps if steps is not None else [
            StepDraft(step="Limpiar lente", priority="media", percentage=30),
            StepDraft(step="Verificar alimentación", priority="alta", percentage=70),
        ]
        self.image_ref = image_ref
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, Any]] = []

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def find_similar_equipment(
        self,
        reference: EquipmentRecord,
        candidate_pool: list[EquipmentRecord],
    ) -> list[str]:
        self.calls.append(("similar", [c.id for c in candidate_pool]))
        await self._wait()
        if self.similar_ids is None:
            return [reference.id] + [c.id for c in candidate_pool]
        return list(self.similar_ids)

    async def generate_protocol_steps(self, descriptor: dict[str, Any]) -> list[StepDraft]:
        self.calls.append(("steps", descriptor))
        await self._wait()
        return [StepDraft(**step) for step in self.steps]

    async def generate_step_image(self, descriptor: dict[str, Any], step_text: str) -> str:
        self.calls.append(("image", step_text))
        await self._wait()
        return self.image_ref
