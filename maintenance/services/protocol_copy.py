"""
Guardian Shield - Copy a protocol from similar equipment.

For equipment without protocol, look for other equipment with a close
name and type (Levenshtein distance, case-insensitive) that already has a
non-empty protocol, and copy its steps as the protocol of the target's
classification triple. Per-visit data (images, notes, completion) is not
copied.
"""

import logging
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

from maintenance.schemas import EquipmentRecord, ProtocolRecord, ProtocolStep
from maintenance.services.catalog_store import CatalogStore
from maintenance.services.protocol_key_resolver import (
    base_triple,
    derive_protocol_id,
    find_protocol_for,
    is_unlinked,
)
from shared.config import UNLINKED_OVERRIDE, get_settings
from shared.errors import NotFoundError, PersistenceError, WorkflowValidationError

logger = logging.getLogger(__name__)


@dataclass
class CopySource:
    equipment: EquipmentRecord
    protocol: ProtocolRecord


def text_distance(a: str | None, b: str | None) -> int:
    return Levenshtein.distance((a or "").lower(), (b or "").lower())


def find_copy_sources(
    target: EquipmentRecord,
    equipment: list[EquipmentRecord],
    protocols: list[ProtocolRecord],
    max_name_distance: int | None = None,
    max_type_distance: int | None = None,
) -> list[CopySource]:
    """Equipment close to the target whose protocol has at least one step."""
    settings = get_settings()
    if max_name_distance is None:
        max_name_distance = settings.SIMILAR_NAME_MAX_DISTANCE
    if max_type_distance is None:
        max_type_distance = settings.SIMILAR_TYPE_MAX_DISTANCE

    sources: list[CopySource] = []
    for candidate in equipment:
        if candidate.id == target.id:
            continue
        if text_distance(candidate.name, target.name) > max_name_distance:
            continue
        if text_distance(candidate.type, target.type) > max_type_distance:
            continue

        protocol = find_protocol_for(candidate, protocols)
        if protocol is not None and protocol.steps:
            sources.append(CopySource(equipment=candidate, protocol=protocol))

    return sources


def copied_steps(steps: list[ProtocolStep]) -> list[ProtocolStep]:
    return [
        step.model_copy(update={"image_url": "", "notes": "", "completion": 0})
        for step in steps
    ]


async def copy_protocol_to_equipment(
    store: CatalogStore,
    target_id: str,
    source_id: str,
) -> ProtocolRecord:
    """
    Create the target's protocol from a copy source's steps.

    Rejected when the target already has a protocol, when a protocol for
    its triple already exists (the target was explicitly unlinked from it),
    or when the source is not a valid copy source for the target.
    """
    equipment = await store.list_equipment()
    protocols = await store.list_protocols()

    target = next((eq for eq in equipment if eq.id == target_id), None)
    if target is None:
        raise NotFoundError("Equipo no encontrado.", context={"equipment_id": target_id})

    if find_protocol_for(target, protocols) is not None:
        raise WorkflowValidationError(
            "Este equipo ya tiene un protocolo. Elimínelo primero si desea copiar uno nuevo.",
            context={"equipment_id": target_id},
        )

    type_, brand, model = base_triple(target)
    protocol_id = derive_protocol_id(type_, brand, model)
    if any(p.id == protocol_id or p.triple == (type_, brand, model) for p in protocols):
        raise WorkflowValidationError(
            "Ya existe un protocolo para este tipo, marca y modelo. Vuelva a vincular el equipo en lugar de copiar.",
            context={"equipment_id": target_id, "protocol_id": protocol_id},
        )

    source = next(
        (s for s in find_copy_sources(target, equipment, protocols) if s.equipment.id == source_id),
        None,
    )
    if source is None:
        raise WorkflowValidationError(
            "El equipo de origen no es similar o no tiene un protocolo con pasos.",
            context={"equipment_id": target_id, "source_id": source_id},
        )

    protocol = await store.upsert_protocol(
        protocol_id,
        {
            "type": type_,
            "brand": brand,
            "model": model,
            "steps": [step.model_dump() for step in copied_steps(source.protocol.steps)],
        },
    )

    if is_unlinked(target):
        fields: dict[str, str | None] = {}
        if target.protocol_override == UNLINKED_OVERRIDE:
            fields["protocol_override"] = None
        if target.type != type_:
            fields["type"] = type_
        try:
            await store.update_equipment(target.id, fields)
        except PersistenceError as e:
            logger.warning(
                f"Protocol copied but target could not be relinked: {e}",
                extra={"equipment_id": target.id, "protocol_id": protocol.id},
            )

    logger.info(
        f"Protocol copied from {source.protocol.id} to {protocol.id}",
        extra={"equipment_id": target.id, "protocol_id": protocol.id},
    )
    return protocol
