"""
Guardian Shield - Unlink Service.

Detaches a single equipment item from its protocol without deleting the
protocol or touching any other equipment. Two mechanisms are supported,
selected with UNLINK_MODE:

- override (default): protocol_override = "__unlinked__"; type is untouched
- type_prefix: type = UNLINKED_TYPE_PREFIX + type, for stores shared with
  older dashboards that rely on the prefixed type

relink() reverses either mechanism.
"""

import logging

from maintenance.schemas import EquipmentRecord
from maintenance.services.catalog_store import CatalogStore
from maintenance.services.protocol_key_resolver import (
    find_protocol_for,
    is_unlinked,
    strip_unlinked_prefix,
)
from shared.config import UNLINKED_OVERRIDE, get_settings
from shared.errors import NotFoundError, WorkflowValidationError

logger = logging.getLogger(__name__)


class UnlinkService:
    def __init__(self, store: CatalogStore, mode: str | None = None):
        settings = get_settings()
        self.store = store
        self.mode = mode or settings.UNLINK_MODE
        self.prefix = settings.UNLINKED_TYPE_PREFIX

    async def _get_equipment(self, equipment_id: str) -> EquipmentRecord:
        if not equipment_id:
            raise WorkflowValidationError("Debe indicar el equipo.")
        equipment = await self.store.get_equipment(equipment_id)
        if equipment is None:
            raise NotFoundError("Equipo no encontrado.", context={"equipment_id": equipment_id})
        return equipment

    async def unlink(self, equipment_id: str, confirmed: bool) -> EquipmentRecord:
        """
        Detach one equipment item from its protocol.

        Requires explicit confirmation and an item that is currently linked.
        A store failure propagates as PersistenceError with the item unchanged.
        """
        if not confirmed:
            raise WorkflowValidationError("Debe confirmar la desvinculación del equipo.")

        equipment = await self._get_equipment(equipment_id)
        protocol = find_protocol_for(equipment, await self.store.list_protocols())
        if protocol is None:
            raise WorkflowValidationError(
                "El equipo no está vinculado a ningún protocolo.",
                context={"equipment_id": equipment_id},
            )

        if self.mode == "type_prefix":
            fields = {"type": f"{self.prefix}{equipment.type}"}
        else:
            fields = {"protocol_override": UNLINKED_OVERRIDE}

        updated = await self.store.update_equipment(equipment_id, fields)

        logger.info(
            f"Equipment unlinked ({self.mode}) from {protocol.id}",
            extra={"equipment_id": equipment_id, "protocol_id": protocol.id},
        )
        return updated

    async def relink(self, equipment_id: str) -> EquipmentRecord:
        """Return an equipment item to the derived (type, brand, model) match."""
        equipment = await self._get_equipment(equipment_id)

        fields: dict[str, str | None] = {}
        if equipment.protocol_override is not None:
            fields["protocol_override"] = None
        original_type = strip_unlinked_prefix(equipment.type)
        if original_type != equipment.type:
            fields["type"] = original_type

        if not fields:
            raise WorkflowValidationError(
                "El equipo no está desvinculado.",
                context={"equipment_id": equipment_id},
            )

        updated = await self.store.update_equipment(equipment_id, fields)
        logger.info(
            f"Equipment relinked (was_unlinked={is_unlinked(equipment)})",
            extra={"equipment_id": equipment_id},
        )
        return updated
