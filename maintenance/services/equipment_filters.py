"""
Guardian Shield - Equipment filtering and sorting for the protocols dashboard.

Filters narrow the inventory by client, system and warehouse before it is
classified; "all" or an empty value disables a filter. Clients and systems
are selected by id and matched against the names stored on the equipment.
"""

import logging
from dataclasses import dataclass
from typing import Literal

from maintenance.schemas import ClientRecord, EquipmentRecord, SystemRecord
from shared.text_utils import normalize_text

logger = logging.getLogger(__name__)

SortKey = Literal["name", "client", "system"]
SortDirection = Literal["ascending", "descending"]

ALL = "all"


@dataclass
class EquipmentFilter:
    client_id: str | None = None
    system_id: str | None = None
    warehouse: str | None = None
    sort_key: SortKey = "name"
    sort_direction: SortDirection = "ascending"


def _is_set(value: str | None) -> bool:
    return bool(value) and value != ALL


def client_warehouses(clients: list[ClientRecord], client_id: str | None) -> list[str]:
    """Warehouse names of a client (empty when no client is selected)."""
    if not _is_set(client_id):
        return []
    client = next((c for c in clients if c.id == client_id), None)
    return [w.nombre for w in client.warehouses] if client else []


def filter_equipment(
    equipment: list[EquipmentRecord],
    clients: list[ClientRecord],
    systems: list[SystemRecord],
    criteria: EquipmentFilter,
) -> list[EquipmentRecord]:
    """
    Apply client, system and warehouse filters.

    Unknown client or system ids leave the list unfiltered. The warehouse
    filter only applies when it belongs to the selected client, mirroring
    the dashboard where changing client resets the warehouse.
    """
    result = list(equipment)

    if _is_set(criteria.client_id):
        client = next((c for c in clients if c.id == criteria.client_id), None)
        if client is not None:
            result = [eq for eq in result if eq.client == client.name]

    if _is_set(criteria.system_id):
        system = next((s for s in systems if s.id == criteria.system_id), None)
        if system is not None:
            result = [eq for eq in result if eq.system == system.name]

    if _is_set(criteria.warehouse):
        if criteria.warehouse in client_warehouses(clients, criteria.client_id):
            result = [eq for eq in result if eq.location == criteria.warehouse]
        else:
            logger.debug(f"Ignoring warehouse filter '{criteria.warehouse}' outside selected client")

    return result


def sort_equipment(
    equipment: list[EquipmentRecord],
    key: SortKey = "name",
    direction: SortDirection = "ascending",
) -> list[EquipmentRecord]:
    """Stable sort by name, client or system, ignoring case and accents."""
    return sorted(
        equipment,
        key=lambda eq: normalize_text(getattr(eq, key)),
        reverse=direction == "descending",
    )


def apply_filters(
    equipment: list[EquipmentRecord],
    clients: list[ClientRecord],
    systems: list[SystemRecord],
    criteria: EquipmentFilter,
) -> list[EquipmentRecord]:
    filtered = filter_equipment(equipment, clients, systems, criteria)
    return sort_equipment(filtered, criteria.sort_key, criteria.sort_direction)
