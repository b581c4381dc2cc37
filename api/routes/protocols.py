"""
Guardian Shield - Protocols dashboard API routes.

Read the equipment inventory split by protocol coverage, and run the
single-item operations of the dashboard: delete a protocol, copy a
protocol from similar equipment, unlink and relink.
"""

import logging

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_store
from api.models.protocol import (
    ClassificationResponse,
    ConfirmRequest,
    CopyProtocolRequest,
    CopySourceResponse,
    ProtocolListResponse,
)
from maintenance.schemas import EquipmentRecord, ProtocolRecord
from maintenance.services.catalog_store import CatalogStore
from maintenance.services.equipment_filters import (
    EquipmentFilter,
    SortDirection,
    SortKey,
    apply_filters,
    client_warehouses,
)
from maintenance.services.protocol_copy import copy_protocol_to_equipment, find_copy_sources
from maintenance.services.protocol_key_resolver import classify
from maintenance.services.unlink_service import UnlinkService
from shared.errors import NotFoundError, WorkflowValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Protocols"])


# =============================================================================
# Protocols
# =============================================================================


@router.get("/protocols", response_model=ProtocolListResponse)
async def list_protocols(store: CatalogStore = Depends(get_store)):
    """List every stored protocol."""
    protocols = await store.list_protocols()
    return ProtocolListResponse(items=protocols, total=len(protocols))


@router.get("/protocols/classification", response_model=ClassificationResponse)
async def get_classification(
    client_id: str | None = Query(None, description="Client id or 'all'"),
    system_id: str | None = Query(None, description="System id or 'all'"),
    warehouse: str | None = Query(None, description="Warehouse of the selected client or 'all'"),
    sort_key: SortKey = Query("name"),
    sort_direction: SortDirection = Query("ascending"),
    store: CatalogStore = Depends(get_store),
):
    """Equipment with and without protocol after filtering and sorting."""
    clients = await store.list_clients()
    criteria = EquipmentFilter(
        client_id=client_id,
        system_id=system_id,
        warehouse=warehouse,
        sort_key=sort_key,
        sort_direction=sort_direction,
    )
    equipment = apply_filters(
        await store.list_equipment(),
        clients,
        await store.list_systems(),
        criteria,
    )
    partition = classify(equipment, await store.list_protocols())

    return ClassificationResponse(
        with_protocol=partition.with_protocol,
        without_protocol=partition.without_protocol,
        warehouses=client_warehouses(clients, client_id),
    )


@router.delete("/protocols/{protocol_id}", status_code=204)
async def delete_protocol(
    protocol_id: str,
    confirm: bool = Query(False, description="Must be true to delete"),
    store: CatalogStore = Depends(get_store),
) -> None:
    """Delete a protocol. Equipment it covered falls back to without-protocol."""
    if not confirm:
        raise WorkflowValidationError("Debe confirmar la eliminación del protocolo.")

    if not await store.delete_protocol(protocol_id):
        raise NotFoundError("El protocolo no existe.", context={"protocol_id": protocol_id})

    logger.info("Protocol deleted", extra={"protocol_id": protocol_id})


# =============================================================================
# Single equipment operations
# =============================================================================


@router.get("/equipment/{equipment_id}/copy-sources", response_model=list[CopySourceResponse])
async def list_copy_sources(equipment_id: str, store: CatalogStore = Depends(get_store)):
    """Similar equipment whose protocol can be copied to this one."""
    equipment = await store.list_equipment()
    target = next((eq for eq in equipment if eq.id == equipment_id), None)
    if target is None:
        raise NotFoundError("Equipo no encontrado.", context={"equipment_id": equipment_id})

    sources = find_copy_sources(target, equipment, await store.list_protocols())
    return [
        CopySourceResponse(
            equipment=source.equipment,
            protocol_id=source.protocol.id,
            step_count=len(source.protocol.steps),
        )
        for source in sources
    ]


@router.post(
    "/equipment/{equipment_id}/copy-protocol",
    response_model=ProtocolRecord,
    status_code=201,
)
async def copy_protocol(
    equipment_id: str,
    body: CopyProtocolRequest,
    store: CatalogStore = Depends(get_store),
):
    """Create this equipment's protocol from a similar equipment's steps."""
    return await copy_protocol_to_equipment(store, equipment_id, body.source_equipment_id)


@router.post("/equipment/{equipment_id}/unlink", response_model=EquipmentRecord)
async def unlink_equipment(
    equipment_id: str,
    body: ConfirmRequest,
    store: CatalogStore = Depends(get_store),
):
    """Detach one equipment item from its protocol."""
    return await UnlinkService(store).unlink(equipment_id, confirmed=body.confirm)


@router.post("/equipment/{equipment_id}/relink", response_model=EquipmentRecord)
async def relink_equipment(equipment_id: str, store: CatalogStore = Depends(get_store)):
    """Undo an unlink."""
    return await UnlinkService(store).relink(equipment_id)
