"""
Guardian Shield - Catalog Store.

Read/write access to equipment, protocols, clients and systems for the
consolidation workflow. The workflow depends only on the CatalogStore
protocol; SqlCatalogStore implements it on the async SQLAlchemy session.

Every database failure is re-raised as PersistenceError so callers can
keep their working state and let the operator retry.
"""

import logging
import uuid
from typing import Any, Protocol as TypingProtocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from database.connection import get_async_session
from database.models import Client, Equipment, Protocol, System
from maintenance.schemas import (
    ClientRecord,
    EquipmentRecord,
    ProtocolRecord,
    SystemRecord,
)
from shared.errors import NotFoundError, PersistenceError, WorkflowValidationError

logger = logging.getLogger(__name__)

# Equipment columns the workflow is allowed to write
EQUIPMENT_WRITABLE_FIELDS = frozenset({"type", "brand", "model", "protocol_override"})

PROTOCOL_FIELDS = ("type", "brand", "model", "steps")


class CatalogStore(TypingProtocol):
    async def list_equipment(self) -> list[EquipmentRecord]: ...

    async def get_equipment(self, equipment_id: str) -> EquipmentRecord | None: ...

    async def list_protocols(self) -> list[ProtocolRecord]: ...

    async def get_protocol(self, protocol_id: str) -> ProtocolRecord | None: ...

    async def upsert_protocol(self, protocol_id: str, data: dict[str, Any]) -> ProtocolRecord: ...

    async def update_equipment(self, equipment_id: str, fields: dict[str, Any]) -> EquipmentRecord: ...

    async def delete_protocol(self, protocol_id: str) -> bool: ...

    async def list_clients(self) -> list[ClientRecord]: ...

    async def list_systems(self) -> list[SystemRecord]: ...


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


def _protocol_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Keep known protocol fields, serializing step models to plain dicts."""
    payload = {key: data[key] for key in PROTOCOL_FIELDS if key in data}
    if "steps" in payload:
        payload["steps"] = [
            step.model_dump() if hasattr(step, "model_dump") else dict(step)
            for step in payload["steps"]
        ]
    return payload


class SqlCatalogStore:
    """CatalogStore on PostgreSQL via the shared async session factory."""

    async def list_equipment(self) -> list[EquipmentRecord]:
        try:
            async with get_async_session() as session:
                result = await session.execute(select(Equipment).order_by(Equipment.name))
                return [EquipmentRecord.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError("No se pudo leer el inventario de equipos.") from e

    async def get_equipment(self, equipment_id: str) -> EquipmentRecord | None:
        equipment_uuid = _parse_uuid(equipment_id)
        if equipment_uuid is None:
            return None
        try:
            async with get_async_session() as session:
                row = await session.get(Equipment, equipment_uuid)
                return EquipmentRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError("No se pudo leer el equipo.") from e

    async def list_protocols(self) -> list[ProtocolRecord]:
        try:
            async with get_async_session() as session:
                result = await session.execute(select(Protocol).order_by(Protocol.id))
                return [ProtocolRecord.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError("No se pudieron leer los protocolos.") from e

    async def get_protocol(self, protocol_id: str) -> ProtocolRecord | None:
        try:
            async with get_async_session() as session:
                row = await session.get(Protocol, protocol_id)
                return ProtocolRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError("No se pudo leer el protocolo.") from e

    async def upsert_protocol(self, protocol_id: str, data: dict[str, Any]) -> ProtocolRecord:
        """
        Create the protocol or update the given fields of an existing one.

        Fields absent from ``data`` keep their stored value.
        """
        payload = _protocol_payload(data)
        try:
            async with get_async_session() as session:
                row = await session.get(Protocol, protocol_id)
                if row is None:
                    missing = [key for key in ("type", "brand", "model") if key not in payload]
                    if missing:
                        raise WorkflowValidationError(
                            "Debe especificar Tipo, Marca y Modelo para crear el protocolo.",
                            context={"missing": missing},
                        )
                    row = Protocol(id=protocol_id, steps=[], **payload)
                    session.add(row)
                    action = "created"
                else:
                    for key, value in payload.items():
                        setattr(row, key, value)
                    action = "updated"

                await session.commit()
                await session.refresh(row)

                logger.info(
                    f"Protocol {action}: {protocol_id} ({len(row.steps or [])} steps)",
                    extra={"protocol_id": protocol_id},
                )
                return ProtocolRecord.model_validate(row)
        except SQLAlchemyError as e:
            raise PersistenceError(
                "No se pudo guardar el protocolo.",
                context={"protocol_id": protocol_id},
            ) from e

    async def update_equipment(self, equipment_id: str, fields: dict[str, Any]) -> EquipmentRecord:
        unknown = set(fields) - EQUIPMENT_WRITABLE_FIELDS
        if unknown:
            raise WorkflowValidationError(
                "Campos de equipo no modificables.",
                context={"fields": sorted(unknown)},
            )

        equipment_uuid = _parse_uuid(equipment_id)
        if equipment_uuid is None:
            raise NotFoundError("Equipo no encontrado.", context={"equipment_id": equipment_id})

        try:
            async with get_async_session() as session:
                row = await session.get(Equipment, equipment_uuid)
                if row is None:
                    raise NotFoundError("Equipo no encontrado.", context={"equipment_id": equipment_id})

                for key, value in fields.items():
                    setattr(row, key, value)

                await session.commit()
                await session.refresh(row)
                return EquipmentRecord.model_validate(row)
        except SQLAlchemyError as e:
            raise PersistenceError(
                "No se pudo actualizar el equipo.",
                context={"equipment_id": equipment_id},
            ) from e

    async def delete_protocol(self, protocol_id: str) -> bool:
        try:
            async with get_async_session() as session:
                result = await session.execute(delete(Protocol).where(Protocol.id == protocol_id))
                await session.commit()
                deleted = (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise PersistenceError(
                "No se pudo eliminar el protocolo.",
                context={"protocol_id": protocol_id},
            ) from e

        if deleted:
            logger.info(f"Protocol deleted: {protocol_id}", extra={"protocol_id": protocol_id})
        return deleted

    async def list_clients(self) -> list[ClientRecord]:
        try:
            async with get_async_session() as session:
                result = await session.execute(select(Client).order_by(Client.name))
                return [ClientRecord.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError("No se pudieron leer los clientes.") from e

    async def list_systems(self) -> list[SystemRecord]:
        try:
            async with get_async_session() as session:
                result = await session.execute(select(System).order_by(System.name))
                return [SystemRecord.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError("No se pudieron leer los sistemas.") from e


# Singleton instance
_store_instance: SqlCatalogStore | None = None


def get_catalog_store() -> SqlCatalogStore:
    """Get singleton catalog store instance."""
    global _store_instance
    if _store_instance is None:
        _store_instance = SqlCatalogStore()
    return _store_instance
