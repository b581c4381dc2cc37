"""
Guardian Shield - Protocol Key Resolver.

Decides which equipment is covered by a maintenance protocol. Linkage is
derived, never stored: an equipment item is linked when its
(type, brand, model) triple equals the triple of an existing protocol,
unless its protocol_override says otherwise.

The classification is recomputed from scratch on every call; callers must
not cache it across store mutations.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from maintenance.schemas import EquipmentRecord, ProtocolRecord
from shared.config import UNLINKED_OVERRIDE, get_settings
from shared.errors import WorkflowValidationError
from shared.text_utils import slugify

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "|"


@dataclass
class ProtocolPartition:
    """Equipment split by protocol coverage. Order follows the input list."""

    with_protocol: list[EquipmentRecord] = field(default_factory=list)
    without_protocol: list[EquipmentRecord] = field(default_factory=list)

    def without_ids(self) -> set[str]:
        return {eq.id for eq in self.without_protocol}

    def with_ids(self) -> set[str]:
        return {eq.id for eq in self.with_protocol}


def _escape_key_part(value: str) -> str:
    return value.replace("\\", "\\\\").replace(KEY_SEPARATOR, "\\" + KEY_SEPARATOR)


def derive_key(type_: str, brand: str, model: str) -> str:
    """
    Case-sensitive identity of a classification triple.

    Separators inside a field are escaped, so distinct triples never share
    a key.
    """
    return KEY_SEPARATOR.join(_escape_key_part(part or "") for part in (type_, brand, model))


def derive_protocol_id(type_: str, brand: str, model: str) -> str:
    """Storage id (slug) of the protocol covering a classification triple."""
    return slugify(type_ or "", brand or "", model or "")


def protocol_id_for_triple(
    triple: tuple[str, str, str],
    protocols: Iterable[ProtocolRecord],
) -> str:
    """
    Id under which the protocol of a triple must be saved.

    An existing protocol for the triple keeps its stored id, even when it is
    not the slug. Otherwise the slug is used, unless another triple already
    owns it (the slug folds case and accents, the key does not).
    """
    slug = derive_protocol_id(*triple)
    slug_owner: ProtocolRecord | None = None
    for protocol in protocols:
        if protocol.triple == triple:
            return protocol.id
        if protocol.id == slug:
            slug_owner = protocol

    if slug_owner is not None:
        raise WorkflowValidationError(
            f"El identificador '{slug}' ya pertenece al protocolo de "
            f"{'/'.join(slug_owner.triple)}. Corrija Tipo, Marca o Modelo del equipo.",
            context={"protocol_id": slug, "triple": list(triple)},
        )
    return slug


def strip_unlinked_prefix(type_: str) -> str:
    """Original type of an equipment detached through the legacy type prefix."""
    prefix = get_settings().UNLINKED_TYPE_PREFIX
    return type_[len(prefix):] if type_.startswith(prefix) else type_


def base_triple(equipment: EquipmentRecord) -> tuple[str, str, str]:
    """Classification triple with any legacy unlink prefix removed."""
    return (strip_unlinked_prefix(equipment.type), equipment.brand, equipment.model)


def is_unlinked(equipment: EquipmentRecord) -> bool:
    """True when the equipment was explicitly detached from its protocol."""
    if equipment.protocol_override == UNLINKED_OVERRIDE:
        return True
    # Records detached before the override column existed
    return equipment.type.startswith(get_settings().UNLINKED_TYPE_PREFIX)


def _index_protocols(
    protocols: Iterable[ProtocolRecord],
) -> tuple[dict[str, ProtocolRecord], dict[str, ProtocolRecord]]:
    by_key: dict[str, ProtocolRecord] = {}
    by_id: dict[str, ProtocolRecord] = {}
    for protocol in protocols:
        by_key.setdefault(derive_key(*protocol.triple), protocol)
        by_id[protocol.id] = protocol
    return by_key, by_id


def _resolve(
    equipment: EquipmentRecord,
    by_key: dict[str, ProtocolRecord],
    by_id: dict[str, ProtocolRecord],
) -> ProtocolRecord | None:
    if is_unlinked(equipment):
        return None
    if equipment.protocol_override:
        return by_id.get(equipment.protocol_override)
    return by_key.get(derive_key(*equipment.triple))


def find_protocol_for(
    equipment: EquipmentRecord,
    protocols: Iterable[ProtocolRecord],
) -> ProtocolRecord | None:
    """Return the protocol covering one equipment item, if any."""
    by_key, by_id = _index_protocols(protocols)
    return _resolve(equipment, by_key, by_id)


def classify(
    equipment: Iterable[EquipmentRecord],
    protocols: Iterable[ProtocolRecord],
) -> ProtocolPartition:
    """
    Split equipment into with-protocol and without-protocol.

    Every item lands in exactly one of the two lists.
    """
    by_key, by_id = _index_protocols(protocols)
    partition = ProtocolPartition()

    for item in equipment:
        if _resolve(item, by_key, by_id) is not None:
            partition.with_protocol.append(item)
        else:
            partition.without_protocol.append(item)

    logger.debug(
        f"Classified equipment: with={len(partition.with_protocol)}, "
        f"without={len(partition.without_protocol)}"
    )
    return partition
