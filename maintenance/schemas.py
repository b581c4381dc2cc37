"""
Guardian Shield - Domain schemas for protocol consolidation.

Pydantic models shared by the key resolver, the grouping engine, the
protocol editor and the catalog store. Records are built from ORM rows
(``from_attributes``) or from plain dicts in tests.
"""

from typing import Any, Literal, TypedDict
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from shared.config import DEFAULT_STEP_PRIORITY, PRIORITY_VALUES

Priority = Literal["baja", "media", "alta"]


class Warehouse(BaseModel):
    """A client warehouse ("almacén")."""

    nombre: str
    direccion: str | None = None


class ClientRecord(BaseModel):
    id: str
    name: str
    responsable: str | None = None
    direccion: str | None = None
    phone1: str | None = None
    phone2: str | None = None
    warehouses: list[Warehouse] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, UUID) else v


class SystemRecord(BaseModel):
    id: str
    name: str
    description: str | None = None
    color: str | None = None

    class Config:
        from_attributes = True

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, UUID) else v


class EquipmentRecord(BaseModel):
    """
    An installed device as seen by the consolidation workflow.

    (type, brand, model) are the classification fields; they are compared
    case-sensitively. protocol_override is None for the derived match.
    """

    id: str
    name: str
    alias: str | None = None
    description: str | None = None
    brand: str = ""
    model: str = ""
    type: str = ""
    serial: str | None = None
    client: str | None = None
    system: str | None = None
    location: str | None = None
    status: str = "Activo"
    image_url: str | None = None
    protocol_override: str | None = None

    class Config:
        from_attributes = True

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, UUID) else v

    @field_validator("brand", "model", "type", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @property
    def triple(self) -> tuple[str, str, str]:
        return (self.type, self.brand, self.model)

    def descriptor(self) -> dict[str, str]:
        """Fields sent to the suggestion service to describe this equipment."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "brand": self.brand,
            "model": self.model,
            "type": self.type,
        }


class ProtocolStep(BaseModel):
    """A single, fully-populated protocol step as persisted."""

    step: str
    priority: Priority = DEFAULT_STEP_PRIORITY
    percentage: int = Field(default=0, ge=0, le=100)
    completion: int = Field(default=0, ge=0, le=100)
    notes: str = ""
    image_url: str = ""


class ProtocolRecord(BaseModel):
    id: str
    type: str
    brand: str
    model: str
    steps: list[ProtocolStep] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @property
    def triple(self) -> tuple[str, str, str]:
        return (self.type, self.brand, self.model)


class StepDraft(TypedDict, total=False):
    """
    A step while it is being edited in a session.

    Only ``step`` is guaranteed; every other field is filled with its
    default by sanitize_step() when the protocol is saved.
    """

    step: str
    priority: str | None
    percentage: int | float | None
    completion: int | float | None
    notes: str | None
    image_url: str | None


def _clamp_percent(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, number))


def sanitize_step(draft: StepDraft | dict[str, Any]) -> ProtocolStep:
    """
    Fill missing fields of a draft step with their defaults.

    priority -> "baja", percentage/completion -> 0, notes/image -> "".
    Unknown priorities fall back to the default instead of failing.
    """
    priority = draft.get("priority")
    if priority not in PRIORITY_VALUES:
        priority = DEFAULT_STEP_PRIORITY

    return ProtocolStep(
        step=(draft.get("step") or "").strip(),
        priority=priority,
        percentage=_clamp_percent(draft.get("percentage")),
        completion=_clamp_percent(draft.get("completion")),
        notes=draft.get("notes") or "",
        image_url=draft.get("image_url") or "",
    )


def step_to_draft(step: ProtocolStep) -> StepDraft:
    """Copy a persisted step into an independent, editable draft."""
    return StepDraft(**step.model_dump())
