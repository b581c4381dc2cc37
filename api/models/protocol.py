"""
Protocol consolidation Pydantic models.

Schemas for validating request bodies and serializing responses of the
protocols, grouping and protocol editor routes.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from maintenance.schemas import EquipmentRecord, Priority, ProtocolRecord


# =============================================================================
# Sessions
# =============================================================================


class SessionResponse(BaseModel):
    """A workflow session and its current state."""

    session_id: str
    state: dict[str, Any]


class ReferenceSelect(BaseModel):
    equipment_id: str = Field(..., min_length=1)


class CandidateToggle(BaseModel):
    equipment_id: str = Field(..., min_length=1)
    checked: bool | None = Field(None, description="Explicit value; omitted flips the current one")


class ManualSelectionToggle(BaseModel):
    equipment_id: str = Field(..., min_length=1)


# =============================================================================
# Steps
# =============================================================================


class GroupingStepUpdate(BaseModel):
    """Editable fields of a draft step in a grouping session."""

    step: str | None = Field(None, min_length=1)
    priority: Priority | None = None


class EditorStepUpdate(GroupingStepUpdate):
    """Editable fields of a step in the protocol editor."""

    percentage: int | None = Field(None, ge=0, le=100)
    completion: int | None = Field(None, ge=0, le=100)
    notes: str | None = None


class StepCreate(BaseModel):
    step: str = Field(..., min_length=1)
    priority: Priority = "baja"
    percentage: int = Field(default=0, ge=0, le=100)


class StepImageRef(BaseModel):
    """An already stored image (e.g. from /images/upload) to attach to a step."""

    image_url: str = Field(..., min_length=1, max_length=500)


class SuggestedStepsAdd(BaseModel):
    indices: list[int] = Field(..., min_length=1)


# =============================================================================
# Editor
# =============================================================================


class EditorOpen(BaseModel):
    """Open the editor for an equipment item or a classification triple."""

    equipment_id: str | None = None
    type: str | None = None
    brand: str | None = None
    model: str | None = None

    @model_validator(mode="after")
    def check_target(self):
        if self.equipment_id:
            return self
        if not (self.type and self.brand and self.model):
            raise ValueError("equipment_id or type, brand and model are required")
        return self


# =============================================================================
# Protocols dashboard
# =============================================================================


class ClassificationResponse(BaseModel):
    """Equipment split by whether a protocol covers it."""

    with_protocol: list[EquipmentRecord]
    without_protocol: list[EquipmentRecord]
    warehouses: list[str] = Field(default_factory=list, description="Warehouses of the selected client")


class CopySourceResponse(BaseModel):
    equipment: EquipmentRecord
    protocol_id: str
    step_count: int


class CopyProtocolRequest(BaseModel):
    source_equipment_id: str = Field(..., min_length=1)


class ConfirmRequest(BaseModel):
    confirm: bool = False


class ProtocolListResponse(BaseModel):
    items: list[ProtocolRecord]
    total: int
