"""
Guardian Shield - Equipment Grouping FSM (Finite State Machine).

This module holds the state of one base-protocol consolidation session:
pick an unlinked reference equipment, gather similar equipment, confirm
the group, generate and edit steps, and save them as a protocol.

States:
    IDLE -> REFERENCE_SELECTED -> SIMILAR_FOUND -> STEPS_GENERATED -> SAVED

Any state may go back to IDLE (reset) or to REFERENCE_SELECTED (a new
reference was picked). All per-session data lives in GroupingSession so
that a reset clears every field at once.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from maintenance.schemas import EquipmentRecord, StepDraft
from shared.errors import WorkflowStateError

logger = logging.getLogger(__name__)


class WorkflowStep(str, Enum):
    """FSM states for equipment grouping."""

    IDLE = "idle"  # Nothing selected
    REFERENCE_SELECTED = "reference_selected"  # Reference picked, similar not requested yet
    SIMILAR_FOUND = "similar_found"  # Candidate list available for confirmation
    STEPS_GENERATED = "steps_generated"  # Draft steps available for editing
    SAVED = "saved"  # Protocol persisted; resting state until the next cycle


VALID_TRANSITIONS: dict[WorkflowStep, list[WorkflowStep]] = {
    WorkflowStep.IDLE: [
        WorkflowStep.REFERENCE_SELECTED,
    ],
    WorkflowStep.REFERENCE_SELECTED: [
        WorkflowStep.REFERENCE_SELECTED,
        WorkflowStep.SIMILAR_FOUND,
    ],
    WorkflowStep.SIMILAR_FOUND: [
        WorkflowStep.REFERENCE_SELECTED,
        WorkflowStep.SIMILAR_FOUND,  # Candidate asked again
        WorkflowStep.STEPS_GENERATED,
    ],
    WorkflowStep.STEPS_GENERATED: [
        WorkflowStep.REFERENCE_SELECTED,
        WorkflowStep.STEPS_GENERATED,  # Regenerated
        WorkflowStep.SAVED,
    ],
    WorkflowStep.SAVED: [
        WorkflowStep.REFERENCE_SELECTED,  # Start the next cycle directly
        WorkflowStep.SAVED,  # Saved again after a store failure or retry
    ],
}


def can_transition_to(current_step: WorkflowStep, target_step: WorkflowStep) -> bool:
    """
    Check if transition from current to target step is valid.

    Any -> IDLE is always allowed (reset).
    """
    if target_step == WorkflowStep.IDLE:
        return True

    return target_step in VALID_TRANSITIONS.get(current_step, [])


@dataclass
class GroupingSession:
    """
    Working buffer of one grouping session.

    Invariants kept by the engine:
    - once similar is populated, similar[0] is the reference
    - confirmed is a subsequence of similar (same relative order)
    - manual_selection never overlaps similar
    - generating_image_index / pending_request is the single busy slot
    - epoch changes whenever the buffer is reseeded; responses carrying
      an older epoch must be discarded
    """

    step: WorkflowStep = WorkflowStep.IDLE
    reference: EquipmentRecord | None = None
    similar: list[EquipmentRecord] = field(default_factory=list)
    confirmed: list[EquipmentRecord] = field(default_factory=list)
    manual_selection: list[str] = field(default_factory=list)
    steps: list[StepDraft] = field(default_factory=list)
    generating_image_index: int | None = None
    pending_request: str | None = None
    saved_protocol_id: str | None = None
    epoch: int = 0

    def reset(self) -> None:
        """Clear every field and invalidate in-flight responses."""
        self.step = WorkflowStep.IDLE
        self.reference = None
        self.similar = []
        self.confirmed = []
        self.manual_selection = []
        self.steps = []
        self.generating_image_index = None
        self.pending_request = None
        self.saved_protocol_id = None
        self.epoch += 1

    def transition_to(self, target_step: WorkflowStep) -> None:
        """
        Move to a new step.

        Raises:
            WorkflowStateError: If the transition is not valid
        """
        if not can_transition_to(self.step, target_step):
            raise WorkflowStateError(
                f"Operación no permitida en el estado actual ({self.step.value}).",
                context={"current": self.step.value, "target": target_step.value},
            )

        logger.info(
            f"Grouping FSM transition: {self.step.value} -> {target_step.value}",
            extra={"workflow_step": target_step.value},
        )
        self.step = target_step

    @property
    def is_busy(self) -> bool:
        return self.pending_request is not None or self.generating_image_index is not None

    def similar_ids(self) -> list[str]:
        return [eq.id for eq in self.similar]

    def confirmed_ids(self) -> list[str]:
        return [eq.id for eq in self.confirmed]

    def snapshot(self) -> dict:
        """Plain-dict view for presentation layers."""
        return {
            "step": self.step.value,
            "reference": self.reference.model_dump() if self.reference else None,
            "similar": [eq.model_dump() for eq in self.similar],
            "confirmed_ids": self.confirmed_ids(),
            "manual_selection": list(self.manual_selection),
            "steps": [dict(s) for s in self.steps],
            "generating_image_index": self.generating_image_index,
            "pending_request": self.pending_request,
            "saved_protocol_id": self.saved_protocol_id,
            "epoch": self.epoch,
        }
