"""
Guardian Shield - FSM (Finite State Machine) module.

Provides the state machine of the base-protocol consolidation workflow:
- Equipment grouping: reference, similar equipment, steps, save
"""

from maintenance.fsm.grouping_workflow import (
    # Enums
    WorkflowStep,
    # State
    GroupingSession,
    # Transitions
    VALID_TRANSITIONS,
    can_transition_to,
)

__all__ = [
    # Enums
    "WorkflowStep",
    # State
    "GroupingSession",
    # Transitions
    "VALID_TRANSITIONS",
    "can_transition_to",
]
