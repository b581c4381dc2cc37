"""
Guardian Shield - API Models module.
"""

from api.models.protocol import (
    # Sessions
    SessionResponse,
    ReferenceSelect,
    CandidateToggle,
    ManualSelectionToggle,
    # Steps
    GroupingStepUpdate,
    EditorStepUpdate,
    StepCreate,
    StepImageRef,
    SuggestedStepsAdd,
    # Editor
    EditorOpen,
    # Dashboard
    ClassificationResponse,
    CopySourceResponse,
    CopyProtocolRequest,
    ConfirmRequest,
    ProtocolListResponse,
)

__all__ = [
    # Sessions
    "SessionResponse",
    "ReferenceSelect",
    "CandidateToggle",
    "ManualSelectionToggle",
    # Steps
    "GroupingStepUpdate",
    "EditorStepUpdate",
    "StepCreate",
    "StepImageRef",
    "SuggestedStepsAdd",
    # Editor
    "EditorOpen",
    # Dashboard
    "ClassificationResponse",
    "CopySourceResponse",
    "CopyProtocolRequest",
    "ConfirmRequest",
    "ProtocolListResponse",
]
