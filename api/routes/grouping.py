"""
Guardian Shield - Equipment grouping API routes.

HTTP surface of the base-protocol consolidation workflow. Each session is
kept in the workflow registry and every call answers with the session's
current state, so the dashboard can redraw from a single response.
"""

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile

from api.dependencies import get_images, get_registry, get_store, get_suggestions
from api.middleware.rate_limit import enforce_rate_limit
from api.models.protocol import (
    CandidateToggle,
    GroupingStepUpdate,
    ManualSelectionToggle,
    ReferenceSelect,
    SessionResponse,
)
from api.services.image_service import ImageService
from api.services.workflow_registry import WorkflowSessionRegistry
from maintenance.schemas import EquipmentRecord
from maintenance.services.catalog_store import CatalogStore
from maintenance.services.grouping_engine import EquipmentGroupingEngine
from maintenance.services.step_edits import check_index
from maintenance.services.suggestion_service import SuggestionService
from shared.config import get_settings
from shared.errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/grouping", tags=["Grouping"])


def get_engine(
    session_id: str,
    registry: WorkflowSessionRegistry = Depends(get_registry),
    store: CatalogStore = Depends(get_store),
    suggestions: SuggestionService = Depends(get_suggestions),
) -> EquipmentGroupingEngine:
    return EquipmentGroupingEngine(
        store,
        suggestions,
        session=registry.grouping(session_id),
        session_id=session_id,
    )


def _response(engine: EquipmentGroupingEngine) -> SessionResponse:
    return SessionResponse(session_id=engine.session_id, state=engine.state())


# =============================================================================
# Session lifecycle
# =============================================================================


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(registry: WorkflowSessionRegistry = Depends(get_registry)):
    session_id = registry.create("grouping")
    return SessionResponse(session_id=session_id, state=registry.grouping(session_id).snapshot())


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(engine: EquipmentGroupingEngine = Depends(get_engine)):
    return _response(engine)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, registry: WorkflowSessionRegistry = Depends(get_registry)) -> None:
    if not registry.delete(session_id):
        raise NotFoundError("La sesión no existe o ha expirado.", context={"session_id": session_id})


@router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset_session(engine: EquipmentGroupingEngine = Depends(get_engine)):
    """Clear the session (IDLE). Responses still in flight are discarded."""
    engine.reset()
    return _response(engine)


# =============================================================================
# Reference and candidates
# =============================================================================


@router.post("/sessions/{session_id}/reference", response_model=SessionResponse)
async def select_reference(body: ReferenceSelect, engine: EquipmentGroupingEngine = Depends(get_engine)):
    await engine.select_reference(body.equipment_id)
    return _response(engine)


@router.post("/sessions/{session_id}/similar", response_model=SessionResponse)
async def find_similar(engine: EquipmentGroupingEngine = Depends(get_engine)):
    await engine.find_similar()
    return _response(engine)


@router.post("/sessions/{session_id}/candidates/toggle", response_model=SessionResponse)
async def toggle_candidate(body: CandidateToggle, engine: EquipmentGroupingEngine = Depends(get_engine)):
    engine.toggle_candidate(body.equipment_id, body.checked)
    return _response(engine)


@router.get("/sessions/{session_id}/manual-options", response_model=list[EquipmentRecord])
async def manual_add_options(engine: EquipmentGroupingEngine = Depends(get_engine)):
    """Catalog equipment that is not in the candidate list yet."""
    return await engine.manual_add_options()


@router.post("/sessions/{session_id}/manual-selection/toggle", response_model=SessionResponse)
async def toggle_manual_selection(
    body: ManualSelectionToggle,
    engine: EquipmentGroupingEngine = Depends(get_engine),
):
    await engine.toggle_manual_selection(body.equipment_id)
    return _response(engine)


@router.post("/sessions/{session_id}/manual-selection/confirm", response_model=SessionResponse)
async def confirm_manual_additions(engine: EquipmentGroupingEngine = Depends(get_engine)):
    await engine.confirm_manual_additions()
    return _response(engine)


# =============================================================================
# Steps
# =============================================================================


@router.post("/sessions/{session_id}/steps/generate", response_model=SessionResponse)
async def generate_steps(engine: EquipmentGroupingEngine = Depends(get_engine)):
    await engine.generate_steps()
    return _response(engine)


@router.patch("/sessions/{session_id}/steps/{index}", response_model=SessionResponse)
async def edit_step(index: int, body: GroupingStepUpdate, engine: EquipmentGroupingEngine = Depends(get_engine)):
    engine.edit_step(index, step=body.step, priority=body.priority)
    return _response(engine)


@router.delete("/sessions/{session_id}/steps/{index}", response_model=SessionResponse)
async def delete_step(index: int, engine: EquipmentGroupingEngine = Depends(get_engine)):
    engine.delete_step(index)
    return _response(engine)


@router.post("/sessions/{session_id}/steps/{index}/image", response_model=SessionResponse)
async def upload_step_image(
    index: int,
    request: Request,
    file: UploadFile = File(...),
    engine: EquipmentGroupingEngine = Depends(get_engine),
    images: ImageService = Depends(get_images),
):
    """Upload an image and attach it to one step."""
    enforce_rate_limit(request, "upload", get_settings().IMAGE_UPLOAD_RATE_LIMIT)
    engine.ensure_steps_editable()
    check_index(engine.session.steps, index)

    result = await images.upload_image(file)
    engine.set_step_image(index, result["url"])
    return _response(engine)


@router.post("/sessions/{session_id}/steps/{index}/image/generate", response_model=SessionResponse)
async def generate_step_image(
    index: int,
    request: Request,
    engine: EquipmentGroupingEngine = Depends(get_engine),
):
    """Generate an illustration for one step with the image model."""
    enforce_rate_limit(request, "step_image", get_settings().STEP_IMAGE_RATE_LIMIT)
    await engine.generate_step_image(index)
    return _response(engine)


@router.delete("/sessions/{session_id}/steps/{index}/image", response_model=SessionResponse)
async def remove_step_image(index: int, engine: EquipmentGroupingEngine = Depends(get_engine)):
    engine.remove_step_image(index)
    return _response(engine)


# =============================================================================
# Save
# =============================================================================


@router.post("/sessions/{session_id}/save", response_model=SessionResponse)
async def save_protocol(engine: EquipmentGroupingEngine = Depends(get_engine)):
    """Persist the steps as the protocol of the first confirmed equipment's triple."""
    protocol = await engine.save()
    logger.info(
        f"Grouping saved {protocol.id}",
        extra={"session_id": engine.session_id, "protocol_id": protocol.id},
    )
    return _response(engine)
