"""
Guardian Shield - Protocol editor API routes.

Editor sessions hold a working copy of one protocol's steps. Nothing is
written until /save; deleting the session discards the buffer.
"""

import logging

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from api.dependencies import get_images, get_registry, get_store, get_suggestions
from api.middleware.rate_limit import enforce_rate_limit
from api.models.protocol import (
    EditorOpen,
    EditorStepUpdate,
    SessionResponse,
    StepCreate,
    StepImageRef,
    SuggestedStepsAdd,
)
from api.services.image_service import ImageService
from api.services.workflow_registry import WorkflowSessionRegistry
from maintenance.services.catalog_store import CatalogStore
from maintenance.services.protocol_editor import ProtocolEditor
from maintenance.services.step_edits import check_index
from maintenance.services.suggestion_service import SuggestionService
from shared.config import get_settings
from shared.errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/editor", tags=["Protocol Editor"])


def get_editor(
    session_id: str,
    registry: WorkflowSessionRegistry = Depends(get_registry),
    store: CatalogStore = Depends(get_store),
    suggestions: SuggestionService = Depends(get_suggestions),
) -> ProtocolEditor:
    return ProtocolEditor(
        store,
        suggestions,
        session=registry.editor(session_id),
        session_id=session_id,
    )


def _response(editor: ProtocolEditor) -> SessionResponse:
    return SessionResponse(session_id=editor.session_id, state=editor.state())


# =============================================================================
# Session lifecycle
# =============================================================================


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def open_editor(
    body: EditorOpen,
    registry: WorkflowSessionRegistry = Depends(get_registry),
    store: CatalogStore = Depends(get_store),
    suggestions: SuggestionService = Depends(get_suggestions),
):
    """Open a protocol for an equipment item or for a (type, brand, model) triple."""
    session_id = registry.create("editor")
    editor = ProtocolEditor(store, suggestions, session=registry.editor(session_id), session_id=session_id)
    try:
        if body.equipment_id:
            await editor.open_for_equipment(body.equipment_id)
        else:
            await editor.open_for_triple(body.type, body.brand, body.model)
    except Exception:
        registry.delete(session_id)
        raise
    return _response(editor)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(editor: ProtocolEditor = Depends(get_editor)):
    return _response(editor)


@router.delete("/sessions/{session_id}", status_code=204)
async def cancel_editor(session_id: str, registry: WorkflowSessionRegistry = Depends(get_registry)) -> None:
    """Discard the buffer without saving."""
    if not registry.delete(session_id):
        raise NotFoundError("La sesión no existe o ha expirado.", context={"session_id": session_id})


# =============================================================================
# Steps
# =============================================================================


@router.post("/sessions/{session_id}/steps", response_model=SessionResponse, status_code=201)
async def add_step(body: StepCreate, editor: ProtocolEditor = Depends(get_editor)):
    editor.add_step(body.step, body.priority, body.percentage)
    return _response(editor)


@router.patch("/sessions/{session_id}/steps/{index}", response_model=SessionResponse)
async def edit_step(index: int, body: EditorStepUpdate, editor: ProtocolEditor = Depends(get_editor)):
    editor.edit_step(index, **body.model_dump(exclude_none=True))
    return _response(editor)


@router.delete("/sessions/{session_id}/steps/{index}", response_model=SessionResponse)
async def delete_step(index: int, editor: ProtocolEditor = Depends(get_editor)):
    editor.delete_step(index)
    return _response(editor)


@router.put("/sessions/{session_id}/steps/{index}/image", response_model=SessionResponse)
async def set_step_image(index: int, body: StepImageRef, editor: ProtocolEditor = Depends(get_editor)):
    """Attach an already stored image to one step."""
    editor.set_step_image(index, body.image_url)
    return _response(editor)


@router.post("/sessions/{session_id}/steps/{index}/image", response_model=SessionResponse)
async def upload_step_image(
    index: int,
    request: Request,
    file: UploadFile = File(...),
    editor: ProtocolEditor = Depends(get_editor),
    images: ImageService = Depends(get_images),
):
    """Upload an image and attach it to one step."""
    enforce_rate_limit(request, "upload", get_settings().IMAGE_UPLOAD_RATE_LIMIT)
    check_index(editor.session.steps, index)

    result = await images.upload_image(file)
    editor.set_step_image(index, result["url"])
    return _response(editor)


@router.post("/sessions/{session_id}/steps/{index}/image/generate", response_model=SessionResponse)
async def generate_step_image(index: int, request: Request, editor: ProtocolEditor = Depends(get_editor)):
    enforce_rate_limit(request, "step_image", get_settings().STEP_IMAGE_RATE_LIMIT)
    await editor.generate_step_image(index)
    return _response(editor)


@router.delete("/sessions/{session_id}/steps/{index}/image", response_model=SessionResponse)
async def remove_step_image(index: int, editor: ProtocolEditor = Depends(get_editor)):
    editor.remove_step_image(index)
    return _response(editor)


# =============================================================================
# AI suggestions
# =============================================================================


@router.post("/sessions/{session_id}/suggestions", response_model=SessionResponse)
async def suggest_additional_steps(editor: ProtocolEditor = Depends(get_editor)):
    """Ask the model for steps; they appear under suggested_steps until added."""
    await editor.suggest_additional_steps()
    return _response(editor)


@router.post("/sessions/{session_id}/suggestions/add", response_model=SessionResponse)
async def add_suggested_steps(body: SuggestedStepsAdd, editor: ProtocolEditor = Depends(get_editor)):
    editor.add_suggested_steps(body.indices)
    return _response(editor)


# =============================================================================
# Persistence
# =============================================================================


@router.post("/sessions/{session_id}/save", response_model=SessionResponse)
async def save_protocol(editor: ProtocolEditor = Depends(get_editor)):
    """Overwrite the protocol's steps; affects every equipment it covers."""
    await editor.save()
    return _response(editor)


@router.delete("/sessions/{session_id}/protocol", status_code=204)
async def delete_protocol(
    session_id: str,
    confirm: bool = Query(False, description="Must be true to delete"),
    editor: ProtocolEditor = Depends(get_editor),
    registry: WorkflowSessionRegistry = Depends(get_registry),
) -> None:
    await editor.delete_protocol(confirm)
    registry.delete(session_id)
