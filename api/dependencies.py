"""
Guardian Shield - FastAPI dependencies.

Routes receive their collaborators through these providers so tests can
replace them with app.dependency_overrides.
"""

from api.services.image_service import ImageService, get_image_service
from api.services.workflow_registry import WorkflowSessionRegistry, get_workflow_registry
from maintenance.services.catalog_store import CatalogStore, get_catalog_store
from maintenance.services.suggestion_service import LLMSuggestionService, SuggestionService

_suggestion_service: LLMSuggestionService | None = None


def get_store() -> CatalogStore:
    return get_catalog_store()


def get_suggestions() -> SuggestionService:
    """LLM-backed suggestions; generated images are stored as uploads."""
    global _suggestion_service
    if _suggestion_service is None:
        _suggestion_service = LLMSuggestionService(image_sink=get_image_service())
    return _suggestion_service


def get_registry() -> WorkflowSessionRegistry:
    return get_workflow_registry()


def get_images() -> ImageService:
    return get_image_service()
