"""
Guardian Shield - API Services.

Image storage and in-memory workflow sessions for the API.
"""

from api.services.image_service import ImageService, get_image_service
from api.services.workflow_registry import WorkflowSessionRegistry, get_workflow_registry

__all__ = [
    "ImageService",
    "get_image_service",
    "WorkflowSessionRegistry",
    "get_workflow_registry",
]
