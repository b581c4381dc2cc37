"""
Guardian Shield - Maintenance Services module.

Business logic for protocol consolidation.
"""

from maintenance.services.catalog_store import CatalogStore, SqlCatalogStore, get_catalog_store
from maintenance.services.grouping_engine import EquipmentGroupingEngine
from maintenance.services.protocol_editor import EditorSession, ProtocolEditor
from maintenance.services.suggestion_service import LLMSuggestionService, SuggestionService
from maintenance.services.unlink_service import UnlinkService

__all__ = [
    "CatalogStore",
    "SqlCatalogStore",
    "get_catalog_store",
    "EquipmentGroupingEngine",
    "EditorSession",
    "ProtocolEditor",
    "LLMSuggestionService",
    "SuggestionService",
    "UnlinkService",
]
