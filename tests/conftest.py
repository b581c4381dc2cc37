"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and provides:
- Async test support
- A sample catalog (clients, systems, equipment, protocols)
- In-memory catalog store and deterministic suggestion stub
"""

import asyncio
import os

import pytest

from maintenance.fsm.grouping_workflow import GroupingSession
from maintenance.schemas import (
    ClientRecord,
    EquipmentRecord,
    ProtocolRecord,
    ProtocolStep,
    SystemRecord,
    Warehouse,
)
from maintenance.services.grouping_engine import EquipmentGroupingEngine
from maintenance.services.protocol_editor import ProtocolEditor
from shared.config import UNLINKED_OVERRIDE
from tests.fakes import InMemoryCatalogStore, StubSuggestionService

os.environ.setdefault("ENVIRONMENT", "test")


# =============================================================================
# ASYNC TEST SUPPORT
# =============================================================================

def pytest_collection_modifyitems(items):
    """Mark all async tests with pytest.mark.asyncio."""
    for item in items:
        if asyncio.iscoroutinefunction(item.function):
            item.add_marker(pytest.mark.asyncio)


# =============================================================================
# SAMPLE CATALOG
# =============================================================================

def make_equipment(equipment_id: str, name: str, type_: str, brand: str, model: str, **extra) -> EquipmentRecord:
    return EquipmentRecord(id=equipment_id, name=name, type=type_, brand=brand, model=model, **extra)


@pytest.fixture
def clients() -> list[ClientRecord]:
    return [
        ClientRecord(
            id="cli-acme",
            name="Acme Seguridad",
            warehouses=[Warehouse(nombre="Almacén Norte"), Warehouse(nombre="Almacén Sur")],
        ),
        ClientRecord(id="cli-beta", name="Beta Logística", warehouses=[Warehouse(nombre="Bodega Central")]),
    ]


@pytest.fixture
def systems() -> list[SystemRecord]:
    return [
        SystemRecord(id="sys-cctv", name="CCTV"),
        SystemRecord(id="sys-access", name="Control de Acceso"),
    ]


@pytest.fixture
def equipment() -> list[EquipmentRecord]:
    """
    eq-ref / eq-sim: same triple, no protocol.
    eq-bullet: different triple, no protocol.
    eq-linked: covered by lector-zkteco-k40.
    eq-unlinked: same triple as eq-linked, explicitly unlinked.
    """
    return [
        make_equipment(
            "eq-ref", "Domo PTZ Entrada", "Domo PTZ", "Hikvision", "DS-2",
            client="Acme Seguridad", system="CCTV", location="Almacén Norte",
            description="Domo exterior con zoom",
        ),
        make_equipment(
            "eq-sim", "Domo PTZ Patio", "Domo PTZ", "Hikvision", "DS-2",
            client="Acme Seguridad", system="CCTV", location="Almacén Sur",
        ),
        make_equipment(
            "eq-bullet", "Cámara Bala Rampa", "Bala", "Dahua", "B1",
            client="Beta Logística", system="CCTV", location="Bodega Central",
        ),
        make_equipment(
            "eq-linked", "Lector Lobby", "Lector", "ZKTeco", "K40",
            client="Acme Seguridad", system="Control de Acceso", location="Almacén Norte",
        ),
        make_equipment(
            "eq-unlinked", "Lector Bodega", "Lector", "ZKTeco", "K40",
            client="Beta Logística", system="Control de Acceso", location="Bodega Central",
            protocol_override=UNLINKED_OVERRIDE,
        ),
    ]


@pytest.fixture
def protocols() -> list[ProtocolRecord]:
    return [
        ProtocolRecord(
            id="lector-zkteco-k40",
            type="Lector",
            brand="ZKTeco",
            model="K40",
            steps=[
                ProtocolStep(step="Limpiar sensor", priority="media", percentage=40, image_url="/images/a.png"),
                ProtocolStep(step="Probar relevador", priority="alta", percentage=60, notes="ok", completion=100),
            ],
        ),
    ]


@pytest.fixture
def store(equipment, protocols, clients, systems) -> InMemoryCatalogStore:
    return InMemoryCatalogStore(equipment, protocols, clients, systems)


@pytest.fixture
def suggestions() -> StubSuggestionService:
    return StubSuggestionService()


@pytest.fixture
def engine(store, suggestions) -> EquipmentGroupingEngine:
    return EquipmentGroupingEngine(store, suggestions, session=GroupingSession(), session_id="test-session")


@pytest.fixture
def editor(store, suggestions) -> ProtocolEditor:
    return ProtocolEditor(store, suggestions, session_id="test-editor")


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
