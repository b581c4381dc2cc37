"""
Tests for dashboard filters and sorting.
"""

from maintenance.services.equipment_filters import (
    EquipmentFilter,
    apply_filters,
    client_warehouses,
    filter_equipment,
    sort_equipment,
)


def _ids(items):
    return [eq.id for eq in items]


class TestFilters:
    def test_no_filters(self, equipment, clients, systems):
        assert len(filter_equipment(equipment, clients, systems, EquipmentFilter())) == len(equipment)

    def test_all_means_no_filter(self, equipment, clients, systems):
        criteria = EquipmentFilter(client_id="all", system_id="all", warehouse="all")
        assert len(filter_equipment(equipment, clients, systems, criteria)) == len(equipment)

    def test_by_client(self, equipment, clients, systems):
        result = filter_equipment(equipment, clients, systems, EquipmentFilter(client_id="cli-beta"))
        assert set(_ids(result)) == {"eq-bullet", "eq-unlinked"}

    def test_by_system(self, equipment, clients, systems):
        result = filter_equipment(equipment, clients, systems, EquipmentFilter(system_id="sys-access"))
        assert set(_ids(result)) == {"eq-linked", "eq-unlinked"}

    def test_by_client_and_warehouse(self, equipment, clients, systems):
        criteria = EquipmentFilter(client_id="cli-acme", warehouse="Almacén Norte")
        assert set(_ids(filter_equipment(equipment, clients, systems, criteria))) == {"eq-ref", "eq-linked"}

    def test_warehouse_of_other_client_ignored(self, equipment, clients, systems):
        criteria = EquipmentFilter(client_id="cli-acme", warehouse="Bodega Central")
        result = filter_equipment(equipment, clients, systems, criteria)
        assert set(_ids(result)) == {"eq-ref", "eq-sim", "eq-linked"}

    def test_unknown_client_ignored(self, equipment, clients, systems):
        result = filter_equipment(equipment, clients, systems, EquipmentFilter(client_id="cli-x"))
        assert len(result) == len(equipment)

    def test_client_warehouses(self, clients):
        assert client_warehouses(clients, "cli-acme") == ["Almacén Norte", "Almacén Sur"]
        assert client_warehouses(clients, "all") == []
        assert client_warehouses(clients, None) == []


class TestSorting:
    def test_by_name_ignores_case_and_accents(self, equipment):
        result = sort_equipment(equipment, "name")
        assert _ids(result) == ["eq-bullet", "eq-ref", "eq-sim", "eq-unlinked", "eq-linked"]

    def test_descending(self, equipment):
        result = sort_equipment(equipment, "name", "descending")
        assert _ids(result) == ["eq-linked", "eq-unlinked", "eq-sim", "eq-ref", "eq-bullet"]

    def test_apply_filters_filters_then_sorts(self, equipment, clients, systems):
        criteria = EquipmentFilter(system_id="sys-cctv", sort_key="client", sort_direction="descending")
        result = apply_filters(equipment, clients, systems, criteria)

        assert _ids(result)[0] == "eq-bullet"
        assert set(_ids(result)) == {"eq-ref", "eq-sim", "eq-bullet"}
