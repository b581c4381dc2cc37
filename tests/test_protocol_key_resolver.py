"""
Tests for protocol resolution and equipment classification.

Run with: pytest tests/test_protocol_key_resolver.py -v
"""

import pytest

from maintenance.schemas import EquipmentRecord, ProtocolRecord
from maintenance.services.protocol_key_resolver import (
    base_triple,
    classify,
    derive_key,
    derive_protocol_id,
    find_protocol_for,
    is_unlinked,
    protocol_id_for_triple,
)
from shared.config import UNLINKED_OVERRIDE
from shared.errors import WorkflowValidationError


def _eq(equipment_id, type_, brand, model, **extra):
    return EquipmentRecord(id=equipment_id, name=equipment_id, type=type_, brand=brand, model=model, **extra)


def _protocol(type_, brand, model, protocol_id=None):
    return ProtocolRecord(
        id=protocol_id or derive_protocol_id(type_, brand, model),
        type=type_,
        brand=brand,
        model=model,
        steps=[{"step": "Revisar"}],
    )


class TestDerivation:
    def test_key_is_case_sensitive(self):
        assert derive_key("Domo", "Axis", "Q1") != derive_key("domo", "Axis", "Q1")

    def test_protocol_id_is_slug(self):
        assert derive_protocol_id("Domo PTZ", "Hikvision", "DS-2") == "domo-ptz-hikvision-ds-2"

    def test_empty_fields_allowed(self):
        assert derive_key("", "", "") == "||"

    def test_separator_inside_field_does_not_collide(self):
        assert derive_key("a|b", "c", "d") != derive_key("a", "b|c", "d")
        assert derive_key("a\\", "b", "c") != derive_key("a", "\\b", "c")


class TestProtocolIdForTriple:
    def test_new_triple_uses_slug(self):
        assert protocol_id_for_triple(("Domo PTZ", "Hikvision", "DS-2"), []) == "domo-ptz-hikvision-ds-2"

    def test_existing_protocol_keeps_its_id(self):
        protocols = [_protocol("Domo", "Axis", "Q1", protocol_id="legacy-id")]
        assert protocol_id_for_triple(("Domo", "Axis", "Q1"), protocols) == "legacy-id"

    def test_slug_of_other_triple_rejected(self):
        protocols = [_protocol("Domo", "Axis", "Q1")]
        with pytest.raises(WorkflowValidationError):
            protocol_id_for_triple(("DOMO", "Axis", "Q1"), protocols)


class TestFindProtocol:
    def test_exact_triple_match(self):
        protocol = _protocol("Domo", "Axis", "Q1")
        assert find_protocol_for(_eq("a", "Domo", "Axis", "Q1"), [protocol]) == protocol

    def test_case_difference_does_not_match(self):
        protocol = _protocol("Domo", "Axis", "Q1")
        assert find_protocol_for(_eq("a", "DOMO", "Axis", "Q1"), [protocol]) is None

    def test_unlinked_override_ignores_matching_protocol(self):
        protocol = _protocol("Domo", "Axis", "Q1")
        item = _eq("a", "Domo", "Axis", "Q1", protocol_override=UNLINKED_OVERRIDE)
        assert find_protocol_for(item, [protocol]) is None

    def test_legacy_prefix_is_unlinked(self):
        protocol = _protocol("Domo", "Axis", "Q1")
        item = _eq("a", "UNLINKED_Domo", "Axis", "Q1")

        assert is_unlinked(item)
        assert find_protocol_for(item, [protocol]) is None
        assert base_triple(item) == ("Domo", "Axis", "Q1")

    def test_explicit_override_points_to_protocol_id(self):
        other = _protocol("Bala", "Dahua", "B1")
        item = _eq("a", "Domo", "Axis", "Q1", protocol_override=other.id)
        assert find_protocol_for(item, [_protocol("Domo", "Axis", "Q1"), other]) == other

    def test_override_to_missing_protocol_is_without(self):
        item = _eq("a", "Domo", "Axis", "Q1", protocol_override="does-not-exist")
        assert find_protocol_for(item, [_protocol("Domo", "Axis", "Q1")]) is None

    def test_protocol_with_divergent_id_still_matches_by_triple(self):
        protocol = _protocol("Domo", "Axis", "Q1", protocol_id="legacy-id")
        assert find_protocol_for(_eq("a", "Domo", "Axis", "Q1"), [protocol]) == protocol


class TestClassify:
    def test_every_item_in_exactly_one_list(self, equipment, protocols):
        partition = classify(equipment, protocols)

        assert partition.with_ids() | partition.without_ids() == {eq.id for eq in equipment}
        assert not partition.with_ids() & partition.without_ids()

    def test_sample_catalog(self, equipment, protocols):
        partition = classify(equipment, protocols)

        assert partition.with_ids() == {"eq-linked"}
        assert partition.without_ids() == {"eq-ref", "eq-sim", "eq-bullet", "eq-unlinked"}

    def test_input_order_preserved(self, equipment, protocols):
        partition = classify(equipment, protocols)
        assert [eq.id for eq in partition.without_protocol] == ["eq-ref", "eq-sim", "eq-bullet", "eq-unlinked"]

    def test_no_protocols(self, equipment):
        partition = classify(equipment, [])
        assert partition.with_protocol == []
        assert len(partition.without_protocol) == len(equipment)

    def test_recomputed_after_protocol_added(self, equipment, protocols):
        before = classify(equipment, protocols)
        after = classify(equipment, protocols + [_protocol("Domo PTZ", "Hikvision", "DS-2")])

        assert "eq-ref" in before.without_ids()
        assert {"eq-ref", "eq-sim"} <= after.with_ids()
