"""
Tests for shared configuration exports.
"""

import shared.config as config
from shared.config import DEFAULT_STEP_PRIORITY, PRIORITY_VALUES, UNLINKED_OVERRIDE


def test_exported_names_exist():
    assert all(hasattr(config, name) for name in config.__all__)


def test_exports_are_the_settings_and_domain_constants():
    assert set(config.__all__) == {
        "Settings",
        "get_settings",
        "PRIORITY_VALUES",
        "DEFAULT_STEP_PRIORITY",
        "UNLINKED_OVERRIDE",
    }


def test_domain_constants():
    assert PRIORITY_VALUES == ("baja", "media", "alta")
    assert DEFAULT_STEP_PRIORITY in PRIORITY_VALUES
    assert UNLINKED_OVERRIDE == "__unlinked__"
