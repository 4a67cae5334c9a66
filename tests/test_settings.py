"""
Tests for the settings manager runtime.
"""
import json
import logging

import pytest

from definitions import SETTINGS_DEFINITIONS, SETTINGS_STORAGE_KEY, Setting, SettingType
from settings import SettingsManager
from storage import MemoryStorage

from conftest import FailingStorage


def make_manager(blob=None) -> SettingsManager:
    storage = MemoryStorage()
    if blob is not None:
        storage.set_item(SETTINGS_STORAGE_KEY, blob if isinstance(blob, str) else json.dumps(blob))
    return SettingsManager(storage)


class TestInitialization:
    def test_lazy_initialization_on_first_get(self, memory_storage):
        manager = SettingsManager(memory_storage)
        assert not manager.initialized
        assert manager.get("font.size") == 28
        assert manager.initialized

    def test_every_key_has_value_of_declared_type(self, manager):
        for key, definition in SETTINGS_DEFINITIONS.items():
            assert definition.type.matches(manager.get(key)), key

    def test_initialize_twice_is_idempotent(self):
        manager = make_manager({"font.size": 40})
        manager.initialize()
        first = manager.export_all()
        manager.storage.set_item(SETTINGS_STORAGE_KEY, json.dumps({"font.size": 50}))
        manager.initialize()
        assert manager.export_all() == first

    def test_backfill_does_not_touch_stored_blob(self):
        raw = json.dumps({"font.size": 40})
        manager = make_manager(raw)
        manager.initialize()
        assert manager.get("theme.mode") == "dark"
        assert manager.storage.get_item(SETTINGS_STORAGE_KEY) == raw

    def test_corrupted_blob_falls_back_to_defaults(self, caplog):
        manager = make_manager("{not json")
        with caplog.at_level(logging.ERROR):
            manager.initialize()
        assert manager.get("font.size") == 28
        assert "Failed to load settings" in caplog.text

    def test_non_object_blob_falls_back_to_defaults(self):
        manager = make_manager("[1, 2, 3]")
        assert manager.get("theme.mode") == "dark"

    def test_unavailable_storage_falls_back_to_defaults(self):
        manager = SettingsManager(FailingStorage())
        assert manager.get("font.size") == 28

    def test_no_storage_still_works_in_memory(self):
        manager = SettingsManager(None)
        assert manager.set("font.size", 40)
        assert manager.get("font.size") == 40

    def test_stored_values_are_sanitized(self):
        manager = make_manager({
            "font.size": "32",
            "refresh.interval": 5,
            "theme.mode": "sepia",
            "refresh.auto": "yes",
            "display.dynamicSort": False,
        })
        assert manager.get("font.size") == 32
        assert manager.get("refresh.interval") == 300
        assert manager.get("theme.mode") == "dark"
        assert manager.get("refresh.auto") is True
        assert manager.get("display.dynamicSort") is False

    def test_stored_number_beyond_float_range_uses_default(self):
        huge = "1" + "0" * 400
        manager = make_manager('{"font.size": %s, "server.classNumber": "7"}' % huge)
        assert manager.get("font.size") == 28
        assert manager.get("server.classNumber") == "7"

    def test_unknown_stored_keys_are_preserved(self, stored_blob, memory_storage):
        memory_storage.set_item(SETTINGS_STORAGE_KEY, json.dumps({"legacy.flag": "keep-me"}))
        manager = SettingsManager(memory_storage)
        manager.set("font.size", 30)
        blob = stored_blob()
        assert blob["legacy.flag"] == "keep-me"
        assert blob["font.size"] == 30
        assert "legacy.flag" not in manager.export_all()


class TestGetSet:
    def test_set_then_get(self, manager, stored_blob):
        assert manager.set("theme.mode", "light")
        assert manager.get("theme.mode") == "light"
        assert stored_blob()["theme.mode"] == "light"

    def test_set_coerces_before_validating(self, manager):
        assert manager.set("font.size", "40")
        assert manager.get("font.size") == 40
        assert manager.set("refresh.auto", "false")
        assert manager.get("refresh.auto") is False
        assert manager.set("server.classNumber", 12)
        assert manager.get("server.classNumber") == "12"

    def test_uncoercible_value_is_rejected(self, manager):
        assert not manager.set("font.size", "big")
        assert manager.get("font.size") == 28

    @pytest.mark.parametrize("value", [10**400, "1" + "0" * 400, float("inf")])
    def test_out_of_range_number_is_rejected(self, manager, stored_blob, value):
        assert manager.set("font.size", value) is False
        assert manager.get("font.size") == 28
        assert manager.set("font.size", 40)
        assert stored_blob()["font.size"] == 40

    def test_unrecognised_boolean_word_uses_truthiness(self, manager):
        assert manager.set("refresh.auto", "hello")
        assert manager.get("refresh.auto") is True
        assert manager.set("refresh.auto", "off")
        assert manager.get("refresh.auto") is False

    @pytest.mark.parametrize("value, accepted", [(15, False), (16, True), (100, True), (101, False)])
    def test_font_size_validation_boundary(self, manager, value, accepted):
        assert manager.set("font.size", value) is accepted
        assert manager.get("font.size") == (value if accepted else 28)

    def test_invalid_value_leaves_cache_and_storage_untouched(self, manager, stored_blob):
        manager.set("theme.mode", "light")
        assert not manager.set("theme.mode", "neon")
        assert manager.get("theme.mode") == "light"
        assert stored_blob()["theme.mode"] == "light"

    def test_unknown_key(self, manager, caplog):
        with caplog.at_level(logging.WARNING):
            assert manager.get("no.such.key") is None
            assert manager.set("no.such.key", 1) is False
        assert "Undefined setting: no.such.key" in caplog.text

    def test_save_failure_keeps_cache_authoritative(self, caplog):
        storage = FailingStorage()
        manager = SettingsManager(storage)
        with caplog.at_level(logging.ERROR):
            assert manager.set("font.size", 40)
        assert manager.get("font.size") == 40
        assert storage.write_attempts == 1
        assert "Failed to save settings" in caplog.text


class TestDeveloperGate:
    def test_gate_hides_stored_value(self):
        manager = make_manager({"developer.enabled": False, "developer.disableMessageLog": True})
        assert manager.get("developer.disableMessageLog") is False

    def test_gate_blocks_writes(self, manager, stored_blob):
        assert manager.set("developer.disableMessageLog", True) is False
        assert stored_blob() is None
        manager.set("developer.enabled", True)
        assert manager.get("developer.disableMessageLog") is False

    def test_open_gate_reveals_stored_value(self):
        manager = make_manager({"developer.enabled": False, "developer.disableMessageLog": True})
        assert manager.set("developer.enabled", True)
        assert manager.get("developer.disableMessageLog") is True

    def test_writes_allowed_with_gate_open(self, manager):
        manager.set("developer.enabled", True)
        assert manager.set("developer.disableMessageLog", True)
        assert manager.get("developer.disableMessageLog") is True

    def test_reset_bypasses_gate(self):
        manager = make_manager({"developer.enabled": False, "developer.disableMessageLog": True})
        manager.reset("developer.disableMessageLog")
        manager.set("developer.enabled", True)
        assert manager.get("developer.disableMessageLog") is False


class TestCloudOverrides:
    def test_cloud_provider_forces_domain(self, manager):
        assert manager.set("server.domain", "https://my.school.example")
        assert manager.set("server.provider", "classworkscloud")
        assert manager.get("server.domain") == "https://kv.wuyuan.dev"
        assert manager.get("server.siteKey") == ""

    def test_override_does_not_change_stored_value(self, manager, stored_blob):
        manager.set("server.domain", "https://my.school.example")
        manager.set("server.provider", "classworkscloud")
        assert stored_blob()["server.domain"] == "https://my.school.example"
        manager.set("server.provider", "kv-server")
        assert manager.get("server.domain") == "https://my.school.example"

    def test_non_override_keys_unaffected(self, manager):
        manager.set("server.provider", "classworkscloud")
        assert manager.get("server.classNumber") == "高一6班"


class TestReset:
    def test_reset_restores_default_and_persists(self, manager, stored_blob):
        manager.set("font.size", 60)
        manager.reset("font.size")
        assert manager.get("font.size") == 28
        assert stored_blob()["font.size"] == 28

    def test_reset_unknown_key_is_noop(self, manager, stored_blob):
        assert manager.reset("no.such.key") is None
        assert stored_blob() is None

    def test_reset_all(self, manager, stored_blob):
        manager.set("font.size", 60)
        manager.set("theme.mode", "light")
        manager.set("server.provider", "kv-server")
        manager.reset_all()
        for key, definition in SETTINGS_DEFINITIONS.items():
            assert manager.get(key) == definition.default
        assert stored_blob()["font.size"] == 28
        assert manager.initialized


class TestExport:
    def test_export_all_matches_get(self, manager):
        manager.set("server.provider", "classworkscloud")
        exported = manager.export_all()
        assert set(exported) == set(SETTINGS_DEFINITIONS)
        for key, value in exported.items():
            assert value == manager.get(key)

    def test_export_all_returns_a_copy(self, manager):
        exported = manager.export_all()
        exported["font.size"] = 99
        assert manager.get("font.size") == 28

    def test_export_tree_nests_by_key_path(self, manager):
        manager.set("font.size", 40)
        tree = manager.export_tree()
        assert tree["font"]["size"] == 40
        assert tree["display"]["dynamicSort"] is True
        assert set(tree["developer"]) == {"enabled", "showDebugConfig", "disableMessageLog"}

    def test_get_definition_passthrough(self, manager):
        assert manager.get_definition("font.size") is SETTINGS_DEFINITIONS["font.size"]
        assert manager.get_definition("no.such.key") is None


class TestLegacyMirror:
    def test_successful_set_writes_legacy_slot(self, memory_storage):
        definitions = {
            "display.fontSize": Setting(SettingType.NUMBER, 28, legacy_key="fontSize"),
            "display.compact": Setting(SettingType.BOOLEAN, False, legacy_key="compactMode"),
        }
        manager = SettingsManager(memory_storage, definitions=definitions)
        assert manager.set("display.fontSize", "32")
        assert manager.set("display.compact", True)
        assert memory_storage.get_item("fontSize") == "32"
        assert memory_storage.get_item("compactMode") == "true"

    def test_rejected_set_leaves_legacy_slot(self, memory_storage):
        definitions = {
            "display.fontSize": Setting(SettingType.NUMBER, 28, validate="font_size", legacy_key="fontSize"),
        }
        manager = SettingsManager(memory_storage, definitions=definitions)
        assert not manager.set("display.fontSize", 5)
        assert memory_storage.get_item("fontSize") is None


class TestChangeLogging:
    def test_silent_by_default(self, manager, caplog):
        with caplog.at_level(logging.INFO, logger="settings.changes"):
            manager.set("font.size", 40)
        assert not [r for r in caplog.records if r.name == "settings.changes"]

    def test_logs_when_debug_config_enabled(self, manager, caplog):
        manager.set("developer.enabled", True)
        manager.set("developer.showDebugConfig", True)
        with caplog.at_level(logging.INFO, logger="settings.changes"):
            manager.set("font.size", 40)
        records = [r for r in caplog.records if r.name == "settings.changes"]
        assert len(records) == 1
        change = records[0].setting_change
        assert change["key"] == "font.size"
        assert change["old"] == 28
        assert change["new"] == 40
        assert len(change["time"]) == 8
