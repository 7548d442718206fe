"""
Tests for persisted settings.
"""

import json

import pytest

from uploader.settings import DEFAULT_WEBHOOK_URL, AppSettings


class TestAppSettings:
    """Tests for defaults, persistence and reset."""

    def test_defaults(self, tmp_path):
        settings = AppSettings(str(tmp_path / "settings.json"))

        assert settings.webhook_url == DEFAULT_WEBHOOK_URL
        assert settings.debug_output_enabled is False

    def test_changes_persist(self, tmp_path):
        path = tmp_path / "nested" / "settings.json"
        settings = AppSettings(str(path))

        settings.webhook_url = "https://hooks.example.com/in"
        settings.debug_output_enabled = True

        reloaded = AppSettings(str(path))
        assert reloaded.webhook_url == "https://hooks.example.com/in"
        assert reloaded.debug_output_enabled is True
        assert json.loads(path.read_text())["webhookURL"] == "https://hooks.example.com/in"

    def test_reset_to_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        settings = AppSettings(str(path))
        settings.webhook_url = "https://hooks.example.com/in"
        settings.debug_output_enabled = True

        settings.reset_to_defaults()

        assert settings.webhook_url == DEFAULT_WEBHOOK_URL
        assert AppSettings(str(path)).debug_output_enabled is False

    def test_corrupt_file_yields_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")

        assert AppSettings(str(path)).webhook_url == DEFAULT_WEBHOOK_URL

    def test_unknown_keys_ignored_on_load(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"theme": "dark", "debugOutputEnabled": True}))

        settings = AppSettings(str(path))

        assert settings.debug_output_enabled is True
        assert settings.get("theme") is None

    def test_unknown_key_rejected_on_set(self, tmp_path):
        settings = AppSettings(str(tmp_path / "settings.json"))

        with pytest.raises(KeyError):
            settings.set("theme", "dark")
