"""
Tests for persistent user settings.
"""

import stat

import pytest
import toml

from droidpanel.settings import SETTING_KEYS, Settings, SettingsStore
from droidpanel.validation import ValidationError


@pytest.fixture
def settings_path(temp_dir):
    return temp_dir / "settings" / "settings.toml"


@pytest.mark.unit
class TestSettingsStore:

    def test_defaults_without_file(self, settings_path):
        store = SettingsStore(settings_path)

        assert store.settings == Settings()
        assert store.get("build_type") == "release"
        assert store.get("selected_app_module") == "app"
        assert not settings_path.exists()

    def test_set_persists_and_reloads(self, settings_path, android_project):
        store = SettingsStore(settings_path)
        store.set("project_path", str(android_project))
        store.set("build_type", "DEBUG")

        reloaded = SettingsStore(settings_path)

        assert reloaded.get("project_path") == str(android_project)
        assert reloaded.get("build_type") == "debug"

    def test_file_is_private(self, settings_path):
        store = SettingsStore(settings_path)
        store.set("store_password", "s3cret")

        mode = stat.S_IMODE(settings_path.stat().st_mode)
        assert mode == 0o600

    def test_invalid_build_type_rejected(self, settings_path):
        store = SettingsStore(settings_path)

        with pytest.raises(ValidationError):
            store.set("build_type", "profile")
        assert store.get("build_type") == "release"

    def test_missing_project_path_rejected(self, settings_path, temp_dir):
        store = SettingsStore(settings_path)

        with pytest.raises(ValidationError):
            store.set("project_path", str(temp_dir / "nowhere"))

    def test_unknown_key_rejected(self, settings_path):
        store = SettingsStore(settings_path)

        with pytest.raises(ValidationError):
            store.get("theme")
        with pytest.raises(ValidationError):
            store.set("theme", "dark")

    def test_unknown_keys_in_file_are_ignored(self, settings_path):
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text(toml.dumps({"key_alias": "upload", "theme": "dark"}))

        store = SettingsStore(settings_path)

        assert store.get("key_alias") == "upload"

    def test_invalid_build_type_in_file(self, settings_path):
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text('build_type = "beta"\n')

        with pytest.raises(ValidationError):
            SettingsStore(settings_path)

    def test_malformed_file(self, settings_path):
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text("build_type = \n")

        with pytest.raises(toml.TomlDecodeError):
            SettingsStore(settings_path)

    def test_passwords_masked_for_display(self, settings_path):
        store = SettingsStore(settings_path)
        store.set("store_password", "s3cret")

        items = store.display_items()

        assert items["store_password"] == "********"
        assert items["key_password"] == ""
        assert set(items) == set(SETTING_KEYS)
        assert "s3cret" not in repr(store.settings)

    def test_signing_credentials_need_every_part(self, settings_path):
        store = SettingsStore(settings_path)
        store.set("keystore_path", "/keys/release.jks")
        store.set("key_alias", "upload")
        store.set("store_password", "s3cret")

        assert store.signing_credentials() is None

        store.set("key_password", "k3y")
        credentials = store.signing_credentials()

        assert credentials.keystore_path == "/keys/release.jks"
        assert credentials.as_env() == {"DROIDPANEL_KS_PASS": "s3cret", "DROIDPANEL_KEY_PASS": "k3y"}

    def test_project_layout(self, settings_path, android_project):
        store = SettingsStore(settings_path)
        assert store.project_layout() is None

        store.set("project_path", str(android_project))
        store.set("selected_app_module", "")
        layout = store.project_layout(default_module="app")

        assert layout.project_dir == android_project
        assert layout.module == "app"
