"""
Unit tests for configuration loading and validation.
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from droidpanel.config import (
    clear_config_cache,
    default_sdk_home,
    default_settings_path,
    get_config,
    get_config_info,
    is_config_loaded,
    set_config_path,
    validate_app_config,
)
from droidpanel.validation import ValidationError


@pytest.mark.unit
class TestValidateAppConfig:

    def test_empty_data_uses_defaults(self):
        config = validate_app_config({})

        assert config.sdk.build_tools_version == "36.0.0"
        assert config.process.shell == "/bin/bash"
        assert config.process.shell_args == ["-c"]
        assert config.process.kill_grace_period == 0.5
        assert config.timing.emulator_check_interval == 1.0
        assert config.timing.task_timer_interval == 0.1
        assert config.log.max_lines == 1000
        assert config.log.trim_threshold == 1200
        assert config.build.gradle_wrapper == "./gradlew"

    def test_sdk_tool_paths(self, temp_dir):
        config = validate_app_config({"sdk": {"home": str(temp_dir), "build_tools_version": "35.0.1"}})

        assert config.sdk.adb_path == temp_dir / "platform-tools" / "adb"
        assert config.sdk.emulator_path == temp_dir / "emulator" / "emulator"
        assert config.sdk.zipalign_path == temp_dir / "build-tools" / "35.0.1" / "zipalign"
        assert config.sdk.apksigner_path == temp_dir / "build-tools" / "35.0.1" / "apksigner"

    def test_trim_threshold_must_exceed_max_lines(self):
        with pytest.raises(ValidationError, match="trim_threshold"):
            validate_app_config({"log": {"max_lines": 500, "trim_threshold": 500}})

    def test_timestamp_flag_must_be_bool(self):
        with pytest.raises(ValidationError, match="timestamp_messages"):
            validate_app_config({"log": {"timestamp_messages": "yes"}})

    def test_task_pool_needs_two_workers(self):
        with pytest.raises(ValidationError, match="max_task_workers"):
            validate_app_config({"process": {"max_task_workers": 1}})

    def test_relative_settings_path_resolved_against_config_dir(self, temp_dir):
        config = validate_app_config({"settings": {"path": "state/settings.toml"}}, config_dir=temp_dir)
        assert config.settings_path == temp_dir / "state" / "settings.toml"


@pytest.mark.unit
class TestDefaults:

    def test_android_home_wins(self, monkeypatch, temp_dir):
        monkeypatch.setenv("ANDROID_HOME", str(temp_dir))
        monkeypatch.setenv("ANDROID_SDK_ROOT", "/elsewhere")
        assert default_sdk_home() == temp_dir

    def test_platform_default(self, monkeypatch):
        monkeypatch.delenv("ANDROID_HOME", raising=False)
        monkeypatch.delenv("ANDROID_SDK_ROOT", raising=False)
        with patch.object(sys, "platform", "darwin"):
            assert default_sdk_home() == Path.home() / "Library" / "Android" / "sdk"
        with patch.object(sys, "platform", "linux"):
            assert default_sdk_home() == Path.home() / "Android" / "Sdk"

    def test_settings_path_follows_xdg(self, monkeypatch, temp_dir):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir))
        assert default_settings_path() == temp_dir / "droidpanel" / "settings.toml"


@pytest.mark.unit
class TestConfigManager:

    def test_loads_and_caches(self, config_file, temp_dir):
        set_config_path(config_file)
        assert not is_config_loaded()

        config = get_config()

        assert config is get_config()
        assert config.process.shell == "/bin/sh"
        assert config.sdk.home == temp_dir / "sdk"
        info = get_config_info()
        assert info["config_loaded"] is True
        assert info["config_path"] == str(config_file)

    def test_missing_file_falls_back_to_defaults(self, temp_dir):
        set_config_path(temp_dir / "absent.toml")
        config = get_config()
        assert config.log.max_lines == 1000

    def test_invalid_file_raises(self, temp_dir):
        path = temp_dir / "config.toml"
        path.write_text("[log]\nmax_lines = 10\ntrim_threshold = 5\n")
        set_config_path(path)
        with pytest.raises(ValidationError):
            get_config()

    def test_clear_cache_forces_reload(self, config_file):
        set_config_path(config_file)
        first = get_config()
        clear_config_cache()
        assert get_config() is not first
