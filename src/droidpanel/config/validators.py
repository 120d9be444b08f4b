"""
Configuration validation utilities.

Each section of `config.toml` is validated into its dataclass. Missing keys
take the defaults of the dataclasses; present keys must be well formed.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from ..models.config import (
    AppConfig, BuildConfig, LogConfig, ProcessConfig, SdkConfig, TimingConfig
)
from ..validation import (
    ValidationError,
    validate_non_empty_string,
    validate_positive_float,
    validate_positive_integer,
    validate_string_list,
)

logger = logging.getLogger(__name__)


def default_sdk_home() -> Path:
    """ANDROID_HOME if set, otherwise the platform's default SDK location."""
    env_home = os.environ.get("ANDROID_HOME") or os.environ.get("ANDROID_SDK_ROOT")
    if env_home:
        return Path(env_home).expanduser()
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Android" / "sdk"
    return Path.home() / "Android" / "Sdk"


def default_settings_path() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "droidpanel" / "settings.toml"


def validate_sdk_config(sdk_data: Dict[str, Any]) -> SdkConfig:
    home = sdk_data.get("home")
    sdk_home = Path(validate_non_empty_string(home, "sdk.home")).expanduser() if home else default_sdk_home()
    build_tools_version = validate_non_empty_string(
        sdk_data.get("build_tools_version", SdkConfig.build_tools_version),
        field_name="sdk.build_tools_version",
    )
    return SdkConfig(home=sdk_home, build_tools_version=build_tools_version)


def validate_process_config(process_data: Dict[str, Any]) -> ProcessConfig:
    defaults = ProcessConfig()
    return ProcessConfig(
        shell=validate_non_empty_string(process_data.get("shell", defaults.shell), "process.shell"),
        shell_args=validate_string_list(process_data.get("shell_args", defaults.shell_args), "process.shell_args"),
        kill_grace_period=validate_positive_float(
            process_data.get("kill_grace_period", defaults.kill_grace_period),
            min_value=0.0,
            max_value=60.0,
            field_name="process.kill_grace_period",
        ),
        max_task_workers=validate_positive_integer(
            process_data.get("max_task_workers", defaults.max_task_workers),
            min_value=2,
            max_value=64,
            field_name="process.max_task_workers",
        ),
        max_polling_workers=validate_positive_integer(
            process_data.get("max_polling_workers", defaults.max_polling_workers),
            min_value=1,
            max_value=8,
            field_name="process.max_polling_workers",
        ),
    )


def validate_timing_config(timing_data: Dict[str, Any]) -> TimingConfig:
    defaults = TimingConfig()
    values = {}
    for name in ("emulator_check_interval", "task_timer_interval"):
        values[name] = validate_positive_float(
            timing_data.get(name, getattr(defaults, name)),
            min_value=0.01,  # 10ms minimum
            max_value=3600.0,
            field_name=f"timing.{name}",
        )
    for name in ("adb_restart_delay", "mdns_init_delay", "launch_delay"):
        values[name] = validate_positive_float(
            timing_data.get(name, getattr(defaults, name)),
            min_value=0.0,
            max_value=60.0,
            field_name=f"timing.{name}",
        )
    return TimingConfig(**values)


def validate_log_config(log_data: Dict[str, Any]) -> LogConfig:
    defaults = LogConfig()
    max_lines = validate_positive_integer(
        log_data.get("max_lines", defaults.max_lines), min_value=1, field_name="log.max_lines"
    )
    trim_threshold = validate_positive_integer(
        log_data.get("trim_threshold", defaults.trim_threshold), min_value=2, field_name="log.trim_threshold"
    )
    if trim_threshold <= max_lines:
        raise ValidationError(
            f"log.trim_threshold ({trim_threshold}) must be greater than log.max_lines ({max_lines})",
            field_name="log.trim_threshold",
            value=trim_threshold,
        )
    timestamp_messages = log_data.get("timestamp_messages", defaults.timestamp_messages)
    if not isinstance(timestamp_messages, bool):
        raise ValidationError(
            f"log.timestamp_messages must be a boolean, got {timestamp_messages!r}",
            field_name="log.timestamp_messages",
            value=timestamp_messages,
        )
    return LogConfig(max_lines=max_lines, trim_threshold=trim_threshold,
                     timestamp_messages=timestamp_messages)


def validate_build_config(build_data: Dict[str, Any]) -> BuildConfig:
    defaults = BuildConfig()
    return BuildConfig(**{
        name: validate_non_empty_string(build_data.get(name, getattr(defaults, name)), f"build.{name}")
        for name in ("gradle_wrapper", "default_module", "debug_build_type", "release_build_type")
    })


def validate_app_config(data: Dict[str, Any], config_dir: Optional[Path] = None) -> AppConfig:
    """
    Validate the whole parsed `config.toml` into an AppConfig.

    Args:
        data: Parsed TOML data
        config_dir: Directory of the config file, for relative settings paths

    Raises:
        ValidationError: If any section is malformed
    """
    settings_data = data.get("settings", {})
    settings_file = settings_data.get("path")
    if settings_file:
        settings_path = Path(validate_non_empty_string(settings_file, "settings.path")).expanduser()
        if not settings_path.is_absolute() and config_dir is not None:
            settings_path = config_dir / settings_path
    else:
        settings_path = default_settings_path()

    app_config = AppConfig(
        sdk=validate_sdk_config(data.get("sdk", {})),
        process=validate_process_config(data.get("process", {})),
        timing=validate_timing_config(data.get("timing", {})),
        log=validate_log_config(data.get("log", {})),
        build=validate_build_config(data.get("build", {})),
        settings_path=settings_path,
    )
    logger.debug(f"Validated configuration: sdk={app_config.sdk.home}, shell={app_config.process.shell}")
    return app_config
