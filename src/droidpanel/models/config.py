"""
Configuration data models.

This module contains the configuration data structures loaded from
`config.toml`: SDK tool locations, shell/process settings, timing constants,
log trimming watermarks and build defaults.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class SdkConfig:
    """
    Location of the Android SDK and the tools used from it.
    """

    # Root of the SDK; exported to child processes as ANDROID_HOME.
    home: Path
    # Version directory under <sdk>/build-tools holding zipalign and apksigner.
    build_tools_version: str = "36.0.0"

    @property
    def adb_path(self) -> Path:
        return self.home / "platform-tools" / "adb"

    @property
    def emulator_path(self) -> Path:
        return self.home / "emulator" / "emulator"

    @property
    def build_tools_path(self) -> Path:
        return self.home / "build-tools" / self.build_tools_version

    @property
    def zipalign_path(self) -> Path:
        return self.build_tools_path / "zipalign"

    @property
    def apksigner_path(self) -> Path:
        return self.build_tools_path / "apksigner"


@dataclass
class ProcessConfig:
    """
    How external commands are launched and terminated.
    """

    # Interpreter that receives each command string as a single argument.
    shell: str = "/bin/bash"
    # Arguments placed between the shell and the command string.
    shell_args: List[str] = field(default_factory=lambda: ["-c"])
    # Seconds to wait after a graceful signal before escalating.
    kill_grace_period: float = 0.5
    # Worker threads for foreground tasks (spawning, pipelines, kills).
    max_task_workers: int = 4
    # Worker threads for device status queries.
    max_polling_workers: int = 1


@dataclass
class TimingConfig:
    """
    Fixed intervals and delays, in seconds.
    """

    emulator_check_interval: float = 1.0
    task_timer_interval: float = 0.1
    adb_restart_delay: float = 1.0
    mdns_init_delay: float = 2.0
    # Pause between installing an app and launching its activity.
    launch_delay: float = 2.0


@dataclass
class LogConfig:
    """
    Two-watermark trimming of the in-memory log.
    """

    # Length the log is cut down to once it grows past trim_threshold.
    max_lines: int = 1000
    # Length that triggers a trim; must be greater than max_lines.
    trim_threshold: int = 1200
    # Prefix status messages with a wall clock timestamp.
    timestamp_messages: bool = True


@dataclass
class BuildConfig:
    """
    Defaults for gradle invocations.
    """

    gradle_wrapper: str = "./gradlew"
    default_module: str = "app"
    debug_build_type: str = "debug"
    release_build_type: str = "release"


@dataclass
class AppConfig:
    """
    The root configuration object that aggregates all loaded settings.
    """

    sdk: SdkConfig
    process: ProcessConfig
    timing: TimingConfig
    log: LogConfig
    build: BuildConfig
    # File backing the persistent key/value settings store.
    settings_path: Path
