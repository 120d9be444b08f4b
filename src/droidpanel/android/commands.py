"""
Command builders for the Android tools.

Commands are plain strings run through the configured shell. Every value that
comes from the user or the filesystem is quoted here; callers treat the
result as opaque.
"""

import shlex
from pathlib import Path
from typing import Optional, Union

from ..models.config import SdkConfig
from ..models.runtime import SigningCredentials

PathLike = Union[str, Path]

# Environment overlay that enables openscreen mDNS discovery in the adb server.
MDNS_ENV = {"ADB_MDNS_OPENSCREEN": "1"}

EMULATOR_PROCESS_PATTERN = "emulator.*-avd"


def quote(value: PathLike) -> str:
    return shlex.quote(str(value))


# Gradle

def gradle_task(project_dir: PathLike, task: str, gradle_wrapper: str = "./gradlew") -> str:
    return f"cd {quote(project_dir)} && {gradle_wrapper} {task}"


def gradle_stop(project_dir: PathLike, gradle_wrapper: str = "./gradlew") -> str:
    """Stop the Gradle daemons so a stale one cannot hold the build locks."""
    return gradle_task(project_dir, "--stop", gradle_wrapper)


def compile_sources(project_dir: PathLike, gradle_wrapper: str = "./gradlew") -> str:
    return gradle_task(project_dir, "compileDebugSources", gradle_wrapper)


def assemble(project_dir: PathLike, build_type: str, gradle_wrapper: str = "./gradlew") -> str:
    return gradle_task(project_dir, f"assemble{build_type.capitalize()}", gradle_wrapper)


def activity_component(package_name: str, activity: str) -> str:
    """``package/activity`` as understood by ``am start -n``."""
    if activity.startswith(".") or "." in activity:
        return f"{package_name}/{activity}"
    return f"{package_name}/.{activity}"


def install_and_launch(
    project_dir: PathLike,
    sdk: SdkConfig,
    build_type: str,
    package_name: str,
    main_activity: str,
    gradle_wrapper: str = "./gradlew",
    launch_delay: float = 2.0,
) -> str:
    install = gradle_task(project_dir, f"install{build_type.capitalize()}", gradle_wrapper)
    component = activity_component(package_name, main_activity)
    return f"{install} && sleep {launch_delay:g} && {quote(sdk.adb_path)} shell am start -n {quote(component)}"


# adb

def adb(sdk: SdkConfig, serial: Optional[str] = None) -> str:
    """The adb executable, pinned to one device when ``serial`` is given."""
    base = quote(sdk.adb_path)
    return f"{base} -s {quote(serial)}" if serial else base


def adb_devices(sdk: SdkConfig, detailed: bool = False) -> str:
    return f"{quote(sdk.adb_path)} devices" + (" -l" if detailed else "")


def adb_install(sdk: SdkConfig, apk_path: PathLike, serial: Optional[str] = None) -> str:
    return f"{adb(sdk, serial)} install -r {quote(apk_path)}"


def adb_input_text(sdk: SdkConfig, text: str, serial: Optional[str] = None) -> str:
    return f"{adb(sdk, serial)} shell input text {quote(text)}"


def adb_connect(sdk: SdkConfig, address: str) -> str:
    return f"{quote(sdk.adb_path)} connect {quote(address)}"


def adb_disconnect(sdk: SdkConfig, address: str) -> str:
    return f"{quote(sdk.adb_path)} disconnect {quote(address)}"


def adb_kill_server(sdk: SdkConfig) -> str:
    return f"{quote(sdk.adb_path)} kill-server"


def adb_start_server(sdk: SdkConfig) -> str:
    """Run with ``MDNS_ENV`` merged into the environment."""
    return f"{quote(sdk.adb_path)} start-server"


def adb_mdns_services(sdk: SdkConfig) -> str:
    return f"{quote(sdk.adb_path)} mdns services"


# Emulator

def list_avds(sdk: SdkConfig) -> str:
    return f"{quote(sdk.emulator_path)} -list-avds"


def launch_emulator(sdk: SdkConfig, avd: str) -> str:
    # Detached with its output discarded, the emulator outlives the command.
    return f"{quote(sdk.emulator_path)} -avd {quote(avd)} > /dev/null 2>&1 &"


def kill_emulators() -> str:
    return f"pkill -f {quote(EMULATOR_PROCESS_PATTERN)}"


# Build tools

def zipalign(sdk: SdkConfig, source: PathLike, destination: PathLike) -> str:
    return f"{quote(sdk.zipalign_path)} -v -p 4 {quote(source)} {quote(destination)}"


def apksigner_sign(
    sdk: SdkConfig,
    keystore_path: PathLike,
    key_alias: str,
    source: PathLike,
    destination: PathLike,
) -> str:
    """
    Passwords are read by apksigner from the environment variables named in
    ``SigningCredentials``; they never appear in the command.
    """
    return (
        f"{quote(sdk.apksigner_path)} sign"
        f" --ks {quote(keystore_path)}"
        f" --ks-key-alias {quote(key_alias)}"
        f" --ks-pass env:{SigningCredentials.STORE_PASSWORD_ENV}"
        f" --key-pass env:{SigningCredentials.KEY_PASSWORD_ENV}"
        f" --out {quote(destination)} {quote(source)}"
    )


def apksigner_verify(sdk: SdkConfig, apk_path: PathLike) -> str:
    return f"{quote(sdk.apksigner_path)} verify {quote(apk_path)}"
