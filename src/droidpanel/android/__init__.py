"""
Android tooling for the droidpanel package.

Command builders for Gradle, adb, the emulator and the build tools, pure
parsers for project files and adb output, and wireless discovery strategies.
``droidpanel.android.actions`` combines them with the orchestrator.
"""

from . import commands
from .devices import (
    AddressPatternStrategy,
    DeviceEntry,
    DiscoveryStrategy,
    ServiceTableStrategy,
    connected_devices,
    device_ids,
    discover_addresses,
    is_connect_success,
    is_emulator_running,
    offline_devices,
    parse_devices,
    resolve_device_serial,
)
from .project import (
    AndroidProjectLayout,
    ReleaseArtifacts,
    detect_modules,
    find_latest_apk,
    parse_main_activity,
    parse_package_name,
)

__all__ = [
    "commands",
    "AddressPatternStrategy",
    "AndroidProjectLayout",
    "DeviceEntry",
    "DiscoveryStrategy",
    "ReleaseArtifacts",
    "ServiceTableStrategy",
    "connected_devices",
    "detect_modules",
    "device_ids",
    "discover_addresses",
    "find_latest_apk",
    "is_connect_success",
    "is_emulator_running",
    "offline_devices",
    "parse_devices",
    "parse_main_activity",
    "parse_package_name",
    "resolve_device_serial",
]
