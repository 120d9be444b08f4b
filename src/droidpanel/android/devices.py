"""
Parsers for adb output and wireless device discovery.

Everything here works on captured text so it can be tested without a device.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

logger = logging.getLogger(__name__)

DEVICE_STATE = "device"
OFFLINE_STATE = "offline"

_IPV4_ADDRESS_PATTERN = re.compile(r"\b(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}):(\d+)\b")
_HARDWARE_SERIAL_PATTERN = re.compile(r"^[A-Z0-9]+$")


@dataclass(frozen=True)
class DeviceEntry:
    """One row of ``adb devices [-l]``."""

    serial: str
    state: str
    # ``key:value`` properties printed by ``adb devices -l``.
    properties: tuple = ()

    @property
    def is_emulator(self) -> bool:
        return self.serial.startswith("emulator-")

    def property(self, key: str) -> Optional[str]:
        prefix = f"{key}:"
        for item in self.properties:
            if item.startswith(prefix):
                return item[len(prefix):]
        return None


def parse_devices(output: str) -> List[DeviceEntry]:
    entries = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("List of devices") or line.startswith("*"):
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        entries.append(DeviceEntry(serial=fields[0], state=fields[1], properties=tuple(fields[2:])))
    return entries


def is_emulator_running(output: str) -> bool:
    """True when an emulator is attached and online."""
    return any(entry.is_emulator and entry.state == DEVICE_STATE for entry in parse_devices(output))


def device_ids(output: str) -> List[str]:
    return [entry.serial for entry in parse_devices(output)]


def offline_devices(output: str) -> List[str]:
    return [entry.serial for entry in parse_devices(output) if entry.state == OFFLINE_STATE]


def connected_devices(output: str) -> Set[str]:
    return {entry.serial for entry in parse_devices(output) if entry.state == DEVICE_STATE}


def looks_like_serial(name: str) -> bool:
    return "emulator-" in name or ":" in name or bool(_HARDWARE_SERIAL_PATTERN.match(name))


def resolve_device_serial(selected: str, detailed_output: str) -> Optional[str]:
    """
    Map a user selection to an adb serial.

    Serials are returned unchanged; an AVD name is looked up in the output of
    ``adb devices -l``.
    """
    if looks_like_serial(selected):
        return selected
    for entry in parse_devices(detailed_output):
        if entry.property("avd") == selected:
            return entry.serial
    for entry in parse_devices(detailed_output):
        if any(selected in item for item in entry.properties):
            return entry.serial
    return None


def is_connect_success(output: str) -> bool:
    return "connected" in output and "failed" not in output


class DiscoveryStrategy(ABC):
    """Extracts connectable addresses from the output of ``adb mdns services``."""

    name = "base"

    @abstractmethod
    def discover(self, output: str) -> List[str]:
        ...


class AddressPatternStrategy(DiscoveryStrategy):
    """Any ``IPv4:port`` anywhere in the output, in order of appearance."""

    name = "address-pattern"

    def discover(self, output: str) -> List[str]:
        addresses: List[str] = []
        for match in _IPV4_ADDRESS_PATTERN.finditer(output):
            address = match.group(0)
            if address not in addresses:
                addresses.append(address)
        return addresses


class ServiceTableStrategy(DiscoveryStrategy):
    """
    Reads the ``<instance> <service type> <address>`` table and keeps the
    addresses of connect services only; pairing endpoints are skipped.
    """

    name = "service-table"

    DEFAULT_SERVICE_TYPES = ("_adb-tls-connect._tcp", "_adb._tcp")

    def __init__(self, service_types: Sequence[str] = DEFAULT_SERVICE_TYPES):
        self.service_types = tuple(service_types)

    def discover(self, output: str) -> List[str]:
        addresses: List[str] = []
        for line in output.splitlines():
            fields = line.split()
            if len(fields) < 3:
                continue
            service_type = fields[1].rstrip(".")
            if service_type not in self.service_types:
                continue
            address = fields[-1]
            if _IPV4_ADDRESS_PATTERN.fullmatch(address) and address not in addresses:
                addresses.append(address)
        return addresses


def discover_addresses(output: str, strategies: Sequence[DiscoveryStrategy]) -> List[str]:
    """Result of the first strategy that finds anything."""
    for strategy in strategies:
        addresses = strategy.discover(output)
        if addresses:
            logger.debug(f"Discovery strategy '{strategy.name}' found {len(addresses)} addresses")
            return addresses
    return []
