"""
User-level Android actions.

``AndroidActions`` turns settings plus a project on disk into orchestrator
tasks (build, run, package, install, emulator control) and one-shot device
queries (device lists, wireless discovery and connection).
"""

import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence

from ..models.runtime import LogType, Task
from ..orchestration import TaskOrchestrator, TimeoutConstants, build_release_pipeline
from ..orchestration.command_executor import CompletionCallback
from ..settings import SettingsStore
from ..validation import SpawnError, ValidationError, handle_subprocess_error
from . import commands, devices
from .devices import AddressPatternStrategy, DiscoveryStrategy, ServiceTableStrategy
from .project import AndroidProjectLayout, detect_modules, find_latest_apk

logger = logging.getLogger(__name__)


class AndroidActions:
    """
    Facade over the orchestrator for the Android workflow.
    """

    def __init__(
        self,
        orchestrator: TaskOrchestrator,
        settings: SettingsStore,
        strategies: Optional[Sequence[DiscoveryStrategy]] = None,
    ):
        self.orchestrator = orchestrator
        self.settings = settings
        self.config = orchestrator.config
        self.sdk = orchestrator.config.sdk
        self.strategies = list(strategies or [ServiceTableStrategy(), AddressPatternStrategy()])

    @property
    def gradle_wrapper(self) -> str:
        return self.config.build.gradle_wrapper

    def project_layout(self) -> AndroidProjectLayout:
        """
        Raises:
            ValidationError: If no project is configured or it does not exist
        """
        layout = self.settings.project_layout(self.config.build.default_module)
        if layout is None:
            raise ValidationError("No project configured, set 'project_path' first", field_name="project_path")
        if not layout.project_dir.is_dir():
            raise ValidationError(f"Project directory not found: {layout.project_dir}",
                                  field_name="project_path", value=str(layout.project_dir))
        return layout

    def prepare_gradle(self, layout: AndroidProjectLayout) -> bool:
        """
        Stop lingering Gradle daemons before a build. A failure only adds a
        hint to the log; the build is started either way.
        """
        if self.orchestrator.is_task_running():
            return False
        self.orchestrator.log("🧹 Stopping Gradle daemons...")
        output = None
        try:
            output = self.orchestrator.capture(
                commands.gradle_stop(layout.project_dir, self.gradle_wrapper),
                timeout=TimeoutConstants.GRADLE_STOP_TIMEOUT,
            )
        except SpawnError as e:
            handle_subprocess_error(e, e.command, reraise=False, logger=logger)
        if output is None or not output.success:
            self.orchestrator.log(
                f"💡 If the build still fails, run '{self.gradle_wrapper} --stop' in {layout.project_dir}"
            )
            return False
        return True

    # Tasks

    def build(self, on_complete: Optional[CompletionCallback] = None) -> Optional[Task]:
        layout = self.project_layout()
        self.prepare_gradle(layout)
        return self.orchestrator.start_async_task(
            commands.compile_sources(layout.project_dir, self.gradle_wrapper), "Compile", on_complete
        )

    def build_and_run(self, on_complete: Optional[CompletionCallback] = None) -> Optional[Task]:
        layout = self.project_layout()
        package_name = layout.package_name()
        if package_name is None:
            self.orchestrator.log("❌ Could not determine the package name, check build.gradle", LogType.ERROR)
            return None
        self.prepare_gradle(layout)
        main_activity = layout.main_activity() or "MainActivity"
        command = commands.install_and_launch(
            layout.project_dir,
            self.sdk,
            self.settings.settings.build_type,
            package_name,
            main_activity,
            gradle_wrapper=self.gradle_wrapper,
            launch_delay=self.config.timing.launch_delay,
        )
        return self.orchestrator.start_async_task(command, "Build and run", on_complete)

    def build_apk(self, on_complete: Optional[CompletionCallback] = None) -> Optional[Task]:
        """Debug APK, or the signed release APK when the build type is release."""
        if self.settings.settings.build_type == self.config.build.release_build_type:
            return self.build_release(on_complete)
        layout = self.project_layout()
        self.prepare_gradle(layout)
        command = commands.assemble(layout.project_dir, self.config.build.debug_build_type, self.gradle_wrapper)
        return self.orchestrator.start_async_task(command, "Build debug APK", on_complete)

    def build_release(self, on_complete: Optional[CompletionCallback] = None) -> Optional[Task]:
        layout = self.project_layout()
        credentials = self.settings.signing_credentials()
        if credentials is None:
            self.orchestrator.log(
                "❌ Signing needs keystore_path, key_alias, store_password and key_password", LogType.ERROR
            )
            return None
        if not Path(credentials.keystore_path).expanduser().is_file():
            self.orchestrator.log(f"❌ Keystore not found: {credentials.keystore_path}", LogType.ERROR)
            return None
        self.prepare_gradle(layout)
        pipeline = build_release_pipeline(
            layout, self.sdk, credentials.keystore_path, credentials.key_alias, self.gradle_wrapper
        )
        return self.orchestrator.start_pipeline(
            pipeline, credentials, label="Build and sign release", on_complete=on_complete
        )

    def install_apk(self, on_complete: Optional[CompletionCallback] = None,
                    device: Optional[str] = None) -> Optional[Task]:
        layout = self.project_layout()
        serial = self.target_serial(device)
        build_type = self.settings.settings.build_type
        search_dir = layout.apk_search_dir(build_type)
        if not search_dir.is_dir():
            self.orchestrator.log(f"❌ APK directory does not exist: {search_dir}", LogType.ERROR)
            self.orchestrator.log("💡 Build the APK first")
            return None
        apk = find_latest_apk(search_dir)
        if apk is None:
            self.orchestrator.log(f"❌ No {build_type} APK found in {search_dir}", LogType.ERROR)
            self.orchestrator.log("💡 Build the APK first")
            return None
        self.orchestrator.log(f"📦 Found APK: {apk}")
        return self.orchestrator.start_async_task(
            commands.adb_install(self.sdk, apk, serial), "Install APK", on_complete
        )

    def authorize(self, code: str, on_complete: Optional[CompletionCallback] = None,
                  device: Optional[str] = None) -> Optional[Task]:
        """Type ``code`` on the device, e.g. to unlock it for debugging."""
        if not code:
            raise ValidationError("Authorization code must not be empty", field_name="code")
        serial = self.target_serial(device)
        return self.orchestrator.start_async_task(
            commands.adb_input_text(self.sdk, code, serial), "Authorize device", on_complete
        )

    def start_emulator(self, avd: str, on_complete: Optional[CompletionCallback] = None) -> Optional[Task]:
        return self.orchestrator.start_async_task(
            commands.launch_emulator(self.sdk, avd), f"Start emulator {avd}", on_complete
        )

    def stop_emulator(self, on_complete: Optional[CompletionCallback] = None) -> Optional[Task]:
        return self.orchestrator.start_async_task(commands.kill_emulators(), "Stop emulator", on_complete)

    # Queries

    def emulator_running(self) -> bool:
        try:
            return self.orchestrator.query_emulator_running()
        except SpawnError as e:
            handle_subprocess_error(e, e.command, reraise=False, logger=logger)
            return False

    def detect_modules(self) -> List[str]:
        return detect_modules(self.settings.settings.project_path)

    def list_avds(self) -> List[str]:
        return list(self._query(commands.list_avds(self.sdk)).stdout)

    def list_devices(self) -> List[str]:
        return devices.device_ids(self._query(commands.adb_devices(self.sdk)).text)

    def resolve_device(self, selected: str) -> Optional[str]:
        if devices.looks_like_serial(selected):
            return selected
        return devices.resolve_device_serial(selected, self._query(commands.adb_devices(self.sdk, detailed=True)).text)

    def target_serial(self, device: Optional[str]) -> Optional[str]:
        """
        The serial for a ``--device`` selection, or None for adb's default device.

        Raises:
            ValidationError: If no attached device matches ``device``
        """
        if not device:
            return None
        serial = self.resolve_device(device)
        if serial is None:
            raise ValidationError(f"No attached device matches '{device}'", field_name="device", value=device)
        return serial

    def restart_adb_with_mdns(self) -> bool:
        """Restart the adb server with mDNS discovery enabled and give it time to browse."""
        self._query(commands.adb_kill_server(self.sdk))
        time.sleep(self.config.timing.adb_restart_delay)
        started = self._query(commands.adb_start_server(self.sdk), env=commands.MDNS_ENV)
        time.sleep(self.config.timing.mdns_init_delay)
        return started.success

    def discover_wireless(self) -> List[str]:
        output = self._query(commands.adb_mdns_services(self.sdk), env=commands.MDNS_ENV)
        return devices.discover_addresses(output.text, self.strategies)

    def connect_wireless(self, address: str) -> bool:
        output = self._query(commands.adb_connect(self.sdk, address))
        text = "\n".join(output.stdout + output.stderr)
        connected = devices.is_connect_success(text)
        if connected:
            self.orchestrator.log(f"✓ Connected to {address}", LogType.SUCCESS)
        else:
            self.orchestrator.log(f"✗ Could not connect to {address}", LogType.ERROR)
        return connected

    def prune_offline(self) -> int:
        """Disconnect every offline device; returns how many were dropped."""
        offline = devices.offline_devices(self._query(commands.adb_devices(self.sdk)).text)
        disconnected = 0
        for serial in offline:
            if self._query(commands.adb_disconnect(self.sdk, serial)).success:
                disconnected += 1
        if offline:
            self.orchestrator.log(f"🧹 Disconnected {disconnected} of {len(offline)} offline devices")
        return disconnected

    def _query(self, command: str, env=None):
        try:
            return self.orchestrator.capture(command, env=env)
        except SpawnError as e:
            handle_subprocess_error(e, command, reraise=True, logger=logger)
