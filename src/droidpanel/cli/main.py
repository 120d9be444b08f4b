"""
Command-line interface for the droidpanel application.

Each subcommand either starts one task and waits for it, streaming the task
log to the terminal, or runs a one-shot device query. Ctrl-C while a task
runs cancels it.
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from .. import __version__
from ..android.actions import AndroidActions
from ..config import get_config, set_config_path
from ..models.runtime import LogLine, LogType, Task, TaskOutcome
from ..orchestration import SignalHandler, TaskOrchestrator
from ..settings import SETTING_KEYS, SettingsStore
from ..validation import SpawnError, ValidationError, handle_cli_error

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130

LOG_FORMAT = "%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="droidpanel",
        description="Build, sign, install and run Android apps and manage devices.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", type=Path, help="Path to config.toml.")
    parser.add_argument("--settings", type=Path, help="Path to the settings file (overrides config).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("build", help="Compile the debug sources.")
    sub.add_parser("run", help="Install the app for the current build type and launch it.")
    sub.add_parser("apk", help="Build a debug APK, or a signed release APK for release builds.")
    sub.add_parser("release", help="Build, align, sign and verify the release APK.")
    install = sub.add_parser("install", help="Install the newest APK of the current build type.")
    install.add_argument("-d", "--device", help="Serial or AVD name of the target device.")
    sub.add_parser("modules", help="List the modules of the configured project.")

    auth = sub.add_parser("auth", help="Type an authorization code on the device.")
    auth.add_argument("code")
    auth.add_argument("-d", "--device", help="Serial or AVD name of the target device.")

    emulator = sub.add_parser("emulator", help="Control the emulator.")
    emulator_sub = emulator.add_subparsers(dest="emulator_command", required=True)
    start = emulator_sub.add_parser("start", help="Launch an AVD.")
    start.add_argument("avd")
    emulator_sub.add_parser("stop", help="Kill every running emulator.")
    emulator_sub.add_parser("status", help="Report whether an emulator is online.")

    sub.add_parser("devices", help="List AVDs and attached devices.")

    wireless = sub.add_parser("wireless", help="Wireless debugging.")
    wireless_sub = wireless.add_subparsers(dest="wireless_command", required=True)
    discover = wireless_sub.add_parser("discover", help="Find devices over mDNS.")
    discover.add_argument("--no-restart", action="store_true",
                          help="Do not restart the adb server with mDNS enabled first.")
    discover.add_argument("--connect", action="store_true", help="Connect to every device found.")
    connect = wireless_sub.add_parser("connect", help="Connect to a device.")
    connect.add_argument("address", help="IP:port")
    wireless_sub.add_parser("prune", help="Disconnect offline devices.")

    watch = sub.add_parser("watch", help="Print emulator status changes until interrupted.")
    watch.add_argument("--duration", type=float, help="Stop after this many seconds.")

    settings = sub.add_parser("settings", help="Show or change persistent settings.")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("show", help="Print all settings (passwords masked).")
    set_parser = settings_sub.add_parser("set", help="Change one setting.")
    set_parser.add_argument("key", choices=SETTING_KEYS)
    set_parser.add_argument("value")
    return parser


def print_log_lines(lines: List[LogLine]) -> None:
    for line in lines:
        stream = sys.stderr if line.type is LogType.ERROR else sys.stdout
        print(line.text, file=stream, flush=True)


def exit_code_for(task: Task) -> int:
    if task.outcome is TaskOutcome.SUCCEEDED:
        return EXIT_SUCCESS
    if task.outcome is TaskOutcome.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILURE


def run_task(orchestrator: TaskOrchestrator, start: Callable[[], Optional[Task]]) -> int:
    """Start a task, wait for it with Ctrl-C mapped to cancel, return its exit code."""
    with SignalHandler(orchestrator) as signals:
        task = start()
        if task is None:
            orchestrator.loop.flush()
            return EXIT_FAILURE
        signals.wait_for_task(task)
    orchestrator.loop.flush()
    return exit_code_for(task)


def watch_devices(orchestrator: TaskOrchestrator, duration: Optional[float]) -> int:
    def report(running: bool) -> None:
        print(f"[{time.strftime('%H:%M:%S')}] emulator {'online' if running else 'offline'}", flush=True)

    unsubscribe = orchestrator.device_status.subscribe(report)
    deadline = time.monotonic() + duration if duration is not None else None
    with SignalHandler(orchestrator) as signals:
        orchestrator.start_device_polling()
        try:
            while not signals.interrupt_requested.wait(0.1):
                if deadline is not None and time.monotonic() >= deadline:
                    break
        finally:
            orchestrator.stop_device_polling()
            unsubscribe()
    return EXIT_SUCCESS


def dispatch(args: argparse.Namespace, orchestrator: TaskOrchestrator, actions: AndroidActions,
             store: SettingsStore) -> int:
    command = args.command

    if command == "build":
        return run_task(orchestrator, actions.build)
    if command == "run":
        return run_task(orchestrator, actions.build_and_run)
    if command == "apk":
        return run_task(orchestrator, actions.build_apk)
    if command == "release":
        return run_task(orchestrator, actions.build_release)
    if command == "install":
        return run_task(orchestrator, lambda: actions.install_apk(device=args.device))
    if command == "auth":
        return run_task(orchestrator, lambda: actions.authorize(args.code, device=args.device))

    if command == "modules":
        modules = actions.detect_modules()
        for module in modules:
            print(module)
        return EXIT_SUCCESS if modules else EXIT_FAILURE

    if command == "emulator":
        if args.emulator_command == "start":
            return run_task(orchestrator, lambda: actions.start_emulator(args.avd))
        if args.emulator_command == "stop":
            return run_task(orchestrator, actions.stop_emulator)
        running = actions.emulator_running()
        print("online" if running else "offline")
        return EXIT_SUCCESS if running else EXIT_FAILURE

    if command == "devices":
        avds = actions.list_avds()
        attached = actions.list_devices()
        print("AVDs:")
        for avd in avds:
            print(f"  {avd}")
        print("Attached:")
        for serial in attached:
            print(f"  {serial}")
        return EXIT_SUCCESS

    if command == "wireless":
        if args.wireless_command == "discover":
            if not args.no_restart and not actions.restart_adb_with_mdns():
                print("Could not restart adb with mDNS enabled", file=sys.stderr)
                return EXIT_FAILURE
            addresses = actions.discover_wireless()
            for address in addresses:
                print(address)
            if args.connect:
                results = [actions.connect_wireless(address) for address in addresses]
                orchestrator.loop.flush()
                return EXIT_SUCCESS if results and all(results) else EXIT_FAILURE
            return EXIT_SUCCESS if addresses else EXIT_FAILURE
        if args.wireless_command == "connect":
            connected = actions.connect_wireless(args.address)
            orchestrator.loop.flush()
            return EXIT_SUCCESS if connected else EXIT_FAILURE
        actions.prune_offline()
        orchestrator.loop.flush()
        return EXIT_SUCCESS

    if command == "watch":
        return watch_devices(orchestrator, args.duration)

    if command == "settings":
        if args.settings_command == "show":
            for key, value in store.display_items().items():
                print(f"{key} = {value}")
            return EXIT_SUCCESS
        store.set(args.key, args.value)
        return EXIT_SUCCESS

    raise ValueError(f"Unknown command: {command}")


def main_cli(argv: Optional[List[str]] = None) -> None:
    """
    Main command-line interface for droidpanel.

    Raises:
        SystemExit: Always, with 0 on success, 1 on failure and 130 when the
            task was cancelled.
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

    if args.config:
        set_config_path(args.config)
    try:
        app_config = get_config()
    except (FileNotFoundError, ValueError, ValidationError) as e:
        handle_cli_error(error=e, context="configuration loading", exit_code=EXIT_FAILURE, logger=logger)

    try:
        store = SettingsStore(args.settings or app_config.settings_path)
    except (ValueError, ValidationError) as e:
        handle_cli_error(error=e, context="settings loading", exit_code=EXIT_FAILURE, logger=logger)

    if args.command == "settings":
        try:
            sys.exit(dispatch(args, None, None, store))
        except ValidationError as e:
            handle_cli_error(error=e, context="settings", exit_code=EXIT_FAILURE, logger=logger)

    orchestrator = TaskOrchestrator(app_config)
    unsubscribe = orchestrator.log_sink.subscribe(print_log_lines)
    try:
        exit_code = dispatch(args, orchestrator, AndroidActions(orchestrator, store), store)
    except (ValidationError, SpawnError) as e:
        orchestrator.loop.flush()
        handle_cli_error(error=e, context=args.command, exit_code=EXIT_FAILURE, logger=logger)
    finally:
        unsubscribe()
        orchestrator.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main_cli()
