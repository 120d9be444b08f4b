"""
Tests for the Android actions facade with a stubbed orchestrator.
"""

from unittest.mock import Mock

import pytest

from droidpanel.android.actions import AndroidActions
from droidpanel.models.runtime import CapturedOutput
from droidpanel.settings import SettingsStore
from droidpanel.validation import SpawnError, ValidationError

DETAILED_OUTPUT = (
    "List of devices attached",
    "emulator-5554          device product:sdk_gphone64 model:sdk_gphone64_arm64 avd:Pixel_8 transport_id:1",
)


@pytest.fixture
def orchestrator(app_config):
    stub = Mock()
    stub.config = app_config
    stub.is_task_running.return_value = False
    stub.capture.return_value = CapturedOutput(returncode=0)
    return stub


@pytest.fixture
def actions(orchestrator, temp_dir, android_project):
    store = SettingsStore(temp_dir / "settings.toml")
    store.set("project_path", str(android_project))
    return AndroidActions(orchestrator, store)


def logged(orchestrator):
    return [call.args[0] for call in orchestrator.log.call_args_list]


@pytest.mark.unit
class TestGradlePreparation:

    def test_daemons_stopped_before_compile(self, actions, orchestrator, android_project):
        actions.build()

        stop_command = orchestrator.capture.call_args.args[0]
        assert stop_command == f"cd {android_project} && ./gradlew --stop"
        task_command = orchestrator.start_async_task.call_args.args[0]
        assert task_command.endswith("./gradlew compileDebugSources")

    def test_failed_stop_logs_hint_and_still_builds(self, actions, orchestrator):
        orchestrator.capture.return_value = CapturedOutput(returncode=1)

        assert actions.prepare_gradle(actions.project_layout()) is False
        assert any("--stop" in message and message.startswith("💡") for message in logged(orchestrator))

        actions.settings.set("build_type", "debug")
        actions.build_apk()
        orchestrator.start_async_task.assert_called_once()

    def test_missing_wrapper_logs_hint(self, actions, orchestrator):
        orchestrator.capture.side_effect = SpawnError("./gradlew --stop", FileNotFoundError(2, "No such file"))

        assert actions.prepare_gradle(actions.project_layout()) is False
        assert any(message.startswith("💡") for message in logged(orchestrator))

    def test_skipped_while_a_task_runs(self, actions, orchestrator):
        orchestrator.is_task_running.return_value = True

        assert actions.prepare_gradle(actions.project_layout()) is False
        orchestrator.capture.assert_not_called()

    def test_every_gradle_action_prepares(self, actions, orchestrator):
        actions.build_and_run()

        assert orchestrator.capture.call_args_list[0].args[0].endswith("--stop")
        assert "installRelease" in orchestrator.start_async_task.call_args.args[0]


@pytest.mark.unit
class TestDeviceSelection:

    def test_serial_used_as_is(self, actions, orchestrator):
        assert actions.target_serial("R58M123ABC") == "R58M123ABC"
        orchestrator.capture.assert_not_called()

    def test_no_selection(self, actions):
        assert actions.target_serial(None) is None

    def test_avd_name_resolved_for_authorize(self, actions, orchestrator):
        orchestrator.capture.return_value = CapturedOutput(returncode=0, stdout=DETAILED_OUTPUT)

        actions.authorize("1234", device="Pixel_8")

        command = orchestrator.start_async_task.call_args.args[0]
        assert " -s emulator-5554 shell input text 1234" in command

    def test_unknown_device_rejected(self, actions, orchestrator):
        orchestrator.capture.return_value = CapturedOutput(returncode=0, stdout=DETAILED_OUTPUT)

        with pytest.raises(ValidationError):
            actions.install_apk(device="Nexus_One")
        orchestrator.start_async_task.assert_not_called()
