"""
Unit tests for the foreground process registry.
"""

import signal
from unittest.mock import Mock, patch

import psutil
import pytest

from droidpanel.orchestration import ProcessRegistry


def make_handle(pid: int, running: bool = True, cancel_accepted: bool = True) -> Mock:
    handle = Mock()
    handle.pid = pid
    handle.label = f"process {pid}"
    handle.running = running
    handle.request_cancel.return_value = cancel_accepted
    return handle


@pytest.mark.unit
class TestRegistration:

    def test_register_and_query(self):
        registry = ProcessRegistry()
        handle = make_handle(100)

        registry.register(handle)

        assert registry.current_foreground() is handle
        assert registry.is_busy()

    def test_second_running_handle_is_rejected(self):
        registry = ProcessRegistry()
        registry.register(make_handle(100))

        with pytest.raises(RuntimeError, match="still the foreground"):
            registry.register(make_handle(101))

    def test_exited_handle_may_be_replaced(self):
        registry = ProcessRegistry()
        registry.register(make_handle(100, running=False))
        newer = make_handle(101)

        registry.register(newer)
        assert registry.current_foreground() is newer

    def test_unregister_is_compare_and_swap(self):
        registry = ProcessRegistry()
        old = make_handle(100, running=False)
        new = make_handle(101)
        registry.register(old)
        registry.register(new)

        assert registry.unregister(old) is False
        assert registry.current_foreground() is new
        assert registry.unregister(new) is True
        assert registry.unregister(new) is False
        assert not registry.is_busy()

    def test_active_pids_are_historical(self):
        registry = ProcessRegistry()
        for pid in (100, 101):
            handle = make_handle(pid)
            registry.register(handle)
            registry.unregister(handle)

        assert registry.active_pids() == {100, 101}


@pytest.mark.unit
class TestKill:

    def test_kill_after_exit_keeps_natural_result(self):
        registry = ProcessRegistry()
        handle = make_handle(100, cancel_accepted=False)
        registry.register(handle)

        with patch.object(registry, "terminate_process_tree") as terminate:
            assert registry.kill(handle) is False

        terminate.assert_not_called()
        assert registry.current_foreground() is None

    def test_kill_terminates_tree_and_unregisters(self):
        registry = ProcessRegistry()
        handle = make_handle(100)
        registry.register(handle)

        with patch.object(registry, "terminate_process_tree") as terminate:
            assert registry.kill(handle) is True

        handle.request_cancel.assert_called_once()
        terminate.assert_called_once_with(100, "process 100")
        assert registry.current_foreground() is None

    def test_kill_foreground_when_idle(self):
        assert ProcessRegistry().kill_foreground() is False

    def test_invalid_pid_is_ignored(self):
        with patch("droidpanel.orchestration.process_registry.os.killpg") as killpg:
            ProcessRegistry().terminate_process_tree(0, "nothing")
        killpg.assert_not_called()

    def test_vanished_process_still_clears_its_group(self):
        with patch("droidpanel.orchestration.process_registry.psutil.Process",
                   side_effect=psutil.NoSuchProcess(4242)), \
             patch("droidpanel.orchestration.process_registry.os.killpg") as killpg:
            ProcessRegistry().terminate_process_tree(4242, "gone")

        killpg.assert_called_once_with(4242, signal.SIGKILL)

    def test_graceful_phase_stops_when_tree_exits(self):
        registry = ProcessRegistry(grace_period=0.1)
        parent = Mock()
        parent.pid = 4242
        parent.children.return_value = []

        alive = {"value": True}

        def send_signal(sig):
            alive["value"] = False

        parent.send_signal.side_effect = send_signal

        with patch("droidpanel.orchestration.process_registry.psutil.Process", return_value=parent), \
             patch.object(registry, "_is_process_alive", side_effect=lambda p: alive["value"]), \
             patch("droidpanel.orchestration.process_registry.os.killpg") as killpg:
            registry.terminate_process_tree(4242, "build")

        parent.send_signal.assert_called_once_with(signal.SIGTERM)
        killpg.assert_called_once_with(4242, signal.SIGTERM)

    def test_escalates_to_sigkill(self):
        registry = ProcessRegistry(grace_period=0.01)
        parent = Mock()
        parent.pid = 4242
        parent.children.return_value = []
        received = []

        parent.send_signal.side_effect = received.append

        with patch("droidpanel.orchestration.process_registry.psutil.Process", return_value=parent), \
             patch.object(registry, "_is_process_alive", side_effect=lambda p: signal.SIGKILL not in received), \
             patch("droidpanel.orchestration.process_registry.os.killpg"):
            registry.terminate_process_tree(4242, "stubborn")

        assert received == [signal.SIGTERM, signal.SIGINT, signal.SIGKILL]
