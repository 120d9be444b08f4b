"""
Integration tests for process spawning and output streaming with a real shell.
"""

import os
import threading

import psutil
import pytest

from droidpanel.executor import ProcessRunner
from droidpanel.validation import SpawnError


@pytest.fixture
def runner():
    return ProcessRunner(shell="/bin/sh", shell_args=["-c"], base_env={"ANDROID_HOME": "/opt/sdk"})


class Collector:
    def __init__(self):
        self.lines = {"stdout": [], "stderr": []}
        self.lock = threading.Lock()

    def __call__(self, lines, stream):
        with self.lock:
            self.lines[stream].extend(lines)


@pytest.mark.integration
class TestProcessRunner:

    def test_streams_and_exit(self, runner):
        collector = Collector()
        handle = runner.spawn("echo one; echo two >&2; printf 'partial'; exit 3", on_output=collector)

        result = handle.exit_future.result(timeout=10)

        assert result.returncode == 3
        assert not result.killed
        assert collector.lines["stdout"] == ["one", "partial"]
        assert collector.lines["stderr"] == ["two"]

    def test_output_complete_before_exit_resolves(self, runner):
        collector = Collector()
        handle = runner.spawn("i=0; while [ $i -lt 500 ]; do echo line$i; i=$((i+1)); done", on_output=collector)

        handle.exit_future.result(timeout=10)

        assert len(collector.lines["stdout"]) == 500
        assert collector.lines["stdout"][-1] == "line499"

    def test_environment_overlay(self, runner):
        output = runner.capture('echo "$ANDROID_HOME $EXTRA"', env={"EXTRA": "yes"}, timeout=10)

        assert output.success
        assert output.stdout == ("/opt/sdk yes",)

    def test_capture_separates_streams(self, runner):
        output = runner.capture("echo out; echo err >&2; exit 1", timeout=10)

        assert output.returncode == 1
        assert output.text == "out"
        assert output.stderr == ("err",)

    def test_capture_timeout_kills_group(self, runner):
        output = runner.capture("sleep 30 & sleep 30; echo never", timeout=0.3)

        assert output.returncode == -1
        assert output.stdout == ()

    def test_own_process_group(self, runner):
        handle = runner.spawn("sleep 5")
        try:
            assert psutil.Process(handle.pid).is_running()
            assert os.getpgid(handle.pid) == handle.pid
        finally:
            runner._kill_group(handle.pid)
            handle.exit_future.result(timeout=10)

    def test_missing_shell_raises_spawn_error(self):
        runner = ProcessRunner(shell="/nonexistent/shell")

        with pytest.raises(SpawnError) as exc_info:
            runner.spawn("echo hi")
        assert isinstance(exc_info.value.cause, FileNotFoundError)
