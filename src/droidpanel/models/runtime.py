"""
Runtime data models.

This module contains the data structures used while tasks run: log lines,
task and process bookkeeping, results and pipeline steps.
"""

import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    import subprocess


class LogType(Enum):
    """Severity/category of a log line."""
    NORMAL = "normal"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class LogLine:
    """An immutable line of user-facing log output."""

    text: str
    type: LogType = LogType.NORMAL
    id: uuid.UUID = field(default_factory=uuid.uuid4, compare=True)


class TaskOutcome(Enum):
    """Terminal state of a task; NONE until the first task finishes."""
    NONE = "none"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PipelineState(Enum):
    """States of the build/sign state machine."""
    IDLE = "idle"
    COMPILING = "compiling"
    ALIGNING = "aligning"
    SIGNING = "signing"
    VERIFYING = "verifying"
    CLEANING_UP = "cleaning_up"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.FAILED, PipelineState.CANCELLED)


@dataclass(frozen=True)
class ProcessExit:
    """Exit status of one external process."""

    returncode: int
    # True when the process ended because it was killed on request.
    killed: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.killed


@dataclass(frozen=True)
class ProcessResult:
    """
    Terminal report of a task, delivered exactly once to completion callbacks.
    """

    outcome: TaskOutcome
    label: str
    exit_code: Optional[int] = None
    # Label of the pipeline step that failed, if any.
    failed_step: Optional[str] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.outcome is TaskOutcome.SUCCEEDED


@dataclass(frozen=True)
class CapturedOutput:
    """Collected output of a short query process."""

    returncode: int
    stdout: Tuple[str, ...] = ()
    stderr: Tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return "\n".join(self.stdout)


@dataclass
class Task:
    """
    A logical unit of work requested by the user.

    Only the coordination context changes ``running`` and ``outcome``;
    ``cancel_requested`` may be set from any thread.
    """

    label: str
    started_at: float = field(default_factory=time.time)
    started_monotonic: float = field(default_factory=time.monotonic)
    running: bool = True
    outcome: TaskOutcome = TaskOutcome.NONE
    result: Optional[ProcessResult] = None
    cancel_requested: threading.Event = field(default_factory=threading.Event, repr=False)
    # Set once the terminal result has been recorded.
    finished: threading.Event = field(default_factory=threading.Event, repr=False)

    def elapsed(self) -> float:
        return time.monotonic() - self.started_monotonic

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the task reached a terminal state; False on timeout."""
        return self.finished.wait(timeout)


class ProcessHandle:
    """
    One spawned external command.

    Output is delivered through the callback given to the runner; the exit
    status through ``exit_future``, which resolves exactly once and only
    after both output streams have been drained.
    """

    def __init__(self, popen: "subprocess.Popen", command: str, label: str = "",
                 task: Optional[Task] = None):
        self.popen = popen
        self.pid: int = popen.pid
        self.command = command
        self.label = label
        self.task = task
        self.exit_future: "Future[ProcessExit]" = Future()
        self._lock = threading.Lock()
        self._cancel_requested = False
        self._completed = False

    @property
    def running(self) -> bool:
        return not self.exit_future.done()

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel_requested

    def request_cancel(self) -> bool:
        """
        Mark the handle as cancelled. Returns False when the process has
        already exited, in which case its natural result stands.
        """
        with self._lock:
            if self.exit_future.done():
                return False
            self._cancel_requested = True
            return True

    def resolve(self, returncode: int) -> ProcessExit:
        """Resolve the exit future; called once by the runner's watcher."""
        with self._lock:
            result = ProcessExit(returncode=returncode, killed=self._cancel_requested)
            self.exit_future.set_result(result)
        return result

    def fail(self, error: BaseException) -> None:
        with self._lock:
            if not self.exit_future.done():
                self.exit_future.set_exception(error)

    def mark_completed(self) -> bool:
        """Returns True the first time only; guards completion processing."""
        with self._lock:
            if self._completed:
                return False
            self._completed = True
            return True

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, label={self.label!r}, running={self.running})"


@dataclass
class SigningCredentials:
    """Keystore credentials for apksigner; never rendered in reprs or logs."""

    keystore_path: str
    key_alias: str
    store_password: str = field(repr=False)
    key_password: str = field(repr=False)

    STORE_PASSWORD_ENV = "DROIDPANEL_KS_PASS"
    KEY_PASSWORD_ENV = "DROIDPANEL_KEY_PASS"

    def as_env(self) -> Dict[str, str]:
        return {
            self.STORE_PASSWORD_ENV: self.store_password,
            self.KEY_PASSWORD_ENV: self.key_password,
        }


@dataclass
class PipelineStep:
    """
    One step of a sequential pipeline. Identity is its position in the list.
    """

    label: str
    command: str
    state: PipelineState = PipelineState.COMPILING
    env: Dict[str, str] = field(default_factory=dict)
    # Artifacts that must exist before the step's process is spawned.
    requires: List[Path] = field(default_factory=list)
    # Leftovers of earlier runs deleted before this step (clean slate).
    stale_artifacts: List[Path] = field(default_factory=list)
    # The signing credentials are merged into env for this step only.
    needs_credentials: bool = False


@dataclass
class Pipeline:
    """
    An ordered list of steps plus what to do with the artifacts on success.
    """

    steps: List[PipelineStep]
    # Intermediate artifacts removed after every step succeeded.
    cleanup_paths: List[Path] = field(default_factory=list)
    # Final output, preserved by cleanup and reported on success.
    artifact: Optional[Path] = None
