"""
Sequential build/sign pipeline.

A pipeline is a list of ``PipelineStep`` run one after another on a worker
thread with ``CommandExecutor.execute_sync``. It moves forward only on
success; the first failing step is terminal. After every step succeeded the
intermediate artifacts are removed and the final artifact is kept.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..android import commands
from ..android.project import AndroidProjectLayout
from ..models.config import SdkConfig
from ..models.runtime import (
    LogType,
    Pipeline,
    PipelineState,
    PipelineStep,
    ProcessResult,
    SigningCredentials,
    Task,
    TaskOutcome,
)
from ..validation import SpawnError
from .command_executor import CommandExecutor
from .coordination import CoordinationLoop, Observable
from .log_sink import LogSink

logger = logging.getLogger(__name__)


def remove_if_exists(path: Path) -> bool:
    """
    Delete ``path`` if it is there. Returns whether a file was removed.

    Raises:
        OSError: For any failure other than the file being absent
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def cleanup_artifacts(paths: Iterable[Path], preserve: Optional[Path] = None) -> List[Tuple[Path, OSError]]:
    """
    Remove every path except ``preserve``. Missing files are fine; other
    failures are collected and returned instead of raised.
    """
    failures = []
    for path in paths:
        if preserve is not None and path == preserve:
            continue
        try:
            remove_if_exists(path)
        except OSError as e:
            failures.append((path, e))
    return failures


class PipelineRunner:
    """
    Drives one pipeline for one task and reports a single ``ProcessResult``.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        loop: CoordinationLoop,
        log_sink: LogSink,
        state: Observable,
    ):
        self.executor = executor
        self.loop = loop
        self.log_sink = log_sink
        self.state = state

    def run(self, task: Task, pipeline: Pipeline,
            credentials: Optional[SigningCredentials] = None) -> ProcessResult:
        """Run every step of ``pipeline``; must be called on a worker thread."""
        steps = list(pipeline.steps)
        credentialed = [index for index, step in enumerate(steps) if step.needs_credentials]
        if credentialed and credentials is None:
            return self._fail(task, steps[credentialed[0]], "Signing credentials are required")

        secret_env = credentials.as_env() if credentials is not None else {}
        last_credentialed = credentialed[-1] if credentialed else -1
        credentials = None

        for index, step in enumerate(steps):
            if task.cancel_requested.is_set():
                return self._cancelled(task)

            self._set_state(step.state)
            self._remove_stale(step)

            missing = [path for path in step.requires if not path.exists()]
            if missing:
                for path in missing:
                    self._log(f"✗ Required file not found: {path}", LogType.ERROR)
                return self._fail(task, step, f"Missing {', '.join(str(p) for p in missing)}")

            env = dict(step.env)
            if step.needs_credentials:
                env.update(secret_env)
            if index == last_credentialed:
                secret_env = {}

            try:
                process_exit = self.executor.execute_sync(step.command, step.label, task=task, env=env)
            except SpawnError as e:
                return self._fail(task, step, str(e))

            if process_exit.killed:
                return self._cancelled(task)
            if not process_exit.success:
                return self._fail(task, step, f"exit code {process_exit.returncode}",
                                  exit_code=process_exit.returncode)

        self._set_state(PipelineState.CLEANING_UP)
        for path, error in cleanup_artifacts(pipeline.cleanup_paths, preserve=pipeline.artifact):
            logger.warning(f"Could not remove {path}: {error}")
            self._log(f"⚠️ Could not remove {path}: {error}")

        self._set_state(PipelineState.SUCCEEDED)
        self._log(f"✓ {task.label} completed", LogType.SUCCESS)
        if pipeline.artifact is not None:
            self._log(f"📦 Output: {pipeline.artifact}")
        return ProcessResult(TaskOutcome.SUCCEEDED, task.label, exit_code=0, message=f"{task.label} completed")

    def _remove_stale(self, step: PipelineStep) -> None:
        for path in step.stale_artifacts:
            try:
                if remove_if_exists(path):
                    self._log(f"🧹 Removed stale {path.name}")
            except OSError as e:
                logger.warning(f"Could not remove stale artifact {path}: {e}")
                self._log(f"⚠️ Could not remove stale {path}: {e}", LogType.ERROR)

    def _fail(self, task: Task, step: PipelineStep, reason: str,
              exit_code: Optional[int] = None) -> ProcessResult:
        self._set_state(PipelineState.FAILED)
        message = f"{task.label} failed at {step.label}: {reason}"
        self._log(f"✗ {message}", LogType.ERROR)
        return ProcessResult(TaskOutcome.FAILED, task.label, exit_code=exit_code,
                             failed_step=step.label, message=message)

    def _cancelled(self, task: Task) -> ProcessResult:
        self._set_state(PipelineState.CANCELLED)
        self._log(f"⊘ {task.label} cancelled", LogType.ERROR)
        return ProcessResult(TaskOutcome.CANCELLED, task.label, message=f"{task.label} cancelled")

    def _set_state(self, state: PipelineState) -> None:
        self.loop.run_or_post(self.state.set, state)

    def _log(self, message: str, log_type: LogType = LogType.NORMAL) -> None:
        self.loop.run_or_post(self.log_sink.log, message, log_type)


def build_release_pipeline(
    layout: AndroidProjectLayout,
    sdk: SdkConfig,
    keystore_path: str,
    key_alias: str,
    gradle_wrapper: str = "./gradlew",
) -> Pipeline:
    """
    Compile, align, sign and verify the release APK of ``layout``.

    The aligned, signed and ``.idsig`` files of earlier runs are removed when
    the signing phase starts, so a stale file is never taken for fresh output.
    """
    artifacts = layout.release_artifacts()
    steps = [
        PipelineStep(
            label="Compile release APK",
            command=commands.assemble(layout.project_dir, "release", gradle_wrapper),
            state=PipelineState.COMPILING,
        ),
        PipelineStep(
            label="Align APK",
            command=commands.zipalign(sdk, artifacts.unsigned, artifacts.aligned),
            state=PipelineState.ALIGNING,
            requires=[artifacts.unsigned],
            stale_artifacts=artifacts.stale_outputs,
        ),
        PipelineStep(
            label="Sign APK",
            command=(
                f"mkdir -p {commands.quote(artifacts.release_dir)} && "
                + commands.apksigner_sign(sdk, keystore_path, key_alias, artifacts.aligned, artifacts.signed)
            ),
            state=PipelineState.SIGNING,
            requires=[artifacts.aligned],
            needs_credentials=True,
        ),
        PipelineStep(
            label="Verify signature",
            command=commands.apksigner_verify(sdk, artifacts.signed),
            state=PipelineState.VERIFYING,
            requires=[artifacts.signed],
        ),
    ]
    return Pipeline(steps=steps, cleanup_paths=artifacts.intermediates, artifact=artifacts.signed)
