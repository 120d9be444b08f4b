"""
Command execution for the orchestration module.

Two modes share one runner and one registry:

* ``run_async`` returns immediately; spawning happens on the ``tasks`` pool and
  completion is processed on the coordination thread.
* ``execute_sync`` / ``run_sync`` block the calling worker thread until the
  process has exited and its output has been drained. They are the building
  block of sequential pipelines.

Output lines are forwarded to the log sink on the coordination thread: stdout
as ``NORMAL``, stderr as ``ERROR``.
"""

import logging
from typing import Callable, List, Mapping, Optional

from ..executor.process_runner import STDERR, ProcessRunner
from ..executor.thread_pool import TASKS_POOL, ThreadPoolManager
from ..models.runtime import LogType, ProcessExit, ProcessHandle, ProcessResult, Task, TaskOutcome
from ..validation import ErrorSeverity, SpawnError, handle_error
from .coordination import CoordinationLoop
from .log_sink import LogSink
from .process_registry import ProcessRegistry

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[ProcessResult], None]


def result_for_exit(label: str, process_exit: ProcessExit) -> ProcessResult:
    """Map a process exit to a task result; a kill on request is never a failure."""
    if process_exit.killed:
        return ProcessResult(TaskOutcome.CANCELLED, label, exit_code=process_exit.returncode,
                             message=f"{label} cancelled")
    if process_exit.returncode == 0:
        return ProcessResult(TaskOutcome.SUCCEEDED, label, exit_code=0, message=f"{label} completed")
    return ProcessResult(TaskOutcome.FAILED, label, exit_code=process_exit.returncode,
                         message=f"{label} failed (code: {process_exit.returncode})")


class CommandExecutor:
    """
    Runs external commands on behalf of tasks.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        registry: ProcessRegistry,
        loop: CoordinationLoop,
        log_sink: LogSink,
        pools: ThreadPoolManager,
    ):
        self.runner = runner
        self.registry = registry
        self.loop = loop
        self.log_sink = log_sink
        self.pools = pools

    # Async mode

    def run_async(
        self,
        command: str,
        label: str,
        task: Optional[Task] = None,
        env: Optional[Mapping[str, str]] = None,
        on_complete: Optional[CompletionCallback] = None,
    ) -> None:
        """
        Start ``command`` without blocking. ``on_complete`` is called exactly
        once, on the coordination thread, with the task result.
        """
        self.pools.submit(TASKS_POOL, self._launch_async, command, label, task, env, on_complete)

    def _launch_async(
        self,
        command: str,
        label: str,
        task: Optional[Task],
        env: Optional[Mapping[str, str]],
        on_complete: Optional[CompletionCallback],
    ) -> None:
        logger.debug(f"Launching '{label}': {command}")
        self._log(f"▶ {label}...")
        handle: Optional[ProcessHandle] = None
        try:
            handle = self.runner.spawn(command, env=env, on_output=self._forward_output, label=label, task=task)

            try:
                self.registry.register(handle)
            except RuntimeError as e:
                self._reject(handle, e)
                self.loop.post(self._deliver, ProcessResult(TaskOutcome.FAILED, label, message=str(e)), on_complete)
                return

            # A cancel that arrived while the process was being spawned.
            if task is not None and task.cancel_requested.is_set():
                self.registry.kill(handle)

            spawned = handle
            handle.exit_future.add_done_callback(
                lambda _future: self.loop.post(self._complete_async, spawned, on_complete)
            )
        except SpawnError as e:
            self._log(f"✗ {label} failed: {e}", LogType.ERROR)
            self.loop.post(self._deliver, ProcessResult(TaskOutcome.FAILED, label, message=str(e)), on_complete)
        except Exception as e:
            # Whatever went wrong, the task still gets its terminal result.
            handle_error(e, f"launching '{label}'", ErrorSeverity.ERROR, reraise=False, logger=logger)
            self._log(f"✗ {label} failed: {e}", LogType.ERROR)
            if handle is not None:
                self._abandon(handle)
            self.loop.post(self._deliver, ProcessResult(TaskOutcome.FAILED, label, message=str(e)), on_complete)

    def _complete_async(self, handle: ProcessHandle, on_complete: Optional[CompletionCallback]) -> None:
        if not handle.mark_completed():
            return
        self.registry.unregister(handle)
        try:
            result = result_for_exit(handle.label, handle.exit_future.result())
        except Exception as e:
            handle_error(e, f"waiting for '{handle.label}'", ErrorSeverity.ERROR, reraise=False, logger=logger)
            result = ProcessResult(TaskOutcome.FAILED, handle.label, message=str(e))
        self._log_result(result)
        self._deliver(result, on_complete)

    @staticmethod
    def _deliver(result: ProcessResult, on_complete: Optional[CompletionCallback]) -> None:
        if on_complete is None:
            return
        try:
            on_complete(result)
        except Exception as e:
            handle_error(e, f"completion callback of '{result.label}'", ErrorSeverity.ERROR,
                         reraise=False, logger=logger)

    # Sync mode

    def execute_sync(
        self,
        command: str,
        label: str,
        task: Optional[Task] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessExit:
        """
        Run ``command`` to completion on the calling worker thread.

        Returns:
            The exit status, after both output streams were drained

        Raises:
            RuntimeError: When called on the coordination thread
            SpawnError: If the process could not be spawned
        """
        if self.loop.is_loop_thread():
            raise RuntimeError("execute_sync would block the coordination thread")

        logger.debug(f"Running '{label}': {command}")
        self._log(f"▶ {label}...")
        try:
            handle = self.runner.spawn(command, env=env, on_output=self._forward_output, label=label, task=task)
        except SpawnError as e:
            self._log(f"✗ {label} failed: {e}", LogType.ERROR)
            raise

        try:
            self.registry.register(handle)
        except RuntimeError as e:
            self._reject(handle, e)
            return ProcessExit(returncode=-1)

        try:
            if task is not None and task.cancel_requested.is_set():
                self.registry.kill(handle)
            process_exit = handle.exit_future.result()
        finally:
            handle.mark_completed()
            self.registry.unregister(handle)

        self._log_result(result_for_exit(label, process_exit))
        return process_exit

    def run_sync(
        self,
        command: str,
        label: str,
        task: Optional[Task] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """``execute_sync`` reduced to success; True only for exit code 0."""
        return self.execute_sync(command, label, task=task, env=env).success

    # Helpers

    def _forward_output(self, lines: List[str], stream: str) -> None:
        log_type = LogType.ERROR if stream == STDERR else LogType.NORMAL
        self.loop.post(self.log_sink.append_lines, lines, log_type)

    def _log(self, message: str, log_type: LogType = LogType.NORMAL) -> None:
        self.loop.run_or_post(self.log_sink.log, message, log_type)

    def _log_result(self, result: ProcessResult) -> None:
        if result.outcome is TaskOutcome.SUCCEEDED:
            self._log(f"✓ {result.message}", LogType.SUCCESS)
        elif result.outcome is TaskOutcome.CANCELLED:
            self._log(f"⊘ {result.message}", LogType.ERROR)
        else:
            self._log(f"✗ {result.message}", LogType.ERROR)

    def _reject(self, handle: ProcessHandle, error: RuntimeError) -> None:
        """Kill a process that could not become the foreground process."""
        logger.error(f"Rejecting '{handle.label}': {error}")
        self._log(f"✗ {handle.label} rejected: {error}", LogType.ERROR)
        self._abandon(handle)

    def _abandon(self, handle: ProcessHandle) -> None:
        """Kill ``handle`` without reporting its exit; the caller reports the failure."""
        handle.mark_completed()
        handle.request_cancel()
        self.registry.unregister(handle)
        self.registry.terminate_process_tree(handle.pid, handle.label or "process")
