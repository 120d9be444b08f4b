"""
Task orchestration facade.

``TaskOrchestrator`` wires the coordination loop, worker pools, process
runner, registry, executor, pipeline runner, log sink, device poller and task
timer together and enforces the one-task-at-a-time rule.
"""

import logging
import threading
from typing import Callable, Iterable, Mapping, Optional, Union

from ..android import commands, devices
from ..config import get_config
from ..executor.process_runner import ProcessRunner
from ..executor.thread_pool import POLLING_POOL, TASKS_POOL, ThreadPoolConfig, ThreadPoolManager
from ..models.config import AppConfig
from ..models.runtime import (
    CapturedOutput,
    LogType,
    Pipeline,
    PipelineState,
    PipelineStep,
    ProcessResult,
    SigningCredentials,
    Task,
    TaskOutcome,
)
from ..validation import ErrorSeverity, handle_error
from .command_executor import CommandExecutor, CompletionCallback
from .coordination import CoordinationLoop, Observable
from .device_poller import DevicePoller
from .log_sink import LogSink
from .pipeline import PipelineRunner
from .process_registry import ProcessRegistry
from .shared_state import TimeoutConstants
from .task_timer import TaskTimer

logger = logging.getLogger(__name__)


class TaskOrchestrator:
    """
    Entry point for starting, observing and cancelling tasks.

    At most one task runs at a time; ``start_*`` returns ``None`` while one
    is running. Completion callbacks run on the coordination thread, after
    the running flag has been cleared.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        runner: Optional[ProcessRunner] = None,
        loop: Optional[CoordinationLoop] = None,
        status_query: Optional[Callable[[], bool]] = None,
    ):
        self.config = config or get_config()

        self.loop = loop or CoordinationLoop()
        self._owns_loop = loop is None
        if not self.loop.is_running:
            self.loop.start()

        process_config = self.config.process
        self.pools = ThreadPoolManager()
        self.pools.initialize({
            # A pipeline occupies one worker while a cancel needs another.
            TASKS_POOL: ThreadPoolConfig(
                max_workers=max(2, process_config.max_task_workers),
                thread_name_prefix="TaskWorker",
            ),
            POLLING_POOL: ThreadPoolConfig(
                max_workers=process_config.max_polling_workers,
                thread_name_prefix="PollWorker",
            ),
        })

        self.runner = runner or ProcessRunner.from_config(self.config)
        self.registry = ProcessRegistry(grace_period=process_config.kill_grace_period)
        self.log_sink = LogSink(
            max_lines=self.config.log.max_lines,
            trim_threshold=self.config.log.trim_threshold,
            timestamp_messages=self.config.log.timestamp_messages,
            loop=self.loop,
        )

        self.device_status: Observable = Observable(False, self.loop)
        self.pipeline_state: Observable = Observable(PipelineState.IDLE, self.loop)
        self.task_running: Observable = Observable(False, self.loop)
        self.elapsed: Observable = Observable(0.0, self.loop)

        self.executor = CommandExecutor(self.runner, self.registry, self.loop, self.log_sink, self.pools)
        self.pipeline_runner = PipelineRunner(self.executor, self.loop, self.log_sink, self.pipeline_state)
        self.timer = TaskTimer(self.loop, self.elapsed, self.config.timing.task_timer_interval)
        self.poller = DevicePoller(
            status_query or self.query_emulator_running,
            self.pools,
            self.loop,
            self.device_status,
            interval=self.config.timing.emulator_check_interval,
        )

        self._lock = threading.Lock()
        self._current_task: Optional[Task] = None
        self._last_result: Optional[ProcessResult] = None
        self._closed = False

    # Tasks

    def start_async_task(
        self,
        command: str,
        label: str,
        on_complete: Optional[CompletionCallback] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> Optional[Task]:
        """Run one command as the foreground task; ``None`` if a task is running."""
        task = self._begin_task(label)
        if task is None:
            return None
        try:
            self.executor.run_async(
                command,
                label,
                task=task,
                env=env,
                on_complete=lambda result: self._finish_task(task, result, on_complete),
            )
        except (RuntimeError, ValueError) as e:
            self._abort_start(task, e, on_complete)
        return task

    def start_pipeline(
        self,
        steps: Union[Pipeline, Iterable[PipelineStep]],
        credentials: Optional[SigningCredentials] = None,
        label: str = "Build and sign release",
        on_complete: Optional[CompletionCallback] = None,
    ) -> Optional[Task]:
        """Run a pipeline as the foreground task; ``None`` if a task is running."""
        pipeline = steps if isinstance(steps, Pipeline) else Pipeline(steps=list(steps))
        task = self._begin_task(label)
        if task is None:
            return None
        self.loop.run_or_post(self.pipeline_state.set, PipelineState.IDLE)
        try:
            self.pools.submit(TASKS_POOL, self._run_pipeline, task, pipeline, credentials, on_complete)
        except (RuntimeError, ValueError) as e:
            self._abort_start(task, e, on_complete)
        return task

    def cancel_current_task(self) -> bool:
        """
        Hard-cancel the running task. Returns False when idle or already
        cancelling.
        """
        with self._lock:
            task = self._current_task
        if task is None or task.cancel_requested.is_set():
            return False

        task.cancel_requested.set()
        logger.info(f"Cancelling task '{task.label}'")
        self.log(f"⚠️ Cancelling {task.label}...", LogType.ERROR)

        handle = self.registry.current_foreground()
        if handle is not None and handle.task is task:
            try:
                self.pools.submit(TASKS_POOL, self.registry.kill, handle)
            except (RuntimeError, ValueError) as e:
                logger.warning(f"Killing on the calling thread, pool unavailable: {e}")
                self.registry.kill(handle)
        return True

    def is_task_running(self) -> bool:
        with self._lock:
            return self._current_task is not None

    @property
    def current_task(self) -> Optional[Task]:
        with self._lock:
            return self._current_task

    def current_task_elapsed(self) -> float:
        with self._lock:
            task = self._current_task
        return task.elapsed() if task is not None else 0.0

    @property
    def last_result(self) -> Optional[ProcessResult]:
        with self._lock:
            return self._last_result

    def log(self, message: str, type: LogType = LogType.NORMAL) -> None:
        self.loop.run_or_post(self.log_sink.log, message, type)

    # Device status

    def start_device_polling(self) -> None:
        self.poller.start()

    def stop_device_polling(self) -> None:
        self.poller.stop()

    def capture(self, command: str, env: Optional[Mapping[str, str]] = None,
                timeout: Optional[float] = TimeoutConstants.STATUS_QUERY_TIMEOUT) -> CapturedOutput:
        """Run a short query outside the task slot."""
        return self.runner.capture(command, env=env, timeout=timeout)

    def query_emulator_running(self) -> bool:
        output = self.capture(commands.adb_devices(self.config.sdk))
        return output.success and devices.is_emulator_running(output.text)

    # Lifecycle

    def close(self, timeout: float = TimeoutConstants.LOOP_STOP_TIMEOUT) -> None:
        """Stop polling, kill the running task and release every thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            task = self._current_task

        self.poller.stop()
        if task is not None:
            task.cancel_requested.set()
            self.registry.kill_foreground()
            if not self.loop.is_loop_thread() and not task.wait(timeout):
                logger.warning(f"Task '{task.label}' did not finish within {timeout}s of closing")
        self.timer.stop()
        logger.debug(f"Worker pool stats at close: {self.pools.get_all_stats()}")
        self.pools.shutdown_all(wait=True)
        if self._owns_loop:
            self.loop.stop()
        logger.debug("Orchestrator closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Internals

    def _begin_task(self, label: str) -> Optional[Task]:
        with self._lock:
            if self._closed:
                logger.warning(f"Orchestrator closed, not starting '{label}'")
                return None
            if self._current_task is not None:
                logger.info(f"Not starting '{label}': '{self._current_task.label}' is running")
                return None
            task = Task(label=label)
            self._current_task = task
        self.loop.run_or_post(self._on_task_started, task)
        return task

    def _on_task_started(self, task: Task) -> None:
        with self._lock:
            if self._current_task is not task:
                return
        self.task_running.set(True)
        self.timer.start(task.started_monotonic)

    def _run_pipeline(
        self,
        task: Task,
        pipeline: Pipeline,
        credentials: Optional[SigningCredentials],
        on_complete: Optional[CompletionCallback],
    ) -> None:
        try:
            result = self.pipeline_runner.run(task, pipeline, credentials)
        except Exception as e:
            handle_error(e, f"pipeline '{task.label}'", ErrorSeverity.ERROR, reraise=False, logger=logger)
            self.loop.post(self.pipeline_state.set, PipelineState.FAILED)
            self.log(f"✗ {task.label} failed: {e}", LogType.ERROR)
            result = ProcessResult(TaskOutcome.FAILED, task.label, message=str(e))
        self.loop.post(self._finish_task, task, result, on_complete)

    def _abort_start(self, task: Task, error: Exception, on_complete: Optional[CompletionCallback]) -> None:
        handle_error(error, f"starting '{task.label}'", ErrorSeverity.ERROR, reraise=False, logger=logger)
        result = ProcessResult(TaskOutcome.FAILED, task.label, message=str(error))
        self.loop.run_or_post(self._finish_task, task, result, on_complete)

    def _finish_task(self, task: Task, result: ProcessResult,
                     on_complete: Optional[CompletionCallback]) -> None:
        """Record the terminal state of ``task``; later calls are ignored."""
        with self._lock:
            if self._current_task is not task or task.outcome is not TaskOutcome.NONE:
                logger.debug(f"Ignoring duplicate completion of '{task.label}'")
                return
            self._current_task = None
            task.running = False
            task.outcome = result.outcome
            task.result = result
            self._last_result = result

        self.timer.stop()
        self.task_running.set(False)
        logger.info(f"Task '{task.label}' finished: {result.outcome.value}")

        if on_complete is not None:
            try:
                on_complete(result)
            except Exception as e:
                handle_error(e, f"completion callback of '{task.label}'", ErrorSeverity.ERROR,
                             reraise=False, logger=logger)
        task.finished.set()
