"""
Orchestration module for the droidpanel package.

This module runs external tools as tasks: one foreground task at a time,
streamed output in a bounded log, hard cancellation of whole process trees,
sequential pipelines and periodic device polling, all coordinated through a
single coordination thread.
"""

from .command_executor import CommandExecutor, result_for_exit
from .coordination import CoordinationLoop, Observable
from .device_poller import DevicePoller
from .log_sink import LogSink
from .orchestrator import TaskOrchestrator
from .pipeline import PipelineRunner, build_release_pipeline, cleanup_artifacts, remove_if_exists
from .process_registry import ProcessRegistry
from .shared_state import TimeoutConstants
from .signal_handler import SignalHandler
from .task_timer import TaskTimer

__all__ = [
    "CommandExecutor",
    "CoordinationLoop",
    "DevicePoller",
    "LogSink",
    "Observable",
    "PipelineRunner",
    "ProcessRegistry",
    "SignalHandler",
    "TaskOrchestrator",
    "TaskTimer",
    "TimeoutConstants",
    "build_release_pipeline",
    "cleanup_artifacts",
    "remove_if_exists",
    "result_for_exit",
]
