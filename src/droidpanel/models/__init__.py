"""
Data models for the orchestration layer.

Configuration Models:
- SDK tool locations, process launching, timing, log trimming, build defaults

Runtime Models:
- Log lines and their categories
- Tasks, process handles, exit statuses and task results
- Pipeline steps, pipeline states and signing credentials
"""

from .config import AppConfig, BuildConfig, LogConfig, ProcessConfig, SdkConfig, TimingConfig
from .runtime import (
    CapturedOutput,
    LogLine,
    LogType,
    Pipeline,
    PipelineState,
    PipelineStep,
    ProcessExit,
    ProcessHandle,
    ProcessResult,
    SigningCredentials,
    Task,
    TaskOutcome,
)

__all__ = [
    "AppConfig",
    "BuildConfig",
    "LogConfig",
    "ProcessConfig",
    "SdkConfig",
    "TimingConfig",
    "CapturedOutput",
    "LogLine",
    "LogType",
    "Pipeline",
    "PipelineState",
    "PipelineStep",
    "ProcessExit",
    "ProcessHandle",
    "ProcessResult",
    "SigningCredentials",
    "Task",
    "TaskOutcome",
]
